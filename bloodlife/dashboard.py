"""Derived listings and statistics; computed on every read, never stored"""

from datetime import datetime

from .constants import (
    DONORS, REQUESTS, UNITS, MATCHES, UNIT_STATUSES, URGENCY_SCORE,
    REQUEST_PENDING, REQUEST_COMPLETED, MATCH_DONATED, parse_timestamp,
)
from .inventory import available_by_group, inventory_summary


def _created(record):
    return parse_timestamp(record.get('created_at')) or datetime.min


def urgent_requests(requests, limit=3):
    """Pending requests, most urgent first, newest first within an urgency"""
    pending = [r for r in requests if r.get('status') == REQUEST_PENDING]
    pending.sort(key=_created, reverse=True)
    # stable sort keeps newest-first inside each urgency level
    pending.sort(key=lambda r: URGENCY_SCORE.get(r.get('urgency'), 0), reverse=True)
    return pending[:limit] if limit else pending


def active_requests(requests, search=None):
    """Requests not yet completed, newest first"""
    needle = (search or '').strip().lower()
    results = []
    for r in requests:
        if r.get('status') == REQUEST_COMPLETED:
            continue
        haystack = ' '.join(str(r.get(k) or '') for k in ('patient_name', 'city', 'hospital')).lower()
        if needle and needle not in haystack:
            continue
        results.append(r)
    results.sort(key=_created, reverse=True)
    return results


def filter_donors(donors, search=None, blood_group=None):
    needle = (search or '').strip().lower()
    results = []
    for d in donors:
        if blood_group and blood_group != 'all' and d.get('blood_group') != blood_group:
            continue
        haystack = ' '.join(str(d.get(k) or '') for k in ('name', 'city', 'area')).lower()
        if needle and needle not in haystack:
            continue
        results.append(d)
    return results


def get_statistics(state, now=None):
    """Get dashboard statistics"""
    now = now or datetime.now()
    units = state[UNITS]

    status_counts = {status: 0 for status in UNIT_STATUSES}
    for unit in units:
        status_counts[unit.get('status')] = status_counts.get(unit.get('status'), 0) + 1

    return {
        'total_donors': len(state[DONORS]),
        'stock_units': len(units),
        'lives_saved': sum(1 for m in state[MATCHES] if m.get('status') == MATCH_DONATED),
        'active_alerts': sum(1 for r in state[REQUESTS] if r.get('status') == REQUEST_PENDING),
        'inventory_by_group': available_by_group(units),
        'inventory_by_status': {k: v for k, v in status_counts.items() if v > 0},
        'inventory': inventory_summary(units, now),
        'urgent_requests': urgent_requests(state[REQUESTS]),
    }
