"""
Blood unit lifecycle.

Stored status moves along these edges only:

    available -> reserved    (reserved_for_request_id set)
    reserved  -> available   (reservation released)
    reserved  -> used
    available -> discarded
    reserved  -> discarded

'expired' and 'expiring_soon' are derived from expires_at on every read
and never written back to the record.
"""

from datetime import datetime, timedelta

from .constants import (
    BLOOD_GROUPS, UNIT_AVAILABLE, UNIT_RESERVED, UNIT_USED, UNIT_DISCARDED,
    UNIT_STATUSES, UNIT_EXPIRED, UNIT_EXPIRING_SOON, EXPIRING_SOON_DAYS,
    SHELF_LIFE_DAYS, DONATION_VOLUME_ML, DEFAULT_STORAGE_LOCATION,
    iso_now, parse_timestamp,
)
from .errors import StateError, ValidationError
from .records import generate_unit_id, generate_unit_code

ALLOWED_TRANSITIONS = {
    UNIT_AVAILABLE: {UNIT_RESERVED, UNIT_DISCARDED},
    UNIT_RESERVED: {UNIT_AVAILABLE, UNIT_USED, UNIT_DISCARDED},
    UNIT_USED: set(),
    UNIT_DISCARDED: set(),
}

# ============== DERIVED STATE ==============

def is_expired(unit, now=None):
    """Expiry has passed and the unit was not discarded yet"""
    now = now or datetime.now()
    expires_at = parse_timestamp(unit.get('expires_at'))
    return expires_at is not None and expires_at < now and unit.get('status') != UNIT_DISCARDED


def is_expiring_soon(unit, now=None):
    now = now or datetime.now()
    expires_at = parse_timestamp(unit.get('expires_at'))
    if expires_at is None or unit.get('status') != UNIT_AVAILABLE:
        return False
    return timedelta(0) < expires_at - now < timedelta(days=EXPIRING_SOON_DAYS)


def classify_unit(unit, now=None):
    """Display state of a unit: stored status, or expired / expiring_soon"""
    status = unit.get('status')
    if status in (UNIT_USED, UNIT_DISCARDED):
        return status
    if is_expired(unit, now):
        return UNIT_EXPIRED
    if is_expiring_soon(unit, now):
        return UNIT_EXPIRING_SOON
    return status

# ============== TRANSITIONS ==============

def transition_unit(unit, new_status, request_id=None, now=None):
    """
    Return a copy of unit moved to new_status.
    Raises StateError for an edge outside ALLOWED_TRANSITIONS, or when
    reserving a unit whose expiry has passed.
    """
    if new_status not in UNIT_STATUSES:
        raise ValidationError(f"Invalid unit status: {new_status!r}")
    current = unit.get('status')
    if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise StateError(f"Unit {unit.get('unit_code')} cannot move from {current} to {new_status}")

    updated = dict(unit)
    updated['status'] = new_status
    if new_status == UNIT_RESERVED:
        if not request_id:
            raise ValidationError('Reserving a unit requires a request id')
        if is_expired(unit, now):
            raise StateError(f"Unit {unit.get('unit_code')} has expired and cannot be reserved")
        updated['reserved_for_request_id'] = request_id
    elif new_status == UNIT_AVAILABLE:
        updated['reserved_for_request_id'] = None
    return updated


def reserve_unit(unit, request_id, now=None):
    return transition_unit(unit, UNIT_RESERVED, request_id=request_id, now=now)


def release_unit(unit, now=None):
    return transition_unit(unit, UNIT_AVAILABLE, now=now)


def mark_used(unit, now=None):
    return transition_unit(unit, UNIT_USED, now=now)


def discard_unit(unit, now=None):
    return transition_unit(unit, UNIT_DISCARDED, now=now)

# ============== DONATION INTAKE ==============

def unit_from_donation(donor, existing_units, now=None):
    """Synthesize an available 450 mL unit from a completed donation"""
    now = now or datetime.now()
    return {
        'unit_id': generate_unit_id(),
        'unit_code': generate_unit_code(u.get('unit_code') for u in existing_units),
        'blood_group': donor['blood_group'],
        'donor_id': donor['donor_id'],
        'volume_ml': DONATION_VOLUME_ML,
        'collected_at': iso_now(now),
        'expires_at': iso_now(now + timedelta(days=SHELF_LIFE_DAYS)),
        'storage_location': DEFAULT_STORAGE_LOCATION,
        'status': UNIT_AVAILABLE,
        'reserved_for_request_id': None,
        'created_at': iso_now(now),
    }

# ============== QUERIES ==============

def inventory_summary(units, now=None):
    """Counts shown on the inventory screen"""
    now = now or datetime.now()
    return {
        'total': len(units),
        'available': sum(1 for u in units if u.get('status') == UNIT_AVAILABLE and not is_expired(u, now)),
        'expiring_soon': sum(1 for u in units if is_expiring_soon(u, now)),
        'expired': sum(1 for u in units if is_expired(u, now)),
    }


def filter_units(units, blood_group=None, status=None, search=None):
    """Filter by group, stored status and code/location text; soonest expiry first"""
    needle = (search or '').strip().lower()
    results = []
    for unit in units:
        if blood_group and blood_group != 'all' and unit.get('blood_group') != blood_group:
            continue
        if status and status != 'all' and unit.get('status') != status:
            continue
        if needle and needle not in (unit.get('unit_code') or '').lower() \
                and needle not in (unit.get('storage_location') or '').lower():
            continue
        results.append(unit)
    results.sort(key=lambda u: parse_timestamp(u.get('expires_at')) or datetime.max)
    return results


def expired_units_to_discard(units, now=None):
    """Available units past their expiry, candidates for the discard sweep"""
    now = now or datetime.now()
    return [u for u in units if u.get('status') == UNIT_AVAILABLE and is_expired(u, now)]


def available_by_group(units):
    counts = {group: 0 for group in BLOOD_GROUPS}
    for unit in units:
        if unit.get('status') == UNIT_AVAILABLE:
            counts[unit['blood_group']] = counts.get(unit['blood_group'], 0) + 1
    return counts
