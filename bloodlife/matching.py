"""
Match ledger and fulfillment cascade.

A match records one donor's interaction with one request. Changing its
status cascades into the donor, request and inventory collections:

    contacted  pending request becomes matched
    donated    donor.last_donation = today, a new 450 mL unit joins the
               inventory, the request becomes completed
    declined   nothing else changes

apply_match_status() works on in-memory copies of the collections and
returns the next state of all four; persisting them is up to the caller.
"""

import logging
from collections import namedtuple
from datetime import datetime

from .constants import (
    DONORS, REQUESTS, UNITS, MATCHES, MATCH_STATUSES, MATCH_CONTACTED,
    MATCH_DONATED, MATCH_DECLINED, REQUEST_PENDING, REQUEST_MATCHED,
    REQUEST_COMPLETED, DATE_FORMAT,
)
from .errors import StateError, ValidationError
from .inventory import unit_from_donation
from .records import new_match

logger = logging.getLogger(__name__)

# Allowed match status changes; donated and declined are terminal
MATCH_TRANSITIONS = {
    MATCH_CONTACTED: {MATCH_DONATED, MATCH_DECLINED},
    MATCH_DONATED: set(),
    MATCH_DECLINED: set(),
}

MatchOutcome = namedtuple('MatchOutcome', ['state', 'match', 'previous_status', 'cascaded', 'new_unit'])


def find_match(matches, request_id, donor_id):
    for match in matches:
        if match.get('request_id') == request_id and match.get('donor_id') == donor_id:
            return match
    return None


def record_match(existing_matches, request_id, donor_id, status, now=None):
    """
    Upsert the match for (request_id, donor_id).
    Returns (new_matches, previous_status); previous_status is None
    when the record is new.
    """
    if status not in MATCH_STATUSES:
        raise ValidationError(f"Invalid match status: {status!r}")
    existing = find_match(existing_matches, request_id, donor_id)
    if existing is None:
        return list(existing_matches) + [new_match(request_id, donor_id, status, now)], None

    previous = existing.get('status')
    if previous != status and status not in MATCH_TRANSITIONS.get(previous, set()):
        raise StateError(f"Match {existing.get('match_id')} cannot move from {previous} to {status}")
    updated = [
        dict(m, status=status) if m is existing else m
        for m in existing_matches
    ]
    return updated, previous


def _set_request_status(requests, request_id, status):
    return [dict(r, status=status) if r.get('request_id') == request_id else r for r in requests]


def _find(records, key, value):
    for record in records:
        if record.get(key) == value:
            return record
    return None


def apply_match_status(state, request_id, donor_id, status, now=None):
    """
    Record a match status and build the cascaded next state.

    state maps collection name to its current list. The returned
    MatchOutcome.state holds all four collections; collections the
    cascade did not touch are passed through unchanged.
    """
    now = now or datetime.now()
    matches, previous = record_match(state[MATCHES], request_id, donor_id, status, now)
    next_state = {
        DONORS: state[DONORS],
        REQUESTS: state[REQUESTS],
        UNITS: state[UNITS],
        MATCHES: matches,
    }
    match = find_match(matches, request_id, donor_id)

    # Same status again: ledger unchanged, no cascade
    if previous == status:
        return MatchOutcome(next_state, match, previous, False, None)

    request_data = _find(state[REQUESTS], 'request_id', request_id)
    new_unit = None

    if status == MATCH_CONTACTED:
        if request_data and request_data.get('status') == REQUEST_PENDING:
            next_state[REQUESTS] = _set_request_status(state[REQUESTS], request_id, REQUEST_MATCHED)

    elif status == MATCH_DONATED:
        donor = _find(state[DONORS], 'donor_id', donor_id)
        if donor is not None:
            today = now.strftime(DATE_FORMAT)
            next_state[DONORS] = [
                dict(d, last_donation=today) if d is donor else d
                for d in state[DONORS]
            ]
            new_unit = unit_from_donation(donor, state[UNITS], now)
            next_state[UNITS] = list(state[UNITS]) + [new_unit]
        else:
            logger.warning("Donation recorded for unknown donor %s; donor and inventory unchanged", donor_id)
        if request_data is not None:
            next_state[REQUESTS] = _set_request_status(state[REQUESTS], request_id, REQUEST_COMPLETED)

    return MatchOutcome(next_state, match, previous, True, new_unit)
