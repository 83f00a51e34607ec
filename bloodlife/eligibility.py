"""
Donor and inventory eligibility for a blood request.

Matching is exact on blood group and city: a request is served by
donors living in the same city (case-insensitive) and by stock of the
same group. Nothing here writes to the store.
"""

from datetime import datetime, timedelta

from .constants import (
    DONATION_COOLDOWN_DAYS, UNIT_AVAILABLE, UNIT_RESERVED, parse_timestamp,
)


def _same_city(a, b):
    return (a or '').strip().lower() == (b or '').strip().lower()


def can_donate(last_donation_date, now=None):
    """Check if donor can donate (more than 90 days since last donation)"""
    if not last_donation_date:
        return True
    now = now or datetime.now()
    last = parse_timestamp(last_donation_date)
    return now - last > timedelta(days=DONATION_COOLDOWN_DAYS)


def is_donor_eligible(donor, request_data, now=None):
    """Active donor of the same blood group and city, past the cooldown"""
    return (
        donor.get('blood_group') == request_data.get('blood_group')
        and donor.get('is_active') is True
        and _same_city(donor.get('city'), request_data.get('city'))
        and can_donate(donor.get('last_donation'), now)
    )


def is_unit_in_stock(unit, blood_group, now=None):
    """Unit can be offered as available stock for the given group"""
    now = now or datetime.now()
    expires_at = parse_timestamp(unit.get('expires_at'))
    return (
        unit.get('blood_group') == blood_group
        and unit.get('status') == UNIT_AVAILABLE
        and expires_at is not None
        and expires_at > now
    )


def is_reserved_for(unit, request_id):
    return unit.get('status') == UNIT_RESERVED and unit.get('reserved_for_request_id') == request_id


def find_candidates(request_data, donors, units, now=None):
    """
    Blood matching for one request.
    Returns (eligible_donors, eligible_units) in collection order.
    """
    now = now or datetime.now()
    eligible_donors = [d for d in donors if is_donor_eligible(d, request_data, now)]
    eligible_units = [u for u in units if is_unit_in_stock(u, request_data.get('blood_group'), now)]
    return eligible_donors, eligible_units


def reserved_units_for(request_data, units):
    """Units already held for this request"""
    request_id = request_data.get('request_id')
    return [u for u in units if is_reserved_for(u, request_id)]
