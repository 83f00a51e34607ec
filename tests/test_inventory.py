from datetime import timedelta

import pytest

from bloodlife.errors import StateError, ValidationError
from bloodlife.inventory import (
    classify_unit, discard_unit, expired_units_to_discard, filter_units, inventory_summary,
    is_expired, is_expiring_soon, mark_used, release_unit, reserve_unit, unit_from_donation,
)
from bloodlife.records import generate_unit_code

from conftest import NOW, make_donor, make_unit


def expiring_in(days):
    return (NOW + timedelta(days=days)).isoformat(timespec='seconds')


def test_reserve_then_release_clears_reservation():
    unit = reserve_unit(make_unit(), 'BR-Y', now=NOW)
    assert unit['status'] == 'reserved'
    assert unit['reserved_for_request_id'] == 'BR-Y'

    released = release_unit(unit, now=NOW)
    assert released['status'] == 'available'
    assert released['reserved_for_request_id'] is None


def test_transitions_return_copies():
    original = make_unit()
    reserve_unit(original, 'BR-Y', now=NOW)
    assert original['status'] == 'available'


def test_reserved_unit_can_be_used():
    used = mark_used(reserve_unit(make_unit(), 'BR-Y', now=NOW), now=NOW)
    assert used['status'] == 'used'


@pytest.mark.parametrize('status, action', [
    ('available', mark_used),
    ('used', discard_unit),
    ('discarded', release_unit),
    ('available', release_unit),
])
def test_illegal_transitions_raise(status, action):
    with pytest.raises(StateError):
        action(make_unit(status=status), now=NOW)


def test_expired_unit_cannot_be_reserved():
    with pytest.raises(StateError):
        reserve_unit(make_unit(expires_at=expiring_in(-1)), 'BR-Y', now=NOW)


def test_reserve_requires_request_id():
    with pytest.raises(ValidationError):
        reserve_unit(make_unit(), None, now=NOW)


def test_expired_is_derived_from_timestamp():
    unit = make_unit(expires_at=expiring_in(-1))
    assert is_expired(unit, NOW)
    assert classify_unit(unit, NOW) == 'expired'
    assert 'expired' not in unit.values()

    discarded = discard_unit(unit, now=NOW)
    assert not is_expired(discarded, NOW)
    assert classify_unit(discarded, NOW) == 'discarded'


def test_expiring_soon_window():
    assert is_expiring_soon(make_unit(expires_at=expiring_in(5)), NOW)
    assert not is_expiring_soon(make_unit(expires_at=expiring_in(8)), NOW)
    assert not is_expiring_soon(make_unit(expires_at=expiring_in(-1)), NOW)
    assert not is_expiring_soon(make_unit(expires_at=expiring_in(5), status='reserved'), NOW)


def test_unit_from_donation():
    unit = unit_from_donation(make_donor(blood_group='AB-'), [make_unit()], now=NOW)
    assert unit['blood_group'] == 'AB-'
    assert unit['donor_id'] == 'DON-X'
    assert unit['volume_ml'] == 450
    assert unit['status'] == 'available'
    assert unit['collected_at'] == '2025-06-15T10:30:00'
    assert unit['expires_at'] == '2025-07-27T10:30:00'
    assert unit['unit_code'] != 'BLD-IND-0001'


def test_summary_and_sweep():
    units = [
        make_unit(unit_id='U1'),
        make_unit(unit_id='U2', expires_at=expiring_in(3)),
        make_unit(unit_id='U3', expires_at=expiring_in(-2)),
        make_unit(unit_id='U4', expires_at=expiring_in(-2), status='discarded'),
    ]
    assert inventory_summary(units, NOW) == {'total': 4, 'available': 2, 'expiring_soon': 1, 'expired': 1}
    assert [u['unit_id'] for u in expired_units_to_discard(units, NOW)] == ['U3']


def test_filter_units_sorts_by_expiry():
    units = [
        make_unit(unit_id='U1', unit_code='BLD-IND-1111', expires_at=expiring_in(30)),
        make_unit(unit_id='U2', unit_code='BLD-IND-2222', expires_at=expiring_in(2), storage_location='Fridge B'),
        make_unit(unit_id='U3', blood_group='A+', expires_at=expiring_in(1)),
    ]
    assert [u['unit_id'] for u in filter_units(units, blood_group='O+')] == ['U2', 'U1']
    assert [u['unit_id'] for u in filter_units(units, search='fridge b')] == ['U2']
    assert filter_units(units, status='used') == []


def test_unit_code_when_four_digit_codes_are_exhausted():
    taken = [f'BLD-IND-{i}' for i in range(1000, 10000)]
    assert generate_unit_code(taken) == 'BLD-IND-10000'
    assert generate_unit_code(taken + ['BLD-IND-10000', 'SPECIAL']) == 'BLD-IND-10001'
