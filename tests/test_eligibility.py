from datetime import timedelta

from bloodlife.eligibility import can_donate, find_candidates, reserved_units_for

from conftest import NOW, days_ago, make_donor, make_request, make_unit


def test_donor_without_prior_donation_is_candidate():
    donors, _ = find_candidates(make_request(), [make_donor()], [], now=NOW)
    assert [d['donor_id'] for d in donors] == ['DON-X']


def test_recent_donor_is_excluded():
    donor = make_donor(last_donation=days_ago(10))
    donors, _ = find_candidates(make_request(), [donor], [], now=NOW)
    assert donors == []


def test_cooldown_boundary_is_strict():
    assert not can_donate(days_ago(90), now=NOW - timedelta(hours=10, minutes=30))
    assert can_donate(days_ago(91), now=NOW)
    assert can_donate(None, now=NOW)


def test_city_match_ignores_case_and_whitespace():
    donor = make_donor(city='  mumbai ')
    donors, _ = find_candidates(make_request(city='MUMBAI'), [donor], [], now=NOW)
    assert len(donors) == 1


def test_donor_filters():
    request_data = make_request()
    donors = [
        make_donor(donor_id='D1'),
        make_donor(donor_id='D2', blood_group='O-'),
        make_donor(donor_id='D3', is_active=False),
        make_donor(donor_id='D4', city='Pune'),
        make_donor(donor_id='D5', last_donation=days_ago(120)),
    ]
    eligible, _ = find_candidates(request_data, donors, [], now=NOW)
    assert [d['donor_id'] for d in eligible] == ['D1', 'D5']


def test_available_stock_requires_group_status_and_expiry():
    units = [
        make_unit(unit_id='U1'),
        make_unit(unit_id='U2', blood_group='A+'),
        make_unit(unit_id='U3', status='reserved', reserved_for_request_id='BR-Y'),
        make_unit(unit_id='U4', expires_at=(NOW - timedelta(days=1)).isoformat()),
        make_unit(unit_id='U5', status='used'),
    ]
    _, eligible = find_candidates(make_request(), [], units, now=NOW)
    assert [u['unit_id'] for u in eligible] == ['U1']


def test_expired_unit_never_offered():
    unit = make_unit(expires_at=days_ago(1))
    for group in ('O+', 'A+', 'B-'):
        _, eligible = find_candidates(make_request(blood_group=group), [], [dict(unit, blood_group=group)], now=NOW)
        assert eligible == []


def test_reserved_units_only_for_their_request():
    units = [
        make_unit(unit_id='U1', status='reserved', reserved_for_request_id='BR-Y'),
        make_unit(unit_id='U2', status='reserved', reserved_for_request_id='BR-OTHER'),
        make_unit(unit_id='U3'),
    ]
    reserved = reserved_units_for(make_request(), units)
    assert [u['unit_id'] for u in reserved] == ['U1']
