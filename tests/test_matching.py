import pytest

from bloodlife.errors import StateError, ValidationError
from bloodlife.matching import apply_match_status, record_match

from conftest import NOW, make_donor, make_request, make_unit


def state(**overrides):
    base = {
        'donors': [make_donor()],
        'requests': [make_request()],
        'units': [make_unit()],
        'matches': [],
    }
    base.update(overrides)
    return base


class TestLedger:
    def test_new_pair_appends_record(self):
        matches, previous = record_match([], 'BR-Y', 'DON-X', 'contacted', now=NOW)
        assert previous is None
        assert len(matches) == 1
        assert matches[0]['status'] == 'contacted'
        assert matches[0]['created_at'] == '2025-06-15T10:30:00'
        assert matches[0]['match_id'].startswith('MT-')

    def test_repeat_pair_updates_status_only(self):
        first, _ = record_match([], 'BR-Y', 'DON-X', 'contacted', now=NOW)
        second, previous = record_match(first, 'BR-Y', 'DON-X', 'donated')
        assert previous == 'contacted'
        assert len(second) == 1
        assert second[0]['status'] == 'donated'
        for key in ('match_id', 'request_id', 'donor_id', 'created_at'):
            assert second[0][key] == first[0][key]
        assert first[0]['status'] == 'contacted'

    def test_other_pairs_untouched(self):
        matches, _ = record_match([], 'BR-Y', 'DON-X', 'contacted', now=NOW)
        matches, _ = record_match(matches, 'BR-Y', 'DON-Z', 'declined', now=NOW)
        assert [m['status'] for m in matches] == ['contacted', 'declined']

    def test_unknown_references_are_recorded(self):
        matches, _ = record_match([], 'BR-NOPE', 'DON-NOPE', 'contacted', now=NOW)
        assert matches[0]['request_id'] == 'BR-NOPE'

    @pytest.mark.parametrize('previous, status', [
        ('donated', 'contacted'),
        ('declined', 'contacted'),
        ('donated', 'declined'),
        ('declined', 'donated'),
    ])
    def test_terminal_statuses_do_not_move(self, previous, status):
        matches, _ = record_match([], 'BR-Y', 'DON-X', previous, now=NOW)
        with pytest.raises(StateError):
            record_match(matches, 'BR-Y', 'DON-X', status, now=NOW)

    def test_invalid_status(self):
        with pytest.raises(ValidationError):
            record_match([], 'BR-Y', 'DON-X', 'maybe', now=NOW)


class TestCascade:
    def test_contacted_moves_pending_request_to_matched(self):
        current = state()
        outcome = apply_match_status(current, 'BR-Y', 'DON-X', 'contacted', now=NOW)
        assert outcome.cascaded
        assert outcome.state['requests'][0]['status'] == 'matched'
        assert outcome.state['donors'] is current['donors']
        assert outcome.state['units'] is current['units']

    def test_contacted_leaves_completed_request(self):
        current = state(requests=[make_request(status='completed')])
        outcome = apply_match_status(current, 'BR-Y', 'DON-X', 'contacted', now=NOW)
        assert outcome.state['requests'][0]['status'] == 'completed'

    def test_donated_cascade(self):
        current = state()
        outcome = apply_match_status(current, 'BR-Y', 'DON-X', 'donated', now=NOW)
        next_state = outcome.state

        assert next_state['requests'][0]['status'] == 'completed'
        assert next_state['donors'][0]['last_donation'] == '2025-06-15'
        assert len(next_state['units']) == 2
        new_unit = next_state['units'][-1]
        assert new_unit is outcome.new_unit
        assert new_unit['blood_group'] == 'O+'
        assert new_unit['volume_ml'] == 450
        assert new_unit['expires_at'] == '2025-07-27T10:30:00'
        assert new_unit['donor_id'] == 'DON-X'
        # input collections are not mutated
        assert current['donors'][0]['last_donation'] is None
        assert len(current['units']) == 1

    def test_donated_completes_matched_request(self):
        current = state(requests=[make_request(status='matched')])
        outcome = apply_match_status(current, 'BR-Y', 'DON-X', 'donated', now=NOW)
        assert outcome.state['requests'][0]['status'] == 'completed'

    def test_declined_has_no_cascade(self):
        current = state()
        outcome = apply_match_status(current, 'BR-Y', 'DON-X', 'declined', now=NOW)
        assert outcome.state['requests'] is current['requests']
        assert outcome.state['donors'] is current['donors']
        assert outcome.state['units'] is current['units']
        assert outcome.match['status'] == 'declined'

    def test_repeated_donation_does_not_cascade_twice(self):
        first = apply_match_status(state(), 'BR-Y', 'DON-X', 'donated', now=NOW)
        second = apply_match_status(first.state, 'BR-Y', 'DON-X', 'donated', now=NOW)
        assert not second.cascaded
        assert second.new_unit is None
        assert len(second.state['units']) == 2

    def test_donation_by_unknown_donor_still_completes_request(self):
        current = state(donors=[])
        outcome = apply_match_status(current, 'BR-Y', 'DON-GONE', 'donated', now=NOW)
        assert outcome.new_unit is None
        assert outcome.state['units'] is current['units']
        assert outcome.state['requests'][0]['status'] == 'completed'
