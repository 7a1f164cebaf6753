"""Tests for round creation, fixture edits and the round state machine."""

import pytest
from datetime import timedelta

from lmslocal.models import FixtureInput, RoundState
from lmslocal.services.exceptions import (
    Conflict,
    InvalidStateTransition,
    NotFound,
    RoundLocked,
    Unauthorized,
    ValidationError,
)
from lmslocal.services.round_state import RoundStateMachine, derive_round_state
from lmslocal.services.rounds import RoundService
from lmslocal.utils.clock import to_iso

from conftest import NOW, lock_at


def fixture(home, away, kickoff=None):
    return FixtureInput(home_team=home, away_team=away, kickoff_time=kickoff or lock_at())


class TestRoundStateMachine:
    """Tests for the explicit round lifecycle."""

    def test_forward_transitions(self):
        state = RoundState.OPEN
        for target in (RoundState.LOCKED, RoundState.RESULTS_PENDING, RoundState.COMPLETE):
            state = RoundStateMachine.transition(state, target)
        assert state == RoundState.COMPLETE

    def test_skipping_a_state_is_refused(self):
        with pytest.raises(InvalidStateTransition):
            RoundStateMachine.transition(RoundState.OPEN, RoundState.COMPLETE)

    def test_complete_can_only_reopen_to_results_pending(self):
        assert RoundStateMachine.can_transition(RoundState.COMPLETE, RoundState.RESULTS_PENDING)
        assert not RoundStateMachine.can_transition(RoundState.COMPLETE, RoundState.OPEN)

    def test_invalid_transition_is_a_conflict(self):
        with pytest.raises(Conflict):
            RoundStateMachine.transition(RoundState.LOCKED, RoundState.OPEN)

    def test_derive_state(self):
        round_row = {'lock_time': to_iso(lock_at()), 'completed_at': None}
        pending = [{'result': None}, {'result': None}]
        partial = [{'result': 'ARS'}, {'result': None}]

        assert derive_round_state(round_row, pending, NOW) == RoundState.OPEN
        assert derive_round_state(round_row, pending, lock_at()) == RoundState.LOCKED
        assert derive_round_state(round_row, partial, lock_at()) == RoundState.RESULTS_PENDING

        done = {**round_row, 'completed_at': to_iso(lock_at(timedelta(days=1)))}
        assert derive_round_state(done, partial, lock_at()) == RoundState.COMPLETE


class TestCreateRound:
    """Tests for RoundService.create_round."""

    @pytest.fixture
    def service(self, db_fixture, cache):
        return RoundService(db_fixture, cache)

    def test_first_round_activates_competition(self, service, db_fixture, league):
        competition_id = league['competition']['id']

        created = service.create_round(
            league['organiser'], competition_id,
            [fixture('ars', 'che'), fixture('LIV', 'MCI', lock_at(timedelta(hours=3)))],
            now=NOW,
        )

        assert created['round_number'] == 1
        assert created['state'] == 'OPEN'
        assert created['lock_time'] == to_iso(lock_at())
        assert [f['home_team'] for f in created['fixtures']] == ['ARS', 'LIV']
        assert db_fixture.get_competition(competition_id)['status'] == 'active'

    def test_round_numbers_are_sequential(self, service, db_fixture, league):
        competition_id = league['competition']['id']
        first = service.create_round(league['organiser'], competition_id, [fixture('ARS', 'CHE')], now=NOW)
        db_fixture.set_round_completed(first['id'], to_iso(NOW))

        second = service.create_round(league['organiser'], competition_id, [fixture('LIV', 'MCI')], now=NOW)

        assert second['round_number'] == 2

    def test_previous_round_must_be_complete(self, service, league):
        competition_id = league['competition']['id']
        service.create_round(league['organiser'], competition_id, [fixture('ARS', 'CHE')], now=NOW)

        with pytest.raises(Conflict):
            service.create_round(league['organiser'], competition_id, [fixture('LIV', 'MCI')], now=NOW)

    def test_requires_fixtures_capability(self, service, db_fixture, league):
        competition_id = league['competition']['id']

        with pytest.raises(Unauthorized):
            service.create_round(league['alice'], competition_id, [fixture('ARS', 'CHE')], now=NOW)

        db_fixture.set_permissions(competition_id, league['alice'], {'manage_fixtures': True})
        created = service.create_round(league['alice'], competition_id, [fixture('ARS', 'CHE')], now=NOW)
        assert created['round_number'] == 1

    def test_same_team_both_sides_rejected(self, service, league):
        with pytest.raises(ValidationError):
            service.create_round(
                league['organiser'], league['competition']['id'], [fixture('ARS', 'ars')], now=NOW
            )

    def test_team_twice_in_round_rejected(self, service, league):
        with pytest.raises(ValidationError):
            service.create_round(
                league['organiser'], league['competition']['id'],
                [fixture('ARS', 'CHE'), fixture('LIV', 'ARS')],
                now=NOW,
            )

    def test_unknown_team_rejected(self, service, league):
        with pytest.raises(ValidationError):
            service.create_round(
                league['organiser'], league['competition']['id'], [fixture('ARS', 'XYZ')], now=NOW
            )

    def test_lock_time_in_past_rejected(self, service, league):
        with pytest.raises(ValidationError):
            service.create_round(
                league['organiser'], league['competition']['id'],
                [fixture('ARS', 'CHE')],
                lock_time=NOW - timedelta(minutes=1),
                now=NOW,
            )

    def test_unknown_competition(self, service, league):
        with pytest.raises(NotFound):
            service.create_round(league['organiser'], 9999, [fixture('ARS', 'CHE')], now=NOW)

    def test_finished_competition_rejected(self, service, db_fixture, league):
        competition_id = league['competition']['id']
        db_fixture.update_competition_status(competition_id, 'COMPLETE', league['alice'])

        with pytest.raises(Conflict):
            service.create_round(league['organiser'], competition_id, [fixture('ARS', 'CHE')], now=NOW)


class TestFixtureEdits:
    """Tests for structural edits before and after lock."""

    @pytest.fixture
    def service(self, db_fixture, cache):
        return RoundService(db_fixture, cache)

    @pytest.fixture
    def round_with_pick(self, db_fixture, seed, league):
        competition_id = league['competition']['id']
        round_id, fixtures = seed.round(competition_id, [('ARS', 'CHE'), ('LIV', 'MCI')])
        db_fixture.create_pick(round_id, competition_id, league['alice'], 'ARS', fixtures[0])
        db_fixture.add_used_team(competition_id, league['alice'], 'ARS')
        return round_id, fixtures

    def test_edit_before_lock_drops_affected_picks(self, service, db_fixture, league, round_with_pick):
        round_id, fixtures = round_with_pick

        updated = service.update_fixture(
            league['organiser'], fixtures[0], 'TOT', 'CHE', lock_at(), now=NOW
        )

        assert updated['home_team'] == 'TOT'
        assert updated['picks_removed'] == 1
        assert db_fixture.get_pick(round_id, league['alice']) is None
        assert db_fixture.get_used_teams(league['competition']['id'], league['alice']) == set()

    def test_kickoff_change_keeps_picks(self, service, db_fixture, league, round_with_pick):
        round_id, fixtures = round_with_pick

        updated = service.update_fixture(
            league['organiser'], fixtures[0], 'ARS', 'CHE', lock_at(timedelta(hours=2)), now=NOW
        )

        assert updated['picks_removed'] == 0
        assert db_fixture.get_pick(round_id, league['alice'])['team'] == 'ARS'

    def test_locked_round_with_picks_refuses_edit(self, service, league, round_with_pick):
        _, fixtures = round_with_pick

        with pytest.raises(RoundLocked):
            service.update_fixture(
                league['organiser'], fixtures[0], 'TOT', 'CHE', lock_at(), now=lock_at()
            )
        with pytest.raises(RoundLocked):
            service.remove_fixture(league['organiser'], fixtures[1], now=lock_at())

    def test_locked_round_without_picks_allows_edit(self, service, seed, league):
        _, fixtures = seed.round(league['competition']['id'], [('ARS', 'CHE'), ('LIV', 'MCI')])

        result = service.remove_fixture(league['organiser'], fixtures[1], now=lock_at())
        assert result['picks_removed'] == 0

    def test_admin_override_is_audited(self, service, db_fixture, seed, league, round_with_pick):
        _, fixtures = round_with_pick
        admin = seed.user('Root', is_admin=True)
        db_fixture.add_player(league['competition']['id'], admin, 0)
        db_fixture.set_permissions(league['competition']['id'], admin, {'manage_fixtures': True})

        result = service.remove_fixture(admin, fixtures[0], override=True, now=lock_at())

        assert result['picks_removed'] == 1
        actions = [a['action'] for a in db_fixture.get_audit_log(league['competition']['id'])]
        assert 'Fixture Override' in actions

    def test_override_requires_admin(self, service, league, round_with_pick):
        _, fixtures = round_with_pick

        with pytest.raises(Unauthorized):
            service.remove_fixture(league['organiser'], fixtures[0], override=True, now=lock_at())

    def test_cannot_remove_last_fixture(self, service, seed, league):
        _, fixtures = seed.round(league['competition']['id'], [('ARS', 'CHE')])

        with pytest.raises(ValidationError):
            service.remove_fixture(league['organiser'], fixtures[0], now=NOW)

    def test_fixture_with_result_is_frozen(self, service, db_fixture, league, round_with_pick):
        _, fixtures = round_with_pick
        db_fixture.set_fixture_result(fixtures[1], 1, 0, 'LIV')

        with pytest.raises(Conflict):
            service.update_fixture(league['organiser'], fixtures[1], 'LIV', 'MCI', lock_at(), now=NOW)

    def test_update_cannot_clash_with_other_fixture(self, service, league, round_with_pick):
        _, fixtures = round_with_pick

        with pytest.raises(ValidationError):
            service.update_fixture(league['organiser'], fixtures[0], 'LIV', 'CHE', lock_at(), now=NOW)


class TestGetRoundState:
    """Tests for RoundService.get_round_state."""

    def test_members_see_state(self, db_fixture, cache, seed, league):
        service = RoundService(db_fixture, cache)
        round_id, _ = seed.round(league['competition']['id'], [('ARS', 'CHE')])

        assert service.get_round_state(league['alice'], round_id, now=NOW)['state'] == 'OPEN'
        assert service.get_round_state(league['organiser'], round_id, now=lock_at())['state'] == 'LOCKED'

    def test_outsider_refused(self, db_fixture, cache, seed, league):
        service = RoundService(db_fixture, cache)
        outsider = seed.user('Eve')
        round_id, _ = seed.round(league['competition']['id'], [('ARS', 'CHE')])

        with pytest.raises(Unauthorized):
            service.get_round_state(outsider, round_id, now=NOW)
