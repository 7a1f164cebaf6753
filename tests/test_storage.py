"""Tests for storage module."""

import pytest
import os
import shutil
from unittest.mock import patch

from lmslocal.storage import get_database, reset_database, DatabaseInterface
from lmslocal.storage.exceptions import ConfigurationError, QueryError

from conftest import lock_at


class TestFactory:
    """Tests for factory function."""

    def setup_method(self):
        """Reset singleton before each test."""
        reset_database()

    def teardown_method(self):
        """Clean up after each test."""
        reset_database()
        for test_dir in ['cache/test_factory', 'cache/test_singleton']:
            if os.path.exists(test_dir):
                try:
                    shutil.rmtree(test_dir)
                except PermissionError:
                    pass  # Windows file locking, ignore

    def test_default_is_sqlite(self):
        """Default DB_TYPE should be sqlite."""
        with patch.dict(os.environ, {'DB_TYPE': 'sqlite', 'DATA_DIR': 'cache/test_factory'}, clear=False):
            reset_database()
            db = get_database()
            assert db.__class__.__name__ == 'SQLiteDatabase'
            assert isinstance(db, DatabaseInterface)
            reset_database()  # Close before cleanup

    def test_invalid_db_type_raises(self):
        """Invalid DB_TYPE raises ConfigurationError."""
        with patch.dict(os.environ, {'DB_TYPE': 'postgres'}, clear=False):
            reset_database()
            with pytest.raises(ConfigurationError):
                get_database()

    def test_singleton_returns_same_instance(self):
        """Factory returns same instance on subsequent calls."""
        with patch.dict(os.environ, {'DB_TYPE': 'sqlite', 'DATA_DIR': 'cache/test_singleton'}, clear=False):
            reset_database()
            db1 = get_database()
            db2 = get_database()
            assert db1 is db2
            reset_database()  # Close before cleanup


class TestSQLiteDatabase:
    """Tests for the SQLite implementation."""

    def test_health_check(self, db_fixture):
        assert db_fixture.health_check() is True

    def test_initialize_is_idempotent(self, db_fixture):
        db_fixture.initialize()
        assert len(db_fixture.get_active_teams()) == 20

    def test_user_lookup_by_token(self, db_fixture):
        user_id = db_fixture.create_user('Dana', 'dana@example.com', 'secret-token')

        user = db_fixture.get_user_by_token('secret-token')
        assert user['id'] == user_id
        assert user['is_admin'] == 0
        assert db_fixture.get_user_by_token('wrong') is None

    def test_save_teams_upserts(self, db_fixture):
        db_fixture.save_teams([{'short_name': 'ARS', 'name': 'The Arsenal', 'is_active': False}])

        codes = {t['short_name'] for t in db_fixture.get_active_teams()}
        assert 'ARS' not in codes
        assert len(codes) == 19

    def test_duplicate_player_raises(self, db_fixture, seed):
        organiser = seed.user('Olivia')
        player = seed.user('Alice')
        competition = seed.competition(organiser)
        seed.player(competition['id'], player)

        with pytest.raises(QueryError):
            db_fixture.add_player(competition['id'], player, 0)

    def test_update_competition_columns(self, db_fixture, seed):
        competition = seed.competition(seed.user('Olivia'))

        db_fixture.update_competition(competition['id'], {'name': 'Renamed', 'no_team_twice': False})

        row = db_fixture.get_competition(competition['id'])
        assert (row['name'], row['no_team_twice']) == ('Renamed', 0)
        with pytest.raises(QueryError):
            db_fixture.update_competition(competition['id'], {'status': 'COMPLETE'})

    def test_remove_player_keeps_others(self, db_fixture, seed):
        organiser = seed.user('Olivia')
        alice = seed.user('Alice')
        bob = seed.user('Bob')
        competition = seed.competition(organiser)
        seed.player(competition['id'], alice)
        seed.player(competition['id'], bob)
        round_id, fixtures = seed.round(competition['id'], [('ARS', 'CHE')])
        db_fixture.create_pick(round_id, competition['id'], alice, 'ARS', fixtures[0])
        db_fixture.create_pick(round_id, competition['id'], bob, 'CHE', fixtures[0])

        db_fixture.remove_player(competition['id'], alice)

        assert [p['user_id'] for p in db_fixture.get_players(competition['id'])] == [bob]
        assert [p['user_id'] for p in db_fixture.get_picks(round_id)] == [bob]

    def test_duplicate_pick_raises(self, db_fixture, seed):
        organiser = seed.user('Olivia')
        player = seed.user('Alice')
        competition = seed.competition(organiser)
        seed.player(competition['id'], player)
        round_id, fixtures = seed.round(competition['id'], [('ARS', 'CHE')])

        db_fixture.create_pick(round_id, competition['id'], player, 'ARS', fixtures[0])
        with pytest.raises(QueryError):
            db_fixture.create_pick(round_id, competition['id'], player, 'CHE', fixtures[0])

    def test_used_teams_set(self, db_fixture, seed):
        organiser = seed.user('Olivia')
        competition = seed.competition(organiser)

        db_fixture.add_used_team(competition['id'], organiser, 'ARS')
        db_fixture.add_used_team(competition['id'], organiser, 'ARS')
        db_fixture.add_used_team(competition['id'], organiser, 'CHE')
        assert db_fixture.get_used_teams(competition['id'], organiser) == {'ARS', 'CHE'}

        db_fixture.remove_used_team(competition['id'], organiser, 'ARS')
        assert db_fixture.get_used_teams(competition['id'], organiser) == {'CHE'}

        db_fixture.clear_used_teams(competition['id'], organiser)
        assert db_fixture.get_used_teams(competition['id'], organiser) == set()

    def test_transaction_rolls_back_on_error(self, db_fixture, seed):
        organiser = seed.user('Olivia')
        competition = seed.competition(organiser)

        with pytest.raises(RuntimeError):
            with db_fixture.transaction(immediate=True):
                db_fixture.update_competition_status(competition['id'], 'active')
                raise RuntimeError("boom")

        assert db_fixture.get_competition(competition['id'])['status'] == 'setup'

    def test_nested_transaction_commits_once(self, db_fixture, seed):
        organiser = seed.user('Olivia')
        competition = seed.competition(organiser)

        with db_fixture.transaction(immediate=True):
            with db_fixture.transaction():
                db_fixture.update_competition_status(competition['id'], 'active')
            db_fixture.add_audit(competition['id'], organiser, 'Test', 'nested')

        assert db_fixture.get_competition(competition['id'])['status'] == 'active'
        assert db_fixture.get_audit_log(competition['id'])[-1]['action'] == 'Test'

    def test_deleting_fixture_cascades_to_picks(self, db_fixture, seed):
        organiser = seed.user('Olivia')
        player = seed.user('Alice')
        competition = seed.competition(organiser)
        seed.player(competition['id'], player)
        round_id, fixtures = seed.round(competition['id'], [('ARS', 'CHE'), ('LIV', 'MCI')])
        db_fixture.create_pick(round_id, competition['id'], player, 'ARS', fixtures[0])

        db_fixture.delete_fixture(fixtures[0])

        assert db_fixture.get_pick(round_id, player) is None
        assert len(db_fixture.get_fixtures(round_id)) == 1

    def test_reset_competition(self, db_fixture, seed):
        organiser = seed.user('Olivia')
        player = seed.user('Alice')
        competition = seed.competition(organiser, lives=2)
        seed.player(competition['id'], player, lives=2)
        round_id, fixtures = seed.round(competition['id'], [('ARS', 'CHE')])
        db_fixture.create_pick(round_id, competition['id'], player, 'ARS', fixtures[0])
        db_fixture.add_used_team(competition['id'], player, 'ARS')
        db_fixture.update_player(competition['id'], player, lives_remaining=0, status='out')

        reset = db_fixture.reset_competition(competition['id'], '9999')

        assert reset == 1
        row = db_fixture.get_competition(competition['id'])
        assert row['status'] == 'setup'
        assert row['invite_code'] == '9999'
        assert db_fixture.get_rounds(competition['id']) == []
        assert db_fixture.get_used_teams(competition['id'], player) == set()
        restored = db_fixture.get_player(competition['id'], player)
        assert restored['status'] == 'active'
        assert restored['lives_remaining'] == 2

    def test_rounds_locking_between_skips_reminded(self, db_fixture, seed):
        organiser = seed.user('Olivia')
        competition = seed.competition(organiser)
        round_id, _ = seed.round(competition['id'], [('ARS', 'CHE')])

        window = (lock_at().replace(minute=0).isoformat(), '2099-01-01T00:00:00+00:00')
        assert [r['id'] for r in db_fixture.get_rounds_locking_between(*window)] == [round_id]

        db_fixture.set_reminder_sent(round_id, '2026-03-07T12:00:00+00:00')
        assert db_fixture.get_rounds_locking_between(*window) == []

    def test_permission_row_for_non_member(self, db_fixture, seed):
        organiser = seed.user('Olivia')
        outsider = seed.user('Eve')
        competition = seed.competition(organiser)

        row = db_fixture.get_permission_row(competition['id'], outsider)
        assert row['organiser_id'] == organiser
        assert row['manage_results'] is None
        assert db_fixture.get_permission_row(9999, outsider) is None

    def test_set_permissions_rejects_unknown_column(self, db_fixture, seed):
        organiser = seed.user('Olivia')
        competition = seed.competition(organiser)

        with pytest.raises(QueryError):
            db_fixture.set_permissions(competition['id'], organiser, {'is_admin': True})
