"""Tests for the permission checker and delegate management."""

import pytest

from lmslocal.models import Capability
from lmslocal.services.competitions import CompetitionService
from lmslocal.services.exceptions import Unauthorized, ValidationError, NotFound
from lmslocal.services.permissions import check_permission, get_grant, is_main_organiser


class TestCheckPermission:
    """Tests for check_permission."""

    def test_organiser_has_every_capability(self, db_fixture, league):
        for capability in Capability:
            result = check_permission(
                db_fixture, league['organiser'], league['competition']['id'], capability
            )
            assert result.authorized is True
            assert result.is_organiser is True

    def test_player_without_flags_is_refused(self, db_fixture, league):
        result = check_permission(db_fixture, league['alice'], league['competition']['id'], 'results')

        assert result.authorized is False
        assert result.is_organiser is False

    def test_delegate_holds_only_granted_capability(self, db_fixture, league):
        competition_id = league['competition']['id']
        db_fixture.set_permissions(competition_id, league['alice'], {'manage_results': True})

        assert check_permission(db_fixture, league['alice'], competition_id, Capability.RESULTS).authorized
        assert not check_permission(db_fixture, league['alice'], competition_id, Capability.FIXTURES).authorized

        delegate = check_permission(db_fixture, league['alice'], competition_id, Capability.RESULTS)
        assert delegate.is_organiser is False

    def test_missing_competition_fails_closed(self, db_fixture, league):
        result = check_permission(db_fixture, league['organiser'], 9999, Capability.RESULTS)

        assert result.authorized is False
        assert result.is_organiser is False

    def test_unknown_capability_raises(self, db_fixture, league):
        with pytest.raises(ValueError):
            check_permission(db_fixture, league['organiser'], league['competition']['id'], 'billing')

    def test_grant_lists_capabilities(self, db_fixture, league):
        competition_id = league['competition']['id']
        db_fixture.set_permissions(
            competition_id, league['bob'], {'manage_players': True, 'manage_promote': True}
        )

        grant = get_grant(db_fixture, league['bob'], competition_id)
        assert grant.capabilities == frozenset({Capability.PLAYERS, Capability.PROMOTE})
        assert not is_main_organiser(db_fixture, league['bob'], competition_id)
        assert is_main_organiser(db_fixture, league['organiser'], competition_id)


class TestUpdatePlayerPermissions:
    """Tests for delegating capabilities."""

    @pytest.fixture
    def service(self, db_fixture, cache):
        return CompetitionService(db_fixture, cache)

    def test_organiser_grants_flags(self, service, league):
        flags = service.update_player_permissions(
            league['organiser'],
            league['competition']['id'],
            league['alice'],
            {'manage_results': True, 'manage_fixtures': False, 'manage_players': True},
        )

        assert flags == {
            'manage_results': True,
            'manage_fixtures': False,
            'manage_players': True,
            'manage_promote': False,
        }

    def test_delegate_cannot_grant(self, service, db_fixture, league):
        competition_id = league['competition']['id']
        db_fixture.set_permissions(competition_id, league['alice'], {'manage_players': True})

        with pytest.raises(Unauthorized):
            service.update_player_permissions(
                league['alice'], competition_id, league['bob'], {'manage_results': True}
            )

    def test_cannot_change_own_flags(self, service, db_fixture, league):
        competition_id = league['competition']['id']
        db_fixture.add_player(competition_id, league['organiser'], 0)

        with pytest.raises(ValidationError):
            service.update_player_permissions(
                league['organiser'], competition_id, league['organiser'], {'manage_results': True}
            )

    def test_target_must_be_member(self, service, seed, league):
        outsider = seed.user('Eve')

        with pytest.raises(NotFound):
            service.update_player_permissions(
                league['organiser'], league['competition']['id'], outsider, {'manage_results': True}
            )

    def test_unknown_flag_rejected(self, service, league):
        with pytest.raises(ValidationError):
            service.update_player_permissions(
                league['organiser'], league['competition']['id'], league['alice'], {'is_admin': True}
            )
