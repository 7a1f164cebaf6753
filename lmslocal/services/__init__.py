"""Services for the LMSLocal competition server."""

from lmslocal.services.cache import CacheService, get_cache_service
from lmslocal.services.competitions import CompetitionService
from lmslocal.services.exceptions import LMSError
from lmslocal.services.permissions import check_permission, get_grant
from lmslocal.services.picks import PickService
from lmslocal.services.results import ResultService, process_round_outcomes
from lmslocal.services.rounds import RoundService
from lmslocal.services.round_state import RoundStateMachine
from lmslocal.services.standings import StandingsService

__all__ = [
    "CacheService",
    "get_cache_service",
    "CompetitionService",
    "LMSError",
    "check_permission",
    "get_grant",
    "PickService",
    "ResultService",
    "process_round_outcomes",
    "RoundService",
    "RoundStateMachine",
    "StandingsService",
]
