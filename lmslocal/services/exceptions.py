"""
Domain exceptions.

Each exception carries the return_code the HTTP layer puts in its
envelope. Services raise them; route handlers turn them into responses.
"""


class LMSError(Exception):
    """Base class for every rule violation reported to the caller."""

    return_code = "INTERNAL"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LMSError):
    """Malformed or inconsistent input."""

    return_code = "VALIDATION_ERROR"


class Unauthorized(LMSError):
    """Caller failed authentication or a permission check."""

    return_code = "UNAUTHORIZED"


class NotFound(LMSError):
    """Competition, round, fixture or player does not exist."""

    return_code = "NOT_FOUND"


class RoundLocked(LMSError):
    """The round's lock time has passed."""

    return_code = "ROUND_LOCKED"


class DuplicatePick(LMSError):
    """The player already picked in this round."""

    return_code = "DUPLICATE_PICK"


class TeamAlreadyUsed(LMSError):
    """The team is in the player's used-teams set."""

    return_code = "TEAM_ALREADY_USED"


class Conflict(LMSError):
    """The operation clashes with the current state."""

    return_code = "CONFLICT"


class InvalidStateTransition(Conflict):
    """A round was asked to move to a state it cannot reach."""
