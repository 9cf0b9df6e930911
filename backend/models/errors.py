"""
Engine error taxonomy.

Every engine operation validates against freshly read state before writing, so
any of these errors means nothing was persisted for the rejected command.
"""
from typing import List, Optional


class GameError(Exception):
    code = "GAME_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(GameError):
    """Referenced game, team, player or word does not exist."""
    code = "NOT_FOUND"


class NotOwner(GameError):
    """Mutation attempted by an actor that does not own the target."""
    code = "NOT_OWNER"


class QuotaExceeded(GameError):
    code = "QUOTA_EXCEEDED"


class InvalidTransition(GameError):
    """The game is not in a state where the requested transition is legal."""
    code = "INVALID_TRANSITION"


class InvalidInput(GameError):
    code = "INVALID_INPUT"


class PreconditionFailed(GameError):
    """Start verification failed. Carries every violated rule, not just the first."""
    code = "PRECONDITION_FAILED"

    def __init__(self, errors: List[str], message: Optional[str] = None):
        super().__init__(message or "; ".join(errors))
        self.errors = list(errors)


class StoreNotImplemented(NotImplementedError):
    """Raised by a store adapter for an operation its backend cannot serve."""
    code = "NOT_IMPLEMENTED"
