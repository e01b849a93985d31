"""
Error taxonomy for the settlement and leaderboard engine.

Budget exhaustion during a settlement batch is deliberately absent: a batch
that runs out of time reports ``budget_exhausted`` and ends cleanly.
"""


class PickemError(Exception):
    """Base class for engine errors"""


class ValidationError(PickemError):
    """Rejected input, e.g. a malformed custom pick combination"""

    def __init__(self, message, details=None):
        super().__init__(message)
        self.details = details or []


class ConflictError(PickemError):
    """Ambiguous or contradictory state resolved by a default rule"""


class PickLockedError(PickemError):
    """A pick mutation arrived after the game's lock deadline"""


class SettlementError(PickemError):
    """A pick could not be settled against its game"""


class TransientUpstreamError(PickemError):
    """The score feed was unreachable, timed out or refused the request"""


class PersistenceError(PickemError):
    """An individual write failed"""
