from pigskin import db  # noqa: F401 - imported for model imports

from .admin_action import AdminAction
from .anonymous_pick import AnonymousPick
from .game import Game
from .leaderboard import LeaderboardEntry, LeaderboardRefresh
from .pick import Pick
from .pick_source import (
    CustomPickCombination,
    CustomPickCombinationMember,
    PickSourcePreference,
)
from .user import User

__all__ = [
    "User",
    "Game",
    "Pick",
    "AnonymousPick",
    "PickSourcePreference",
    "CustomPickCombination",
    "CustomPickCombinationMember",
    "LeaderboardEntry",
    "LeaderboardRefresh",
    "AdminAction",
]
