"""
Pick submission deadlines.

Every game locks on its league-timezone calendar:

- Thursday and Friday games lock at 18:00 on their own day.
- Saturday through Wednesday games lock at 11:00 on the Saturday that anchors
  their week: Saturday itself, the Saturday before a Sunday/Monday/Tuesday
  game, the Saturday after a Wednesday game.

An admin override replaces the computed deadline outright.
"""

from datetime import datetime, timedelta
from typing import NamedTuple, Optional

from pigskin.exceptions import PickLockedError
from pigskin.utils.timezone_utils import (
    convert_to_league_timezone,
    ensure_utc,
    get_league_timezone,
    get_utc_time,
    localize_civil_time,
)

THURSDAY, FRIDAY = 3, 4

WEEKNIGHT_LOCK_HOUR = 18
SATURDAY_LOCK_HOUR = 11

# Days from kickoff to the anchor Saturday, keyed by weekday (Monday = 0)
ANCHOR_SATURDAY_OFFSETS = {
    0: -2,  # Monday
    1: -3,  # Tuesday
    2: 3,  # Wednesday
    3: 2,  # Thursday
    4: 1,  # Friday
    5: 0,  # Saturday
    6: -1,  # Sunday
}

UNUSUAL_LOCK_TOLERANCE = timedelta(seconds=60)


class LockTime(NamedTuple):
    lock_time: datetime
    default_lock_time: datetime
    baseline_lock_time: datetime
    is_custom: bool
    is_unusual: bool


def anchor_saturday(kickoff_time, tz=None):
    """Return the league calendar date of the Saturday anchoring a game's week"""
    local_kickoff = convert_to_league_timezone(kickoff_time, tz)
    return local_kickoff.date() + timedelta(
        days=ANCHOR_SATURDAY_OFFSETS[local_kickoff.weekday()]
    )


def calculate_default_lock_time(kickoff_time, tz=None):
    """Compute the deadline for a game with no override (aware UTC)"""
    league_tz = tz or get_league_timezone()
    local_kickoff = convert_to_league_timezone(kickoff_time, league_tz)

    if local_kickoff.weekday() in (THURSDAY, FRIDAY):
        return localize_civil_time(local_kickoff.date(), WEEKNIGHT_LOCK_HOUR, tz=league_tz)

    return localize_civil_time(
        anchor_saturday(kickoff_time, league_tz), SATURDAY_LOCK_HOUR, tz=league_tz
    )


def calculate_lock_time(kickoff_time, custom_lock_time=None, tz=None) -> LockTime:
    """Compute the effective deadline for a game.

    ``is_unusual`` flags deadlines more than a minute away from the plain
    Saturday 11:00 baseline so callers can warn participants; it has no
    bearing on settlement.
    """
    league_tz = tz or get_league_timezone()

    default_lock = calculate_default_lock_time(kickoff_time, league_tz)
    baseline = localize_civil_time(
        anchor_saturday(kickoff_time, league_tz), SATURDAY_LOCK_HOUR, tz=league_tz
    )

    is_custom = custom_lock_time is not None
    effective = ensure_utc(custom_lock_time) if is_custom else default_lock

    return LockTime(
        lock_time=effective,
        default_lock_time=default_lock,
        baseline_lock_time=baseline,
        is_custom=is_custom,
        is_unusual=abs(effective - baseline) > UNUSUAL_LOCK_TOLERANCE,
    )


def is_game_locked(game, now: Optional[datetime] = None) -> bool:
    """A game is locked once now is strictly past its effective deadline"""
    now = ensure_utc(now) if now is not None else get_utc_time()
    return now > calculate_lock_time(game.kickoff_time, game.custom_lock_time).lock_time


def ensure_pick_window_open(game, now=None):
    """Raise PickLockedError when picks for ``game`` may no longer change"""
    if is_game_locked(game, now):
        lock = calculate_lock_time(game.kickoff_time, game.custom_lock_time)
        raise PickLockedError(
            f"Picks for {game.away_team} @ {game.home_team} locked at "
            f"{lock.lock_time.isoformat()}"
        )


def was_submitted_after_lock(game, submitted_at):
    """Check whether a stored submission landed past the game's deadline"""
    if submitted_at is None:
        return False
    return is_game_locked(game, submitted_at)
