"""Lock deadline rules across the league week."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from pigskin.exceptions import PickLockedError
from pigskin.utils.lock_time import (
    anchor_saturday,
    calculate_lock_time,
    ensure_pick_window_open,
    is_game_locked,
    was_submitted_after_lock,
)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "kickoff, expected_lock",
    [
        # Thursday 19:00 CDT -> 18:00 CDT the same day
        (datetime(2025, 9, 5, 0, 0), utc(2025, 9, 4, 23, 0)),
        # Friday 19:00 CDT -> 18:00 CDT the same day
        (datetime(2025, 9, 6, 0, 0), utc(2025, 9, 5, 23, 0)),
        # Saturday 14:00 CDT -> 11:00 CDT the same day
        (datetime(2025, 9, 6, 19, 0), utc(2025, 9, 6, 16, 0)),
        # Sunday 12:00 CDT -> the Saturday before
        (datetime(2025, 9, 7, 17, 0), utc(2025, 9, 6, 16, 0)),
        # Monday 19:00 CDT -> two days back
        (datetime(2025, 9, 9, 0, 0), utc(2025, 9, 6, 16, 0)),
        # Tuesday 18:00 CDT -> three days back
        (datetime(2025, 9, 9, 23, 0), utc(2025, 9, 6, 16, 0)),
        # Wednesday 18:00 CDT -> the Saturday after
        (datetime(2025, 9, 3, 23, 0), utc(2025, 9, 6, 16, 0)),
    ],
)
def test_default_lock_by_weekday(kickoff, expected_lock):
    lock = calculate_lock_time(kickoff)

    assert lock.lock_time == expected_lock
    assert lock.default_lock_time == expected_lock
    assert lock.is_custom is False


def test_sunday_after_dst_change_locks_on_saturday_wall_clock():
    # Sunday 2025-11-02 12:00 CST; the Saturday before is still on CDT
    lock = calculate_lock_time(datetime(2025, 11, 2, 18, 0))

    assert lock.lock_time == utc(2025, 11, 1, 16, 0)


def test_saturday_after_dst_change_uses_standard_time():
    lock = calculate_lock_time(datetime(2025, 11, 8, 20, 0))

    assert lock.lock_time == utc(2025, 11, 8, 17, 0)


def test_anchor_saturday_for_wednesday_is_following_saturday():
    assert anchor_saturday(datetime(2025, 9, 3, 23, 0)).isoformat() == "2025-09-06"


def test_custom_lock_replaces_default():
    override = datetime(2025, 9, 6, 12, 0)
    lock = calculate_lock_time(datetime(2025, 9, 6, 19, 0), custom_lock_time=override)

    assert lock.is_custom is True
    assert lock.lock_time == utc(2025, 9, 6, 12, 0)
    assert lock.default_lock_time == utc(2025, 9, 6, 16, 0)
    assert lock.is_unusual is True


def test_custom_lock_within_a_minute_of_baseline_is_not_unusual():
    override = datetime(2025, 9, 6, 16, 0, 30)
    lock = calculate_lock_time(datetime(2025, 9, 6, 19, 0), custom_lock_time=override)

    assert lock.is_custom is True
    assert lock.is_unusual is False


def test_weeknight_default_is_flagged_unusual():
    thursday = calculate_lock_time(datetime(2025, 9, 5, 0, 0))
    saturday = calculate_lock_time(datetime(2025, 9, 6, 19, 0))

    assert thursday.baseline_lock_time == utc(2025, 9, 6, 16, 0)
    assert thursday.is_unusual is True
    assert saturday.is_unusual is False


def _game(kickoff, custom_lock_time=None):
    return SimpleNamespace(
        kickoff_time=kickoff,
        custom_lock_time=custom_lock_time,
        home_team="Texas",
        away_team="Oklahoma",
    )


def test_game_locks_strictly_after_deadline():
    game = _game(datetime(2025, 9, 6, 19, 0))

    assert is_game_locked(game, utc(2025, 9, 6, 15, 59)) is False
    assert is_game_locked(game, utc(2025, 9, 6, 16, 0)) is False
    assert is_game_locked(game, utc(2025, 9, 6, 16, 0, 1)) is True


def test_naive_now_is_treated_as_utc():
    game = _game(datetime(2025, 9, 6, 19, 0))

    assert is_game_locked(game, datetime(2025, 9, 6, 17, 0)) is True


def test_ensure_pick_window_open_raises_after_lock():
    game = _game(datetime(2025, 9, 6, 19, 0))

    ensure_pick_window_open(game, utc(2025, 9, 6, 10, 0))
    with pytest.raises(PickLockedError):
        ensure_pick_window_open(game, utc(2025, 9, 6, 18, 0))


def test_was_submitted_after_lock():
    game = _game(datetime(2025, 9, 6, 19, 0))

    assert was_submitted_after_lock(game, datetime(2025, 9, 6, 15, 0)) is False
    assert was_submitted_after_lock(game, datetime(2025, 9, 6, 17, 0)) is True
    assert was_submitted_after_lock(game, None) is False
