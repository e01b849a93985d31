"""
Game lifecycle tracking

Applies score and status reports to games. A game only moves forward
(scheduled -> in_progress -> completed); anything that would move it back is
dropped and reported as a conflict. Any change to score or status puts the
game on the settlement queue.
"""

import logging
from typing import NamedTuple, Optional

from pigskin.exceptions import ConflictError
from pigskin.utils.score_feed import normalize_team_name
from pigskin.utils.timezone_utils import get_utc_time, to_naive_utc

logger = logging.getLogger(__name__)

STATUS_RANK = {"scheduled": 0, "in_progress": 1, "completed": 2}


class ScoreUpdate(NamedTuple):
    changed: bool
    conflict: Optional[str] = None


def _conflict(game, message):
    error = ConflictError(f"Game {game.id} ({game.away_team} @ {game.home_team}): {message}")
    logger.warning(str(error))
    return ScoreUpdate(changed=False, conflict=str(error))


def apply_score_update(
    game, home_score, away_score, status, period=None, clock=None, now=None
) -> ScoreUpdate:
    """Apply one score report to a game.

    Returns ScoreUpdate(changed, conflict). ``changed`` means score or status
    differed from what was stored and the game was queued for settlement.
    Period and clock are display-only and never queue the game.
    """
    if status not in STATUS_RANK:
        return _conflict(game, f"unknown status {status!r}")

    current = game.status or "scheduled"
    if STATUS_RANK[status] < STATUS_RANK[current]:
        return _conflict(game, f"ignored backward transition {current} -> {status}")

    if status == "scheduled":
        home_score = away_score = None
    elif home_score is None or away_score is None:
        return _conflict(game, f"status {status} reported without both scores")

    changed = (
        game.status != status
        or game.home_score != home_score
        or game.away_score != away_score
    )

    if changed:
        game.status = status
        game.home_score = home_score
        game.away_score = away_score
        game.needs_settlement = True
        game.settlement_requested_at = to_naive_utc(now or get_utc_time())
        logger.info(
            f"Game {game.id} now {status} {game.away_team} {away_score} @ "
            f"{game.home_team} {home_score}"
        )

    if status == "scheduled":
        game.game_period = None
        game.game_clock = None
    else:
        game.game_period = period
        game.game_clock = clock

    return ScoreUpdate(changed=changed)


def _name_key(home_team, away_team):
    return (normalize_team_name(home_team), normalize_team_name(away_team))


def apply_feed_updates(games, feed_games, now=None):
    """Match feed rows to games and apply them.

    Rows are matched by external id first, then by normalized home/away names.
    Returns (changed_games, conflicts).
    """
    by_external_id = {g.external_id: g for g in games if g.external_id}
    by_names = {_name_key(g.home_team, g.away_team): g for g in games}

    changed_games = []
    conflicts = []
    unmatched = 0

    for row in feed_games:
        game = by_external_id.get(row.external_id) if row.external_id else None
        if game is None:
            game = by_names.get(_name_key(row.home_team, row.away_team))
        if game is None:
            unmatched += 1
            continue

        update = apply_score_update(
            game,
            row.home_score,
            row.away_score,
            row.status,
            period=row.period,
            clock=row.clock,
            now=now,
        )
        if update.conflict:
            conflicts.append(update.conflict)
        elif update.changed:
            changed_games.append(game)

    if unmatched:
        logger.debug(f"{unmatched} feed rows did not match a tracked game")

    return changed_games, conflicts


def mark_for_settlement(games, now=None):
    """Queue games for settlement regardless of score changes"""
    stamp = to_naive_utc(now or get_utc_time())
    for game in games:
        game.needs_settlement = True
        game.settlement_requested_at = stamp
    return len(games)
