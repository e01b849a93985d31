"""
Pick Processor

Drains the settlement queue: every game flagged ``needs_settlement`` has all
of its picks (authenticated and anonymous, active or not) re-settled from the
game's current score. Work is bounded per invocation by a game count and a
time budget; whatever is left stays flagged for the next run.
"""

import logging
import time
from typing import List, NamedTuple, Set, Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from pigskin import db
from pigskin.exceptions import PersistenceError, SettlementError
from pigskin.models import AnonymousPick, Game, LeaderboardRefresh, Pick
from pigskin.services.pick_source import pick_source_resolver
from pigskin.utils.lock_time import was_submitted_after_lock
from pigskin.utils.logging_config import ContextualLogger
from pigskin.utils.scoring import (
    LOCK_RULE_DOUBLE,
    calculate_ats_outcome,
    settle_pick_for_game,
)
from pigskin.utils.timezone_utils import get_utc_time, to_naive_utc

logger = logging.getLogger(__name__)

LATE_PICK_WARNING = "Submitted after the lock deadline"


class ProcessingReport(NamedTuple):
    games_processed: int
    picks_updated: int
    anonymous_picks_updated: int
    errors: List[dict]
    budget_exhausted: bool
    remaining_games: int
    weeks_flagged: Set[Tuple[int, int]]

    def to_dict(self):
        return {
            "games_processed": self.games_processed,
            "picks_updated": self.picks_updated,
            "anonymous_picks_updated": self.anonymous_picks_updated,
            "errors": self.errors,
            "budget_exhausted": self.budget_exhausted,
            "remaining_games": self.remaining_games,
            "weeks_flagged": [list(w) for w in sorted(self.weeks_flagged)],
        }


def _error_entry(game, pick, error):
    return {
        "game_id": game.id,
        "source": pick.source if pick is not None else None,
        "pick_id": pick.id if pick is not None else None,
        "error_type": type(error).__name__,
        "message": str(error),
    }


class PickProcessor:
    def __init__(self, resolver=None, clock=None, lock_rule=None):
        self.resolver = resolver or pick_source_resolver
        self.clock = clock or time.monotonic
        self.lock_rule = lock_rule

    def _config(self, key, default=None):
        return current_app.config.get(key, default)

    def pending_query(self, season=None, week=None):
        """Games waiting for settlement, oldest request first"""
        query = Game.query.filter_by(needs_settlement=True)
        if season is not None:
            query = query.filter_by(season=season)
        if week is not None:
            query = query.filter_by(week=week)
        return query.order_by(Game.settlement_requested_at, Game.id)

    def process_changed_games(
        self, season=None, week=None, max_games=None, time_budget=None, now=None
    ) -> ProcessingReport:
        if max_games is None:
            max_games = self._config("SETTLEMENT_MAX_GAMES_PER_RUN", 25)
        if time_budget is None:
            time_budget = self._config("SETTLEMENT_TIME_BUDGET_SECONDS", 45)
        lock_rule = self.lock_rule or self._config("LOCK_SCORING_RULE", LOCK_RULE_DOUBLE)
        now = now or get_utc_time()

        query = self.pending_query(season, week)
        pending_count = query.count()
        games = query.limit(max_games).all() if max_games else query.all()

        started = self.clock()
        games_processed = picks_updated = anonymous_updated = 0
        errors = []
        weeks_flagged = set()
        stopped_early = bool(max_games) and pending_count > len(games)

        for index, game in enumerate(games):
            if index and time_budget and self.clock() - started >= time_budget:
                logger.info(
                    f"Settlement time budget of {time_budget}s reached after {index} games"
                )
                stopped_early = True
                break

            game_errors = []
            try:
                updated, anon_updated = self._process_game(game, now, lock_rule, game_errors)
                db.session.commit()
            except Exception as e:
                db.session.rollback()
                logger.error(f"Settlement failed for game {game.id}: {e}", exc_info=True)
                errors.append(_error_entry(game, None, e))
                continue

            errors.extend(game_errors)
            games_processed += 1
            picks_updated += updated
            anonymous_updated += anon_updated
            weeks_flagged.add((game.season, game.week))

        remaining = self.pending_query(season, week).count()

        if games_processed or errors:
            logger.info(
                f"Settlement batch: {games_processed} games, {picks_updated} picks, "
                f"{anonymous_updated} anonymous picks updated, {len(errors)} errors, "
                f"{remaining} games remaining"
            )

        return ProcessingReport(
            games_processed=games_processed,
            picks_updated=picks_updated,
            anonymous_picks_updated=anonymous_updated,
            errors=errors,
            budget_exhausted=stopped_early and remaining > 0,
            remaining_games=remaining,
            weeks_flagged=weeks_flagged,
        )

    def _process_game(self, game, now, lock_rule, errors):
        """Settle every pick for one game; the caller commits"""
        stamp = to_naive_utc(now)
        game_log = ContextualLogger(
            __name__, {"game_id": game.id, "season": game.season, "week": game.week}
        )

        if game.is_final:
            # Raises for a completed game without scores; the game stays flagged
            outcome = calculate_ats_outcome(
                game.home_team, game.away_team, game.home_score, game.away_score, game.spread
            )
            game.ats_winner = outcome.winner
            game.margin_bonus = outcome.margin_bonus
        else:
            game.ats_winner = None
            game.margin_bonus = None

        picks = game.picks.order_by(Pick.id).all()
        anonymous_picks = game.anonymous_picks.order_by(AnonymousPick.id).all()

        active_sets = {}
        updated = anon_updated = 0

        for pick in picks + anonymous_picks:
            owner_id = pick.owner_id
            active_set = None
            if owner_id is not None:
                if owner_id not in active_sets:
                    active_sets[owner_id] = self.resolver.resolve(owner_id, game.season, game.week)
                active_set = active_sets[owner_id]

            try:
                changed = self._settle_pick(pick, game, active_set, lock_rule, stamp, errors)
            except SQLAlchemyError as e:
                error = PersistenceError(f"Could not save {pick.source} pick {pick.id}: {e}")
                game_log.error(str(error))
                errors.append(_error_entry(game, pick, error))
                continue

            if changed:
                if pick.source == "authenticated":
                    updated += 1
                else:
                    anon_updated += 1

        for owner_id, active_set in active_sets.items():
            self.resolver.sync_active_flags(owner_id, game.season, game.week, active_set)

        game.update_pick_stats(picks + anonymous_picks, stamp)
        game.needs_settlement = False
        game.last_settled_at = stamp
        LeaderboardRefresh.request(game.season, game.week, stamp)
        game_log.debug(
            f"Settled {len(picks)} picks and {len(anonymous_picks)} anonymous picks "
            f"({updated + anon_updated} changed)"
        )

        return updated, anon_updated

    def _settle_pick(self, pick, game, active_set, lock_rule, stamp, errors):
        """Write one pick's outcome inside a savepoint, returning whether it changed"""
        error = None
        result = None

        if game.is_final:
            if was_submitted_after_lock(game, pick.submitted_at):
                # Late writes are refused at submission; settlement never voids a pick
                logger.warning(
                    f"{pick.source} pick {pick.id} on game {game.id}: {LATE_PICK_WARNING}"
                )
            is_lock = active_set.effective_lock(pick) if active_set else bool(pick.is_lock)
            try:
                result = settle_pick_for_game(pick, game, is_lock=is_lock, lock_rule=lock_rule)
            except SettlementError as e:
                error = e

        if error is not None:
            logger.warning(f"{pick.source} pick {pick.id} on game {game.id} not settled: {error}")
            errors.append(_error_entry(game, pick, error))

        with db.session.begin_nested():
            if result is not None:
                changed = pick.apply_settlement(result.result, result.points, stamp)
            else:
                changed = pick.clear_settlement(str(error)[:255] if error else None)

        return changed


pick_processor = PickProcessor()
