"""
Leaderboard Aggregator

Rolls settled, active picks up into weekly, season and best-finish standings.
Each scope is rebuilt wholesale: a precedence change or a late score
correction can move points in weeks that were already settled, so entries are
never patched in place.
"""

import logging
from collections import defaultdict

from flask import current_app
from sqlalchemy.exc import IntegrityError

from pigskin import db
from pigskin.exceptions import ValidationError
from pigskin.models import AnonymousPick, LeaderboardEntry, LeaderboardRefresh, Pick, User
from pigskin.models.leaderboard import LEADERBOARD_SCOPES, SEASON_WIDE_WEEK
from pigskin.services.pick_source import pick_source_resolver
from pigskin.utils.cache_utils import cached_leaderboard, invalidate_leaderboard_cache
from pigskin.utils.scoring import LOSS, PUSH, WIN
from pigskin.utils.timezone_utils import get_utc_time, to_naive_utc

logger = logging.getLogger(__name__)

SCOPE_WEEKLY = "weekly"
SCOPE_SEASON = "season"
SCOPE_BEST_FINISH = "best_finish"

PICK_SOURCE_MIXED = "mixed"


def _empty_row(user):
    return {
        "user_id": user.id,
        "display_name": user.display_name,
        "pick_source": None,
        "total_picks": 0,
        "wins": 0,
        "losses": 0,
        "pushes": 0,
        "lock_wins": 0,
        "lock_losses": 0,
        "total_points": 0,
    }


def rank_sort_key(row):
    return (
        -row["total_points"],
        -row["wins"],
        row["display_name"].casefold(),
        row["user_id"],
    )


def rank_entries(rows):
    """Order rows and assign 1-based ranks.

    Points descending, then wins descending, then display name
    (case-insensitive), then user id, so no two rows share a rank.
    """
    ranked = []
    for position, row in enumerate(sorted(rows, key=rank_sort_key), start=1):
        ranked.append(dict(row, rank=position))
    return ranked


def best_finish_weeks(app_config=None):
    app_config = app_config or current_app.config
    return (
        app_config.get("BEST_FINISH_START_WEEK", 11),
        app_config.get("BEST_FINISH_END_WEEK", 14),
    )


class LeaderboardAggregator:
    def __init__(self, resolver=None):
        self.resolver = resolver or pick_source_resolver

    def _user_weeks(self, season, week=None, week_range=None):
        """(user_id, week) pairs with any picks in scope"""

        def scoped(query, model):
            query = query.filter(model.season == season)
            if week is not None:
                query = query.filter(model.week == week)
            if week_range is not None:
                query = query.filter(model.week.between(*week_range))
            return query

        pairs = {
            tuple(row)
            for row in scoped(db.session.query(Pick.user_id, Pick.week), Pick).distinct()
        }
        pairs.update(
            tuple(row)
            for row in scoped(
                db.session.query(AnonymousPick.assigned_user_id, AnonymousPick.week).filter(
                    AnonymousPick.assigned_user_id.isnot(None)
                ),
                AnonymousPick,
            ).distinct()
        )
        return pairs

    def build_entries(self, season, week=None, week_range=None):
        """Sum each visible user's active, settled picks for a scope (unranked)"""
        weeks_by_user = defaultdict(set)
        for user_id, pick_week in self._user_weeks(season, week, week_range):
            weeks_by_user[user_id].add(pick_week)

        if not weeks_by_user:
            return []

        users = User.query.filter(
            User.id.in_(list(weeks_by_user)), User.leaderboard_visible.is_(True)
        ).all()

        rows = []
        for user in users:
            row = _empty_row(user)
            sources = set()
            for pick_week in sorted(weeks_by_user[user.id]):
                active_set = self.resolver.resolve(user.id, season, pick_week)
                for pick in active_set.members:
                    if not active_set.counts_on_leaderboard(pick):
                        continue
                    sources.add(pick.source)
                    if not pick.is_settled:
                        continue

                    is_lock = active_set.effective_lock(pick)
                    row["total_picks"] += 1
                    row["total_points"] += pick.points_earned or 0
                    if pick.result == WIN:
                        row["wins"] += 1
                        row["lock_wins"] += int(is_lock)
                    elif pick.result == LOSS:
                        row["losses"] += 1
                        row["lock_losses"] += int(is_lock)
                    elif pick.result == PUSH:
                        row["pushes"] += 1

            if sources:
                row["pick_source"] = sources.pop() if len(sources) == 1 else PICK_SOURCE_MIXED
                rows.append(row)

        return rows

    def _replace_scope(self, scope, season, week, rows, now=None, attempts=2):
        stamp = to_naive_utc(now or get_utc_time())
        ranked = rank_entries(rows)
        stored_week = SEASON_WIDE_WEEK if week is None else week

        for attempt in range(1, attempts + 1):
            try:
                LeaderboardEntry.query.filter_by(
                    scope=scope, season=season, week=stored_week
                ).delete(synchronize_session=False)
                for row in ranked:
                    db.session.add(
                        LeaderboardEntry(
                            scope=scope, season=season, week=stored_week, computed_at=stamp, **row
                        )
                    )
                db.session.commit()
                break
            except IntegrityError:
                # Another worker rebuilt the same scope between our delete and insert
                db.session.rollback()
                if attempt == attempts:
                    raise
                logger.warning(
                    f"Concurrent rebuild of {scope} leaderboard for {season} week {week}, retrying"
                )
            except Exception:
                db.session.rollback()
                raise

        invalidate_leaderboard_cache(season)
        logger.debug(f"Rebuilt {scope} leaderboard for {season} week {week}: {len(ranked)} rows")
        return ranked

    def recompute_week(self, season, week, now=None):
        rows = self.build_entries(season, week=week)
        return self._replace_scope(SCOPE_WEEKLY, season, week, rows, now)

    def recompute_season(self, season, now=None):
        rows = self.build_entries(season)
        return self._replace_scope(SCOPE_SEASON, season, None, rows, now)

    def recompute_best_finish(self, season, now=None):
        rows = self.build_entries(season, week_range=best_finish_weeks())
        return self._replace_scope(SCOPE_BEST_FINISH, season, None, rows, now)

    def recompute_all(self, season, now=None):
        """Rebuild every scope for a season from scratch"""
        refreshes = [
            (r.id, r.requested_at) for r in LeaderboardRefresh.query.filter_by(season=season)
        ]
        weeks = sorted({w for _, w in self._user_weeks(season)})
        for week in weeks:
            self.recompute_week(season, week, now)
        self.recompute_season(season, now)
        self.recompute_best_finish(season, now)
        self._clear_refreshes(refreshes)
        db.session.commit()
        return {"season": season, "weeks": weeks}

    def recompute_pending(self, season=None, now=None):
        """Drain refresh requests: affected weeks, then the season, then best finish"""
        query = LeaderboardRefresh.query
        if season is not None:
            query = query.filter_by(season=season)
        refreshes = query.order_by(LeaderboardRefresh.season, LeaderboardRefresh.week).all()

        if not refreshes:
            return {"weeks": [], "seasons": [], "best_finish": []}

        by_season = defaultdict(list)
        for refresh in refreshes:
            by_season[refresh.season].append((refresh.id, refresh.week, refresh.requested_at))

        start_week, end_week = best_finish_weeks()
        summary = {"weeks": [], "seasons": [], "best_finish": []}

        for refresh_season, entries in sorted(by_season.items()):
            weeks = sorted({week for _, week, _ in entries})
            for week in weeks:
                self.recompute_week(refresh_season, week, now)
                summary["weeks"].append([refresh_season, week])

            self.recompute_season(refresh_season, now)
            summary["seasons"].append(refresh_season)

            if any(start_week <= week <= end_week for week in weeks):
                self.recompute_best_finish(refresh_season, now)
                summary["best_finish"].append(refresh_season)

            self._clear_refreshes((refresh_id, stamp) for refresh_id, _, stamp in entries)
            db.session.commit()

        logger.info(
            f"Leaderboards refreshed: {len(summary['weeks'])} weeks, "
            f"seasons {summary['seasons']}"
        )
        return summary

    @staticmethod
    def _clear_refreshes(refreshes):
        """Delete handled refresh rows; the caller commits"""
        # A request that arrived mid-recompute has a newer timestamp and survives
        for refresh_id, requested_at in refreshes:
            LeaderboardRefresh.query.filter_by(id=refresh_id, requested_at=requested_at).delete(
                synchronize_session=False
            )

    @cached_leaderboard()
    def get_leaderboard(self, scope, season, week=None):
        """Stored standings for a scope, ordered by rank"""
        if scope not in LEADERBOARD_SCOPES:
            raise ValidationError(
                f"Unknown leaderboard scope {scope!r}",
                details=[f"scope must be one of {', '.join(LEADERBOARD_SCOPES)}"],
            )
        if scope == SCOPE_WEEKLY and week is None:
            raise ValidationError("Weekly leaderboards need a week")
        if scope != SCOPE_WEEKLY:
            week = SEASON_WIDE_WEEK

        entries = (
            LeaderboardEntry.query.filter_by(scope=scope, season=season, week=week)
            .order_by(LeaderboardEntry.rank)
            .all()
        )
        return [entry.to_dict() for entry in entries]


leaderboard_aggregator = LeaderboardAggregator()
