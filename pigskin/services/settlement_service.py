"""
Settlement runs

One run is: pull the week's scoreboard, apply it to the tracked games, settle
whatever the lifecycle tracker (or an admin) queued, then rebuild the
leaderboards for every week that was touched. The background poll and the
manual trigger both go through SettlementService.run.
"""

import logging
from datetime import timedelta
from typing import List, NamedTuple, Optional

from flask import current_app

from pigskin import db
from pigskin.exceptions import TransientUpstreamError
from pigskin.models import Game
from pigskin.services.game_lifecycle import apply_feed_updates
from pigskin.services.leaderboard import leaderboard_aggregator
from pigskin.services.pick_processor import ProcessingReport, pick_processor
from pigskin.utils.score_feed import ScoreFeedClient
from pigskin.utils.timezone_utils import ensure_utc, get_utc_time, to_naive_utc

logger = logging.getLogger(__name__)


class SettlementRunReport(NamedTuple):
    season: int
    week: Optional[int]
    feed_refreshed: bool
    feed_error: Optional[str]
    games_changed: int
    lifecycle_conflicts: List[str]
    processing: ProcessingReport
    leaderboards: dict

    def to_dict(self):
        data = {
            "season": self.season,
            "week": self.week,
            "feed_refreshed": self.feed_refreshed,
            "feed_error": self.feed_error,
            "games_changed": self.games_changed,
            "lifecycle_conflicts": self.lifecycle_conflicts,
            "leaderboards": self.leaderboards,
        }
        data.update(self.processing.to_dict())
        return data


def find_active_week(season, now=None):
    """The latest week of a season whose first kickoff is no more than a day away"""
    now = ensure_utc(now or get_utc_time())
    horizon = to_naive_utc(now + timedelta(days=1))

    latest = (
        db.session.query(Game.week)
        .filter(Game.season == season, Game.kickoff_time <= horizon)
        .order_by(Game.week.desc())
        .first()
    )
    if latest is not None:
        return latest[0]

    first = db.session.query(Game.week).filter(Game.season == season).order_by(Game.week).first()
    return first[0] if first is not None else None


class SettlementService:
    def __init__(self, processor=None, aggregator=None, feed_client=None):
        self.processor = processor or pick_processor
        self.aggregator = aggregator or leaderboard_aggregator
        self._feed_client = feed_client

    @property
    def feed_client(self):
        if self._feed_client is None:
            self._feed_client = ScoreFeedClient.from_config(current_app.config)
        return self._feed_client

    def refresh_scores(self, season, week, now=None):
        """Apply the upstream scoreboard to a week's games and commit.

        Returns (changed_games, conflicts). Raises TransientUpstreamError when
        the feed cannot be read.
        """
        games = Game.get_games_for_week(season, week)
        if not games:
            return [], []

        feed_games = self.feed_client.fetch_scoreboard(season, week)

        try:
            changed, conflicts = apply_feed_updates(games, feed_games, now)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        if changed:
            logger.info(f"Score feed changed {len(changed)} games for {season} week {week}")
        return changed, conflicts

    def run(
        self,
        season,
        week=None,
        refresh_scores=True,
        settle_all_weeks=False,
        max_games=None,
        time_budget=None,
        now=None,
    ) -> SettlementRunReport:
        """Feed refresh, settlement and leaderboard refresh for one week"""
        now = now or get_utc_time()

        feed_refreshed = False
        feed_error = None
        changed, conflicts = [], []

        if refresh_scores and week is not None:
            try:
                changed, conflicts = self.refresh_scores(season, week, now)
                feed_refreshed = True
            except TransientUpstreamError as e:
                # Scores stay as they are until the next poll
                feed_error = str(e)
                logger.warning(f"Score refresh skipped for {season} week {week}: {e}")

        processing = self.processor.process_changed_games(
            season=season,
            week=None if settle_all_weeks else week,
            max_games=max_games,
            time_budget=time_budget,
            now=now,
        )

        leaderboards = self.aggregator.recompute_pending(season=season, now=now)

        return SettlementRunReport(
            season=season,
            week=week,
            feed_refreshed=feed_refreshed,
            feed_error=feed_error,
            games_changed=len(changed),
            lifecycle_conflicts=conflicts,
            processing=processing,
            leaderboards=leaderboards,
        )


settlement_service = SettlementService()
