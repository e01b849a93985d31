"""
Pigskin Score Polling Scheduler Service

Runs the settlement pipeline in the background with APScheduler. The poll
interval is short while games are live or about to kick off and long
otherwise; the job is rescheduled whenever that state flips.
"""

import atexit
import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from pigskin import db
from pigskin.models import Game
from pigskin.services.settlement_service import find_active_week, settlement_service
from pigskin.utils.timezone_utils import get_utc_time, to_naive_utc

logger = logging.getLogger(__name__)

POLL_JOB_ID = "poll_scores"

# Kicked-off games still marked scheduled count as live for this long
STALE_KICKOFF_WINDOW = timedelta(hours=6)


class SchedulerService:
    """Manages the background score poll"""

    def __init__(self, app=None, settlement=None):
        self.scheduler = None
        self.app = app
        self.settlement = settlement or settlement_service
        self.is_running = False
        self.live_mode = False
        self.poll_stats = {
            "last_poll": None,
            "total_polls": 0,
            "successful_polls": 0,
            "failed_polls": 0,
            "last_error": None,
            "games_processed": 0,
            "picks_updated": 0,
        }

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        atexit.register(self.shutdown)

        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        try:
            self.scheduler.remove_all_jobs()
            self._add_poll_job(self._interval_seconds(False))
            self.scheduler.start()
            self.is_running = True

            logger.info("Scheduler started successfully")

        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Scheduler stopped")

        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _interval_seconds(self, live):
        config = self.app.config
        if live:
            return config.get("LIVE_POLL_SECONDS", 90)
        return config.get("IDLE_POLL_SECONDS", 600)

    def _add_poll_job(self, seconds):
        self.scheduler.add_job(
            func=self._poll_scores,
            trigger=IntervalTrigger(seconds=seconds),
            id=POLL_JOB_ID,
            name="Poll Scores and Settle",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=seconds,
            replace_existing=True,
        )

    def _set_live_mode(self, live):
        """Switch poll frequency when games start or stop being live"""
        if live == self.live_mode:
            return

        self.live_mode = live
        seconds = self._interval_seconds(live)
        if self.scheduler is not None and self.scheduler.get_job(POLL_JOB_ID):
            self.scheduler.reschedule_job(POLL_JOB_ID, trigger=IntervalTrigger(seconds=seconds))
        logger.info(f"Score polling switched to {'live' if live else 'idle'} mode ({seconds}s)")

    def is_game_window(self, season, now=None):
        """True while any game of the season is live or about to kick off"""
        now = now or get_utc_time()
        lead = timedelta(minutes=self.app.config.get("GAME_WINDOW_LEAD_MINUTES", 30))

        if Game.query.filter_by(season=season, status="in_progress").first() is not None:
            return True

        upcoming = Game.query.filter(
            Game.season == season,
            Game.status == "scheduled",
            Game.kickoff_time <= to_naive_utc(now + lead),
            Game.kickoff_time >= to_naive_utc(now - STALE_KICKOFF_WINDOW),
        ).first()
        return upcoming is not None

    def _poll_scores(self, now=None):
        """One poll: refresh scores for the active week and settle the season"""
        with self.app.app_context():
            try:
                season = self.app.config.get("CURRENT_SEASON")
                week = find_active_week(season, now)
                if week is None:
                    return None

                report = self.settlement.run(
                    season, week, refresh_scores=True, settle_all_weeks=True, now=now
                )

                self._set_live_mode(self.is_game_window(season, now))
                self._update_stats(
                    report.feed_error is None,
                    report.processing.games_processed,
                    report.processing.picks_updated + report.processing.anonymous_picks_updated,
                    error=report.feed_error,
                )
                return report

            except Exception as e:
                db.session.rollback()
                self._update_stats(False, error=str(e))
                logger.error(f"Error in score poll: {e}", exc_info=True)
                return None

    def _update_stats(self, success, games_processed=0, picks_updated=0, error=None):
        """Update poll statistics"""
        self.poll_stats["last_poll"] = datetime.now(timezone.utc)
        self.poll_stats["total_polls"] += 1

        if success:
            self.poll_stats["successful_polls"] += 1
            self.poll_stats["games_processed"] += games_processed
            self.poll_stats["picks_updated"] += picks_updated
            self.poll_stats["last_error"] = None
        else:
            self.poll_stats["failed_polls"] += 1
            self.poll_stats["last_error"] = error

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = getattr(job, "next_run_time", None)
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        stats = dict(self.poll_stats)
        if stats["last_poll"] is not None:
            stats["last_poll"] = stats["last_poll"].isoformat()

        return {
            "is_running": self.is_running,
            "live_mode": self.live_mode,
            "jobs": jobs,
            "stats": stats,
        }

    def force_poll(self):
        """Run one poll right now, outside the schedule"""
        if self.app is None:
            return False, "Scheduler not initialized"

        report = self._poll_scores()
        if report is None:
            return False, self.poll_stats["last_error"] or "Nothing to poll"
        return True, report.to_dict()


# Global scheduler instance
scheduler_service = SchedulerService()
