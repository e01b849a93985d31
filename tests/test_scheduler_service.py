from datetime import datetime, timedelta, timezone

import pytest

from pigskin.services import scheduler_service as scheduler_module
from pigskin.services.game_lifecycle import apply_score_update
from pigskin.services.pick_processor import ProcessingReport
from pigskin.services.scheduler_service import SchedulerService
from pigskin.services.settlement_service import SettlementRunReport

KICKOFF = datetime(2025, 9, 6, 19, 0, tzinfo=timezone.utc)


def _report(feed_error=None, games=2, picks=5):
    processing = ProcessingReport(
        games_processed=games,
        picks_updated=picks,
        anonymous_picks_updated=1,
        errors=[],
        budget_exhausted=False,
        remaining_games=0,
        weeks_flagged={(2025, 1)},
    )
    return SettlementRunReport(
        season=2025,
        week=1,
        feed_refreshed=feed_error is None,
        feed_error=feed_error,
        games_changed=games,
        lifecycle_conflicts=[],
        processing=processing,
        leaderboards={"weeks": [[2025, 1]], "seasons": [2025], "best_finish": []},
    )


class StubSettlement:
    def __init__(self, report=None, error=None):
        self.report = report
        self.error = error
        self.calls = []

    def run(self, season, week, **kwargs):
        self.calls.append((season, week, kwargs))
        if self.error:
            raise self.error
        return self.report


@pytest.fixture
def service(app, monkeypatch):
    app.config["CURRENT_SEASON"] = 2025
    monkeypatch.setattr(scheduler_module, "find_active_week", lambda season, now=None: 1)
    svc = SchedulerService(settlement=StubSettlement(_report()))
    svc.app = app
    monkeypatch.setattr(svc, "is_game_window", lambda season, now=None: True)
    return svc


def test_game_window_tracks_live_and_upcoming_games(app, make_game):
    svc = SchedulerService()
    svc.app = app
    game = make_game()

    assert svc.is_game_window(2025, KICKOFF - timedelta(hours=2)) is False
    assert svc.is_game_window(2025, KICKOFF - timedelta(minutes=10)) is True
    assert svc.is_game_window(2025, KICKOFF + timedelta(hours=7)) is False

    apply_score_update(game, 0, 0, "in_progress")
    assert svc.is_game_window(2025, KICKOFF + timedelta(hours=7)) is True


def test_poll_runs_settlement_for_active_week(service):
    report = service._poll_scores()

    assert report is service.settlement.report
    season, week, kwargs = service.settlement.calls[0]
    assert (season, week) == (2025, 1)
    assert kwargs["settle_all_weeks"] is True
    assert service.live_mode is True

    stats = service.get_status()["stats"]
    assert stats["successful_polls"] == 1
    assert stats["games_processed"] == 2
    assert stats["picks_updated"] == 6
    assert stats["last_poll"] is not None


def test_feed_error_counts_as_failed_poll(service):
    service.settlement = StubSettlement(_report(feed_error="feed down"))

    service._poll_scores()

    stats = service.get_status()["stats"]
    assert stats["failed_polls"] == 1
    assert stats["last_error"] == "feed down"


def test_poll_survives_unexpected_errors(service):
    service.settlement = StubSettlement(error=RuntimeError("boom"))

    assert service._poll_scores() is None
    assert service.poll_stats["failed_polls"] == 1
    assert service.poll_stats["last_error"] == "boom"


def test_poll_without_games_is_a_no_op(service, monkeypatch):
    monkeypatch.setattr(scheduler_module, "find_active_week", lambda season, now=None: None)

    assert service._poll_scores() is None
    assert service.settlement.calls == []
    assert service.poll_stats["total_polls"] == 0


def test_force_poll(service):
    ok, payload = service.force_poll()

    assert ok is True
    assert payload["games_processed"] == 2

    service.settlement = StubSettlement(error=RuntimeError("boom"))
    assert service.force_poll() == (False, "boom")


def test_force_poll_requires_app():
    assert SchedulerService().force_poll() == (False, "Scheduler not initialized")


def test_live_mode_switch_without_job(app):
    svc = SchedulerService()
    svc.app = app

    svc._set_live_mode(True)

    assert svc.live_mode is True
    assert svc.get_status()["jobs"] == []
