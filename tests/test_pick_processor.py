from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import SQLAlchemyError

from pigskin import db
from pigskin.models import LeaderboardRefresh
from pigskin.services.game_lifecycle import apply_score_update, mark_for_settlement
from pigskin.services.pick_processor import PickProcessor
from pigskin.services.pick_source import PickSourceResolver

NOW = datetime(2025, 9, 7, 3, 0, tzinfo=timezone.utc)


@pytest.fixture
def processor():
    return PickProcessor(resolver=PickSourceResolver())


def test_completed_game_settles_every_pick(
    processor, make_user, make_game, make_pick, make_anonymous_pick, finish_game
):
    game = make_game(spread=-3.5)
    home_picker = make_pick(make_user(), game, "Texas")
    away_picker = make_pick(make_user(), game, "Oklahoma")
    guest = make_anonymous_pick(None, game, "Texas")
    finish_game(game, 24, 20)

    report = processor.process_changed_games(now=NOW)

    assert report.games_processed == 1
    assert report.picks_updated == 2
    assert report.anonymous_picks_updated == 1
    assert report.errors == []
    assert report.budget_exhausted is False
    assert report.remaining_games == 0
    assert report.weeks_flagged == {(2025, 1)}

    assert (home_picker.result, home_picker.points_earned) == ("win", 20)
    assert (away_picker.result, away_picker.points_earned) == ("loss", 0)
    assert (guest.result, guest.points_earned) == ("win", 20)
    assert game.needs_settlement is False
    assert game.ats_winner == "Texas"
    assert LeaderboardRefresh.query.filter_by(season=2025, week=1).count() == 1


def test_rerun_on_unchanged_game_is_idempotent(
    processor, make_user, make_game, make_pick, finish_game
):
    game = make_game(spread=-3)
    pick = make_pick(make_user(), game, "Texas", is_lock=True)
    finish_game(game, 17, 14)
    processor.process_changed_games(now=NOW)
    settled_at = pick.settled_at

    mark_for_settlement([game], NOW + timedelta(hours=1))
    db.session.commit()
    report = processor.process_changed_games(now=NOW + timedelta(hours=1))

    assert report.games_processed == 1
    assert report.picks_updated == 0
    assert (pick.result, pick.points_earned) == ("push", 20)
    assert pick.settled_at == settled_at


def test_score_correction_changes_points(processor, make_user, make_game, make_pick, finish_game):
    game = make_game(spread=-3.5)
    pick = make_pick(make_user(), game, "Texas")
    finish_game(game, 24, 20)
    processor.process_changed_games(now=NOW)

    apply_score_update(game, 20, 24, "completed", now=NOW)
    db.session.commit()
    report = processor.process_changed_games(now=NOW)

    assert report.picks_updated == 1
    assert (pick.result, pick.points_earned) == ("loss", 0)


def test_bad_pick_does_not_block_siblings(
    processor, make_user, make_game, make_pick, finish_game
):
    game = make_game(spread=-3.5)
    bad = make_pick(make_user(), game, "Baylor")
    good = make_pick(make_user(), game, "Texas")
    finish_game(game, 24, 20)

    report = processor.process_changed_games(now=NOW)

    assert report.games_processed == 1
    assert report.picks_updated == 2
    assert len(report.errors) == 1
    assert report.errors[0]["pick_id"] == bad.id
    assert report.errors[0]["error_type"] == "SettlementError"
    assert bad.result is None
    assert bad.settlement_error is not None
    assert good.points_earned == 20


def test_late_submission_is_still_settled(
    processor, make_user, make_game, make_pick, finish_game
):
    game = make_game()
    late = make_pick(make_user(), game, "Texas", submitted_at=datetime(2025, 9, 6, 17, 0))
    on_time = make_pick(make_user(), game, "Texas", submitted_at=datetime(2025, 9, 6, 15, 0))
    finish_game(game, 35, 10)

    report = processor.process_changed_games(now=NOW)

    assert late.result == "win"
    assert late.settlement_error is None
    assert on_time.result == "win"
    assert report.errors == []


def test_earlier_custom_lock_keeps_settled_result(
    processor, make_user, make_game, make_pick, finish_game
):
    game = make_game(spread=-3.5)
    pick = make_pick(make_user(), game, "Texas", submitted_at=datetime(2025, 9, 5, 12, 0))
    finish_game(game, 24, 20)
    processor.process_changed_games(now=NOW)

    game.custom_lock_time = datetime(2025, 9, 4, 0, 0)
    mark_for_settlement([game], NOW + timedelta(hours=1))
    db.session.commit()
    report = processor.process_changed_games(now=NOW + timedelta(hours=1))

    assert report.errors == []
    assert report.picks_updated == 0
    assert (pick.result, pick.points_earned) == ("win", 20)


def test_failed_write_reports_persistence_error(
    processor, monkeypatch, make_user, make_game, make_pick, finish_game
):
    game = make_game(spread=-3.5)
    broken = make_pick(make_user(), game, "Texas")
    sibling = make_pick(make_user(), game, "Oklahoma")
    finish_game(game, 24, 20)

    def fail_write(*args, **kwargs):
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(broken, "apply_settlement", fail_write)

    report = processor.process_changed_games(now=NOW)

    assert report.games_processed == 1
    assert report.picks_updated == 1
    assert len(report.errors) == 1
    assert report.errors[0]["pick_id"] == broken.id
    assert report.errors[0]["error_type"] == "PersistenceError"
    assert broken.result is None
    assert (sibling.result, sibling.points_earned) == ("loss", 0)
    assert game.needs_settlement is False


def test_pick_stats_count_submitted_visible_picks(
    processor, make_user, make_game, make_pick, make_anonymous_pick, finish_game
):
    game = make_game()
    make_pick(make_user(), game, "Texas")
    make_pick(make_user(), game, "Texas", is_lock=True)
    make_pick(make_user(), game, "Oklahoma")
    make_pick(make_user(), game, "Oklahoma", submitted=False)
    make_anonymous_pick(None, game, "Oklahoma", is_lock=True)
    hidden = make_anonymous_pick(None, game, "Texas")
    hidden.show_on_leaderboard = False
    finish_game(game, 28, 7)

    processor.process_changed_games(now=NOW)

    stats = game.to_dict(now=NOW)["pick_stats"]
    assert stats == {
        "home_team_picks": 1,
        "home_team_locks": 1,
        "away_team_picks": 1,
        "away_team_locks": 1,
        "total_picks": 4,
    }
    assert game.pick_stats_updated_at == datetime(2025, 9, 7, 3, 0)


def test_unfinished_game_leaves_results_null(processor, make_user, make_game, make_pick):
    game = make_game()
    pick = make_pick(make_user(), game, "Texas")
    pick.result, pick.points_earned = "win", 20
    apply_score_update(game, 7, 3, "in_progress", now=NOW)
    db.session.commit()

    report = processor.process_changed_games(now=NOW)

    assert report.games_processed == 1
    assert pick.result is None
    assert pick.points_earned is None
    assert game.ats_winner is None


def test_effective_lock_comes_from_resolver(
    processor, make_user, make_week_slate, make_pick, finish_game
):
    user = make_user()
    games = make_week_slate(2)
    first = make_pick(user, games[0], games[0].home_team, is_lock=True,
                      submitted_at=datetime(2025, 9, 1, 12, 0))
    second = make_pick(user, games[1], games[1].home_team, is_lock=True,
                       submitted_at=datetime(2025, 9, 2, 12, 0))
    finish_game(games[0], 31, 20)
    finish_game(games[1], 31, 20)

    processor.process_changed_games(now=NOW)

    assert first.points_earned == 42
    assert second.points_earned == 21


def test_max_games_leaves_remaining_flagged(processor, make_week_slate, finish_game):
    games = make_week_slate(3)
    for offset, game in enumerate(games):
        finish_game(game, 21, 14, now=NOW + timedelta(minutes=offset))

    report = processor.process_changed_games(max_games=2, now=NOW)

    assert report.games_processed == 2
    assert report.remaining_games == 1
    assert report.budget_exhausted is True
    assert [g.needs_settlement for g in games] == [False, False, True]

    report = processor.process_changed_games(max_games=2, now=NOW)
    assert report.games_processed == 1
    assert report.remaining_games == 0
    assert report.budget_exhausted is False


def test_time_budget_stops_between_games(make_week_slate, finish_game):
    games = make_week_slate(3)
    for offset, game in enumerate(games):
        finish_game(game, 21, 14, now=NOW + timedelta(minutes=offset))

    ticks = iter([0.0, 100.0, 200.0, 300.0])
    processor = PickProcessor(resolver=PickSourceResolver(), clock=lambda: next(ticks))

    report = processor.process_changed_games(time_budget=10, now=NOW)

    assert report.games_processed == 1
    assert report.remaining_games == 2
    assert report.budget_exhausted is True
    assert report.errors == []
    assert games[0].needs_settlement is False


def test_scope_restricts_cursor(processor, make_week_slate, finish_game):
    week_one = make_week_slate(1, week=1)[0]
    week_two = make_week_slate(1, week=2)[0]
    finish_game(week_one, 10, 3)
    finish_game(week_two, 10, 3)

    report = processor.process_changed_games(season=2025, week=2, now=NOW)

    assert report.games_processed == 1
    assert week_two.needs_settlement is False
    assert week_one.needs_settlement is True


def test_active_mirror_is_synced(
    processor, make_user, make_game, make_pick, make_anonymous_pick, finish_game
):
    user = make_user()
    game = make_game()
    pick = make_pick(user, game, "Texas")
    anonymous = make_anonymous_pick(user, game, "Oklahoma")
    finish_game(game, 28, 7)

    processor.process_changed_games(now=NOW)

    assert pick.is_active_pick_set is True
    assert anonymous.is_active_pick_set is False
    assert (anonymous.result, anonymous.points_earned) == ("loss", 0)
