from datetime import datetime

import pytest

from pigskin.services.settlement_service import settlement_service
from pigskin.utils.score_feed import FeedGame


class StubFeed:
    def __init__(self, games):
        self.games = games

    def fetch_scoreboard(self, season, week):
        return self.games


@pytest.fixture
def stub_feed(monkeypatch):
    def _stub_feed(games):
        monkeypatch.setattr(settlement_service, "_feed_client", StubFeed(games))

    return _stub_feed


def test_settlement_run_requires_season_and_week(client):
    response = client.post("/api/settlement/run", json={"season": 2025})

    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "Invalid settlement request"
    assert body["details"] == ["week must be an integer"]


def test_settlement_run_rejects_non_json(client):
    response = client.post("/api/settlement/run", data="season=2025")

    assert response.status_code == 400
    assert len(response.get_json()["details"]) == 2


def test_settlement_run_settles_week(client, stub_feed, make_user, make_game, make_pick):
    game = make_game(external_id="401")
    make_pick(make_user("Alice"), game, "Texas")
    stub_feed([FeedGame("401", "Texas", "Oklahoma", 35, 14, "completed", 4, "0:00")])

    response = client.post("/api/settlement/run", json={"season": 2025, "week": 1})

    assert response.status_code == 200
    body = response.get_json()
    assert body["feed_refreshed"] is True
    assert body["games_changed"] == 1
    assert body["games_processed"] == 1
    assert body["picks_updated"] == 1
    assert body["budget_exhausted"] is False
    assert body["leaderboards"]["weeks"] == [[2025, 1]]

    weekly = client.get("/api/leaderboard/season/2025/week/1").get_json()
    assert weekly["scope"] == "weekly"
    assert [e["display_name"] for e in weekly["entries"]] == ["Alice"]
    # 21 point cover earns the 3 point bonus
    assert weekly["entries"][0]["total_points"] == 23


def test_settlement_run_without_refresh(client, make_game, finish_game):
    finish_game(make_game(), 10, 7)

    response = client.post(
        "/api/settlement/run", json={"season": 2025, "week": 1, "refresh_scores": False}
    )

    body = response.get_json()
    assert body["feed_refreshed"] is False
    assert body["games_processed"] == 1


def test_empty_leaderboards(client):
    season = client.get("/api/leaderboard/season/2025").get_json()
    best = client.get("/api/leaderboard/season/2025/best-finish").get_json()

    assert season == {"scope": "season", "season": 2025, "week": None, "entries": []}
    assert best["scope"] == "best_finish"
    assert best["weeks"] == [11, 14]
    assert best["entries"] == []


def test_game_lock_status(client, make_game):
    game = make_game()

    response = client.get(f"/api/games/{game.id}/lock-status")

    assert response.status_code == 200
    assert response.headers["Cache-Control"].startswith("no-store")
    body = response.get_json()
    assert body["matchup"] == "Oklahoma @ Texas"
    assert body["lock_time"] == "2025-09-06T16:00:00+00:00"
    assert body["has_custom_lock_time"] is False
    assert body["is_locked"] is True


def test_unknown_game_is_404(client):
    response = client.get("/api/games/999/lock-status")

    assert response.status_code == 404
    assert response.get_json() == {"error": "Resource not found"}


def test_week_lock_status_counts(client, make_game):
    make_game()
    make_game(home_team="Rice", away_team="Houston", kickoff_time=datetime(2099, 9, 5, 19, 0))

    body = client.get("/api/seasons/2025/weeks/1/lock-status").get_json()

    assert len(body["games"]) == 2
    assert body["locked_games"] == 1
    assert body["open_games"] == 1


def test_scheduler_status(client):
    body = client.get("/api/scheduler/status").get_json()

    assert body["is_running"] is False
    assert body["jobs"] == []
    assert "total_polls" in body["stats"]


def test_user_week_picks_marks_active_source(
    client, make_user, make_game, make_pick, make_anonymous_pick
):
    user = make_user("Dual")
    game = make_game()
    pick = make_pick(user, game, "Texas", is_lock=True)
    anonymous = make_anonymous_pick(user, game, "Oklahoma")

    response = client.get(f"/api/seasons/2025/weeks/1/users/{user.id}/picks")

    assert response.status_code == 200
    body = response.get_json()
    assert body["user"]["display_name"] == "Dual"
    assert body["active_source"] == "authenticated"
    assert body["conflict"] is not None
    by_key = {(p["source"], p["id"]): p for p in body["picks"]}
    assert by_key[("authenticated", pick.id)]["is_active"] is True
    assert by_key[("authenticated", pick.id)]["effective_lock"] is True
    assert by_key[("anonymous", anonymous.id)]["is_active"] is False
    assert "email" not in by_key[("anonymous", anonymous.id)]
    assert [g["id"] for g in body["games"]] == [game.id]


def test_user_week_picks_unknown_user(client):
    assert client.get("/api/seasons/2025/weeks/1/users/42/picks").status_code == 404
