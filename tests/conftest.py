from datetime import datetime, timedelta

import pytest

from pigskin import create_app, db
from pigskin.models import AnonymousPick, Game, Pick, User
from pigskin.services.game_lifecycle import apply_score_update

# Saturday 2025-09-06, 14:00 CDT; locks 11:00 CDT (16:00 UTC) the same day
SATURDAY_KICKOFF = datetime(2025, 9, 6, 19, 0)
SATURDAY_LOCK = datetime(2025, 9, 6, 16, 0)


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make_user(display_name=None, leaderboard_visible=True):
        counter["n"] += 1
        name = display_name or f"Player {counter['n']}"
        user = User(
            display_name=name,
            email=f"player{counter['n']}@example.com",
            leaderboard_visible=leaderboard_visible,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def make_game(app):
    def _make_game(
        home_team="Texas",
        away_team="Oklahoma",
        spread=0.0,
        kickoff_time=SATURDAY_KICKOFF,
        season=2025,
        week=1,
        external_id=None,
        custom_lock_time=None,
    ):
        game = Game(
            season=season,
            week=week,
            home_team=home_team,
            away_team=away_team,
            spread=spread,
            kickoff_time=kickoff_time,
            custom_lock_time=custom_lock_time,
            status="scheduled",
            external_id=external_id,
        )
        db.session.add(game)
        db.session.commit()
        return game

    return _make_game


@pytest.fixture
def finish_game(app):
    """Record a final score the way the feed would, queuing the game"""

    def _finish_game(game, home_score, away_score, now=None):
        update = apply_score_update(game, home_score, away_score, "completed", now=now)
        assert update.conflict is None
        db.session.commit()
        return game

    return _finish_game


@pytest.fixture
def make_pick(app):
    def _make_pick(user, game, team, is_lock=False, submitted_at=None, submitted=True):
        pick = Pick(
            user_id=user.id,
            game_id=game.id,
            season=game.season,
            week=game.week,
            selected_team=team,
            is_lock=is_lock,
            submitted=submitted,
            submitted_at=submitted_at or game.kickoff_time - timedelta(days=3),
        )
        db.session.add(pick)
        db.session.commit()
        return pick

    return _make_pick


@pytest.fixture
def make_anonymous_pick(app):
    def _make_anonymous_pick(
        user, game, team, is_lock=False, submitted_at=None, email=None, submitted=True
    ):
        pick = AnonymousPick(
            email=email or (user.email if user else "guest@example.com"),
            name=user.display_name if user else "Guest",
            assigned_user_id=user.id if user else None,
            game_id=game.id,
            season=game.season,
            week=game.week,
            selected_team=team,
            is_lock=is_lock,
            submitted=submitted,
            submitted_at=submitted_at or game.kickoff_time - timedelta(days=3),
        )
        db.session.add(pick)
        db.session.commit()
        return pick

    return _make_anonymous_pick


@pytest.fixture
def make_week_slate(make_game):
    """Seven week-1 games with distinct teams"""

    def _make_week_slate(count=7, week=1, season=2025):
        return [
            make_game(
                home_team=f"Home {week}-{i}",
                away_team=f"Away {week}-{i}",
                week=week,
                season=season,
                kickoff_time=SATURDAY_KICKOFF + timedelta(days=7 * (week - 1), minutes=i),
            )
            for i in range(count)
        ]

    return _make_week_slate
