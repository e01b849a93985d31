from functools import wraps

from flask import current_app, jsonify, request

from pigskin import db, limiter
from pigskin.exceptions import ValidationError
from pigskin.models import Game, User
from pigskin.routes.api import bp
from pigskin.services.leaderboard import (
    SCOPE_BEST_FINISH,
    SCOPE_SEASON,
    SCOPE_WEEKLY,
    leaderboard_aggregator,
)
from pigskin.services.pick_source import pick_source_resolver
from pigskin.services.scheduler_service import scheduler_service
from pigskin.services.settlement_service import settlement_service
from pigskin.utils.timezone_utils import get_utc_time


def no_store(f):
    """Keep live settlement data out of intermediary caches"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = f(*args, **kwargs)
        if hasattr(response, "headers"):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        return response

    return decorated_function


def _settlement_trigger_limit():
    return current_app.config.get("SETTLEMENT_TRIGGER_LIMIT", "6 per minute")


def _required_int(data, field, errors):
    value = data.get(field)
    if isinstance(value, bool):
        value = None
    try:
        return int(value)
    except (TypeError, ValueError):
        errors.append(f"{field} must be an integer")
        return None


@bp.route("/settlement/run", methods=["POST"])
@limiter.limit(_settlement_trigger_limit)
def run_settlement():
    """Run score refresh, settlement and leaderboard aggregation for a week now"""
    data = request.get_json(silent=True) or {}

    errors = []
    season = _required_int(data, "season", errors)
    week = _required_int(data, "week", errors)
    if errors:
        raise ValidationError("Invalid settlement request", details=errors)

    report = settlement_service.run(
        season, week, refresh_scores=bool(data.get("refresh_scores", True))
    )
    return jsonify(report.to_dict())


def _leaderboard_payload(scope, season, week=None):
    entries = leaderboard_aggregator.get_leaderboard(scope, season, week)
    return {"scope": scope, "season": season, "week": week, "entries": entries}


@bp.route("/leaderboard/season/<int:season>")
def season_leaderboard(season):
    return jsonify(_leaderboard_payload(SCOPE_SEASON, season))


@bp.route("/leaderboard/season/<int:season>/week/<int:week>")
def weekly_leaderboard(season, week):
    return jsonify(_leaderboard_payload(SCOPE_WEEKLY, season, week))


@bp.route("/leaderboard/season/<int:season>/best-finish")
def best_finish_leaderboard(season):
    payload = _leaderboard_payload(SCOPE_BEST_FINISH, season)
    start_week = current_app.config.get("BEST_FINISH_START_WEEK", 11)
    end_week = current_app.config.get("BEST_FINISH_END_WEEK", 14)
    payload["weeks"] = [start_week, end_week]
    return jsonify(payload)


def _lock_status(game, now):
    lock = game.lock_info
    return {
        "game_id": game.id,
        "season": game.season,
        "week": game.week,
        "matchup": f"{game.away_team} @ {game.home_team}",
        "kickoff_time": game.kickoff_time.isoformat(),
        "lock_time": lock.lock_time.isoformat(),
        "default_lock_time": lock.default_lock_time.isoformat(),
        "has_custom_lock_time": lock.is_custom,
        "unusual_lock_time": lock.is_unusual,
        "is_locked": game.is_locked(now),
    }


@bp.route("/games/<int:game_id>/lock-status")
@no_store
def game_lock_status(game_id):
    """Lock deadline and current lock state for one game"""
    game = db.get_or_404(Game, game_id)
    return jsonify(_lock_status(game, get_utc_time()))


@bp.route("/seasons/<int:season>/weeks/<int:week>/lock-status")
@no_store
def week_lock_status(season, week):
    """Lock deadlines for every game in a week"""
    now = get_utc_time()
    games = Game.get_games_for_week(season, week)
    statuses = [_lock_status(game, now) for game in games]
    return jsonify(
        {
            "season": season,
            "week": week,
            "games": statuses,
            "locked_games": sum(1 for s in statuses if s["is_locked"]),
            "open_games": sum(1 for s in statuses if not s["is_locked"]),
        }
    )


@bp.route("/seasons/<int:season>/weeks/<int:week>/users/<int:user_id>/picks")
@no_store
def user_week_picks(season, week, user_id):
    """A participant's submissions for a week and which of them count"""
    user = db.get_or_404(User, user_id)
    active_set = pick_source_resolver.resolve(user.id, season, week)

    submissions = (
        user.picks.filter_by(season=season, week=week).all()
        + user.anonymous_picks.filter_by(season=season, week=week).all()
    )

    picks = []
    for pick in submissions:
        data = pick.to_dict()
        data["is_active"] = active_set.is_active(pick)
        data["effective_lock"] = active_set.effective_lock(pick)
        data["counts_on_leaderboard"] = active_set.counts_on_leaderboard(pick)
        picks.append(data)

    now = get_utc_time()
    return jsonify(
        {
            "user": user.to_dict(),
            "season": season,
            "week": week,
            "active_source": active_set.source,
            "conflict": active_set.conflict,
            "picks": picks,
            "games": [game.to_dict(now) for game in Game.get_games_for_week(season, week)],
        }
    )


@bp.route("/scheduler/status")
@no_store
def scheduler_status():
    return jsonify(scheduler_service.get_status())
