#!/usr/bin/env python3
"""
Pigskin Management CLI

Operator commands for settlement runs, leaderboards and pick source
administration.
"""

import json
import os

# Operator commands never start the background poller; must run before config loads
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import click  # noqa: E402
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import text

from pigskin import db
from pigskin.exceptions import PickemError, ValidationError
from pigskin.models import AdminAction, Game, LeaderboardRefresh, User
from pigskin.services.game_lifecycle import apply_score_update, mark_for_settlement
from pigskin.services.leaderboard import LEADERBOARD_SCOPES, leaderboard_aggregator
from pigskin.services.pick_source import pick_source_resolver
from pigskin.services.settlement_service import settlement_service
from pigskin.utils.cache_utils import get_cache_stats
from pigskin.utils.timezone_utils import format_league_time, get_utc_time


@click.group()
def cli():
    """Pigskin Management CLI"""
    pass


def _season(season):
    return season or current_app.config.get("CURRENT_SEASON")


def _fail(error):
    click.echo(f"❌ {error}")
    if isinstance(error, ValidationError):
        for detail in error.details:
            click.echo(f"   - {detail}")
    raise SystemExit(1)


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init():
    """Initialize database tables"""
    db.create_all()
    click.echo("✅ Database tables created successfully!")


@db_cmd.command()
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
@with_appcontext
def reset(yes):
    """⚠️  DANGER: Drop and recreate all tables"""
    if not yes and not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    db.drop_all()
    db.create_all()
    click.echo("✅ Database reset successfully!")


# Settlement Commands
@cli.group()
def settle():
    """Settlement commands"""
    pass


@settle.command("run")
@click.option("--season", type=int, help="Season (default: current season)")
@click.option("--week", type=int, required=True, help="Week to refresh and settle")
@click.option("--no-refresh", is_flag=True, help="Skip the score feed refresh")
@click.option("--max-games", type=int, help="Override the per-run game limit")
@with_appcontext
def settle_run(season, week, no_refresh, max_games):
    """Refresh scores, settle queued games and rebuild leaderboards"""
    season = _season(season)
    report = settlement_service.run(
        season, week, refresh_scores=not no_refresh, max_games=max_games
    )

    click.echo(f"🏈 Settlement run for {season} week {week}")
    click.echo("=" * 40)
    if report.feed_error:
        click.echo(f"⚠️  Score feed: {report.feed_error}")
    elif report.feed_refreshed:
        click.echo(f"📡 Score feed: {report.games_changed} games changed")

    processing = report.processing
    click.echo(f"🎮 Games processed: {processing.games_processed}")
    click.echo(f"✅ Picks updated: {processing.picks_updated}")
    click.echo(f"✅ Anonymous picks updated: {processing.anonymous_picks_updated}")
    if processing.budget_exhausted:
        click.echo(f"⏱  Budget reached, {processing.remaining_games} games still queued")

    for error in processing.errors:
        click.echo(
            f"❌ Game {error['game_id']} {error['source'] or ''} pick {error['pick_id']}: "
            f"{error['error_type']}: {error['message']}"
        )


@settle.command("mark-game")
@click.argument("game_id", type=int)
@click.option("--home", "home_score", type=int, help="Corrected home score")
@click.option("--away", "away_score", type=int, help="Corrected away score")
@click.option(
    "--status",
    type=click.Choice(["scheduled", "in_progress", "completed"]),
    help="Corrected status",
)
@with_appcontext
def mark_game(game_id, home_score, away_score, status):
    """Queue a game for re-settlement, optionally correcting its score"""
    game = db.session.get(Game, game_id)
    if game is None:
        _fail(f"Game {game_id} not found")

    if status is not None or home_score is not None or away_score is not None:
        update = apply_score_update(
            game,
            home_score if home_score is not None else game.home_score,
            away_score if away_score is not None else game.away_score,
            status or game.status,
        )
        if update.conflict:
            db.session.rollback()
            _fail(update.conflict)

    mark_for_settlement([game])
    db.session.commit()
    click.echo(f"✅ Game {game_id} ({game.away_team} @ {game.home_team}) queued for settlement")


# Leaderboard Commands
@cli.group()
def leaderboard():
    """Leaderboard commands"""
    pass


@leaderboard.command()
@click.option("--season", type=int, help="Season (default: current season)")
@click.option("--pending", is_flag=True, help="Only drain queued refresh requests")
@with_appcontext
def recompute(season, pending):
    """Rebuild leaderboards"""
    season = _season(season)
    if pending:
        summary = leaderboard_aggregator.recompute_pending(season)
        click.echo(f"✅ Refreshed weeks: {summary['weeks'] or 'none'}")
        return

    summary = leaderboard_aggregator.recompute_all(season)
    click.echo(f"✅ Rebuilt {season} leaderboards ({len(summary['weeks'])} weeks)")


@leaderboard.command()
@click.argument("scope", type=click.Choice(LEADERBOARD_SCOPES))
@click.option("--season", type=int, help="Season (default: current season)")
@click.option("--week", type=int, help="Week (weekly scope only)")
@click.option("--limit", type=int, default=25, help="Rows to show")
@with_appcontext
def show(scope, season, week, limit):
    """Print stored standings"""
    season = _season(season)
    try:
        entries = leaderboard_aggregator.get_leaderboard(scope, season, week)
    except PickemError as e:
        _fail(e)

    if not entries:
        click.echo("No standings yet.")
        return

    for entry in entries[:limit]:
        click.echo(
            f"{entry['rank']:>3}. {entry['display_name']:<24} {entry['total_points']:>5} pts  "
            f"{entry['record']:<9} lock {entry['lock_record']}  ({entry['pick_source']})"
        )


# Pick Source Commands
@cli.group()
def picks():
    """Pick source administration"""
    pass


@picks.command("set-source")
@click.argument("user_id", type=int)
@click.argument("week", type=int)
@click.argument("source", type=click.Choice(["authenticated", "anonymous"]))
@click.option("--season", type=int, help="Season (default: current season)")
@click.option("--admin-id", type=int, help="Admin user recording the change")
@click.option("--reason", help="Why this source was chosen")
@with_appcontext
def set_source(user_id, week, source, season, admin_id, reason):
    """Choose which pick source counts for a user's week"""
    season = _season(season)
    try:
        pick_source_resolver.set_preference(
            user_id, season, week, source, admin_user_id=admin_id, reasoning=reason
        )
    except PickemError as e:
        _fail(e)
    click.echo(f"✅ User {user_id} {season} week {week} now uses {source} picks")


@picks.command("clear-source")
@click.argument("user_id", type=int)
@click.argument("week", type=int)
@click.option("--season", type=int, help="Season (default: current season)")
@click.option("--admin-id", type=int, help="Admin user recording the change")
@with_appcontext
def clear_source(user_id, week, season, admin_id):
    """Remove a pick source preference"""
    season = _season(season)
    if pick_source_resolver.clear_preference(user_id, season, week, admin_user_id=admin_id):
        click.echo(f"✅ Preference cleared for user {user_id} {season} week {week}")
    else:
        click.echo("No preference to clear.")


@picks.command("combine")
@click.argument("user_id", type=int)
@click.argument("week", type=int)
@click.argument("members_json")
@click.option("--season", type=int, help="Season (default: current season)")
@click.option("--admin-id", type=int, help="Admin user recording the change")
@click.option("--reason", help="Why this combination was built")
@with_appcontext
def combine(user_id, week, members_json, season, admin_id, reason):
    """Save a custom combination.

    MEMBERS_JSON is a list like
    '[{"source": "authenticated", "pick_id": 12, "is_lock": true}, ...]'
    """
    season = _season(season)
    try:
        members = json.loads(members_json)
    except ValueError as e:
        _fail(f"Members must be JSON: {e}")

    try:
        combination = pick_source_resolver.save_custom_combination(
            user_id, season, week, members, admin_user_id=admin_id, reasoning=reason
        )
    except PickemError as e:
        _fail(e)
    click.echo(
        f"✅ Combination saved for user {user_id} {season} week {week} "
        f"({len(combination.members)} picks)"
    )


@picks.command("clear-combination")
@click.argument("user_id", type=int)
@click.argument("week", type=int)
@click.option("--season", type=int, help="Season (default: current season)")
@click.option("--admin-id", type=int, help="Admin user recording the change")
@with_appcontext
def clear_combination(user_id, week, season, admin_id):
    """Remove a custom combination"""
    season = _season(season)
    if pick_source_resolver.clear_custom_combination(
        user_id, season, week, admin_user_id=admin_id
    ):
        click.echo(f"✅ Combination cleared for user {user_id} {season} week {week}")
    else:
        click.echo("No combination to clear.")


@picks.command("history")
@click.argument("user_id", type=int)
@click.option("--limit", type=int, default=20, help="Actions to show")
@with_appcontext
def history(user_id, limit):
    """Show recent admin actions for a participant"""
    actions = AdminAction.get_recent_actions(target_user_id=user_id, limit=limit)
    if not actions:
        click.echo("No admin actions recorded.")
        return

    for action in actions:
        data = action.to_dict()
        click.echo(
            f"{data['created_at']}  {data['season']} week {data['week']}  "
            f"{data['action_type']}: {data['description']}"
        )


# Game Commands
@cli.group()
def games():
    """Game commands"""
    pass


@games.command("lock-status")
@click.argument("week", type=int)
@click.option("--season", type=int, help="Season (default: current season)")
@with_appcontext
def lock_status(week, season):
    """Show lock deadlines for a week"""
    season = _season(season)
    now = get_utc_time()
    week_games = Game.get_games_for_week(season, week)
    if not week_games:
        click.echo(f"No games for {season} week {week}.")
        return

    for game in week_games:
        lock = game.lock_info
        state = "🔒" if game.is_locked(now) else "🟢"
        flags = []
        if lock.is_custom:
            flags.append("custom")
        if lock.is_unusual:
            flags.append("unusual")
        click.echo(
            f"{state} {game.away_team} @ {game.home_team}: locks "
            f"{format_league_time(lock.lock_time)}"
            + (f" ({', '.join(flags)})" if flags else "")
        )


@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("🏈 Pigskin Engine Status")
    click.echo("=" * 40)

    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except Exception as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    season = _season(None)
    click.echo(f"📅 Current Season: {season}")
    click.echo(f"👥 Users: {User.query.count()}")

    game_count = Game.query.filter_by(season=season).count()
    final_count = Game.query.filter_by(season=season, status="completed").count()
    queued = Game.query.filter_by(season=season, needs_settlement=True).count()
    click.echo(f"🏈 Games: {final_count}/{game_count} completed, {queued} queued for settlement")
    click.echo(f"📊 Pending leaderboard refreshes: {LeaderboardRefresh.query.count()}")

    cache_stats = get_cache_stats()
    click.echo(f"💾 Cache: {cache_stats['type']} (timeout {cache_stats['timeout']}s)")


if __name__ == "__main__":
    from pigskin import create_app

    app = create_app()
    with app.app_context():
        cli()
