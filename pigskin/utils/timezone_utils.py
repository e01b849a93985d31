"""
Timezone utility functions for the league's civil clock
"""

from datetime import datetime, timezone

import pytz
from flask import current_app, has_app_context

DEFAULT_LEAGUE_TIMEZONE = "America/Chicago"


def get_league_timezone(timezone_name=None):
    """Get the league-wide civil timezone used for lock deadlines"""
    if timezone_name is None:
        if has_app_context():
            timezone_name = current_app.config.get(
                "LEAGUE_TIMEZONE", DEFAULT_LEAGUE_TIMEZONE
            )
        else:
            timezone_name = DEFAULT_LEAGUE_TIMEZONE
    try:
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        # Fallback to UTC if timezone is invalid
        return pytz.UTC


def get_utc_time():
    """Get current time in UTC. The single source of "now" for the engine."""
    return datetime.now(timezone.utc)


def ensure_utc(dt):
    """Treat naive datetimes as UTC and convert aware ones to UTC"""
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def to_naive_utc(dt):
    """Convert a datetime to the naive UTC form stored in the database"""
    if dt is None:
        return None
    return ensure_utc(dt).replace(tzinfo=None)


def convert_to_league_timezone(dt, tz=None):
    """Convert a datetime to the league timezone"""
    if dt is None:
        return None

    league_tz = tz or get_league_timezone()
    return ensure_utc(dt).astimezone(league_tz)


def localize_civil_time(day, hour, minute=0, tz=None):
    """Build an aware UTC datetime for a wall-clock time on a league calendar day"""
    league_tz = tz or get_league_timezone()
    local = league_tz.localize(datetime(day.year, day.month, day.day, hour, minute))
    return local.astimezone(timezone.utc)


def format_league_time(dt, format_str="%a %m/%d at %I:%M %p %Z"):
    """Format a datetime in the league timezone"""
    if dt is None:
        return "TBD"

    return convert_to_league_timezone(dt).strftime(format_str)
