from datetime import datetime, timezone

from pigskin import db
from pigskin.utils.timezone_utils import get_utc_time, to_naive_utc

LEADERBOARD_SCOPES = ("weekly", "season", "best_finish")

# Stored week for season-wide scopes; NULLs would slip past the unique constraint
SEASON_WIDE_WEEK = 0


class LeaderboardEntry(db.Model):
    """Materialized leaderboard row.

    Rows are derived from settled picks and rewritten wholesale per scope by
    the leaderboard aggregator; nothing else writes them.
    """

    __tablename__ = "leaderboard_entries"

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(20), nullable=False)
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False, default=SEASON_WIDE_WEEK)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    display_name = db.Column(db.String(100), nullable=False)
    # Which kinds of picks made up the row: authenticated, anonymous or mixed
    pick_source = db.Column(db.String(20))

    total_picks = db.Column(db.Integer, default=0, nullable=False)
    wins = db.Column(db.Integer, default=0, nullable=False)
    losses = db.Column(db.Integer, default=0, nullable=False)
    pushes = db.Column(db.Integer, default=0, nullable=False)
    lock_wins = db.Column(db.Integer, default=0, nullable=False)
    lock_losses = db.Column(db.Integer, default=0, nullable=False)
    total_points = db.Column(db.Integer, default=0, nullable=False)
    rank = db.Column(db.Integer, nullable=False)

    computed_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("scope", "season", "week", "user_id", name="unique_scope_user_entry"),
        db.Index("idx_leaderboard_scope_rank", "scope", "season", "week", "rank"),
    )

    def __repr__(self):
        return f"<LeaderboardEntry {self.scope} {self.season}/{self.week} #{self.rank} {self.display_name}>"

    @property
    def record(self):
        return f"{self.wins}-{self.losses}-{self.pushes}"

    @property
    def lock_record(self):
        return f"{self.lock_wins}-{self.lock_losses}"

    def to_dict(self):
        return {
            "scope": self.scope,
            "season": self.season,
            "week": self.week if self.scope == "weekly" else None,
            "rank": self.rank,
            "user_id": self.user_id,
            "display_name": self.display_name,
            "pick_source": self.pick_source,
            "total_picks": self.total_picks,
            "wins": self.wins,
            "losses": self.losses,
            "pushes": self.pushes,
            "lock_wins": self.lock_wins,
            "lock_losses": self.lock_losses,
            "total_points": self.total_points,
            "record": self.record,
            "lock_record": self.lock_record,
        }


class LeaderboardRefresh(db.Model):
    """A (season, week) whose leaderboards must be recomputed"""

    __tablename__ = "leaderboard_refreshes"

    id = db.Column(db.Integer, primary_key=True)
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)
    requested_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("season", "week", name="unique_refresh_week"),
    )

    def __repr__(self):
        return f"<LeaderboardRefresh {self.season}/{self.week}>"

    @staticmethod
    def request(season, week, now=None):
        """Flag a week for recomputation; repeated requests collapse into one row"""
        now = to_naive_utc(now or get_utc_time())
        existing = LeaderboardRefresh.query.filter_by(season=season, week=week).first()
        if existing:
            existing.requested_at = now
            return existing

        refresh = LeaderboardRefresh(season=season, week=week, requested_at=now)
        db.session.add(refresh)
        return refresh
