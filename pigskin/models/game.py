from datetime import datetime, timezone

from pigskin import db

GAME_STATUSES = ("scheduled", "in_progress", "completed")


class Game(db.Model):
    __tablename__ = "games"

    id = db.Column(db.Integer, primary_key=True)

    # Game identification
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)

    # Teams
    home_team = db.Column(db.String(100), nullable=False)
    away_team = db.Column(db.String(100), nullable=False)

    # Point spread, home-relative (negative = home team favored)
    spread = db.Column(db.Float, nullable=False, default=0.0)

    # Game timing (naive UTC)
    kickoff_time = db.Column(db.DateTime, nullable=False)
    custom_lock_time = db.Column(db.DateTime)

    # Lifecycle
    status = db.Column(db.String(20), nullable=False, default="scheduled")
    home_score = db.Column(db.Integer)
    away_score = db.Column(db.Integer)
    game_period = db.Column(db.Integer)  # display only
    game_clock = db.Column(db.String(20))  # display only

    # External ID for the score feed
    external_id = db.Column(db.String(50), unique=True, index=True)

    # Settlement work queue
    needs_settlement = db.Column(db.Boolean, default=False, nullable=False)
    settlement_requested_at = db.Column(db.DateTime)
    last_settled_at = db.Column(db.DateTime)

    # Last ATS outcome, kept for display
    ats_winner = db.Column(db.String(100))
    margin_bonus = db.Column(db.Integer)

    # Submitted, leaderboard-visible pick counts per side (non-lock and lock)
    home_team_picks = db.Column(db.Integer, default=0, nullable=False)
    home_team_locks = db.Column(db.Integer, default=0, nullable=False)
    away_team_picks = db.Column(db.Integer, default=0, nullable=False)
    away_team_locks = db.Column(db.Integer, default=0, nullable=False)
    total_picks = db.Column(db.Integer, default=0, nullable=False)
    pick_stats_updated_at = db.Column(db.DateTime)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    picks = db.relationship(
        "Pick", backref="game", lazy="dynamic", cascade="all, delete-orphan"
    )
    anonymous_picks = db.relationship(
        "AnonymousPick", backref="game", lazy="dynamic", cascade="all, delete-orphan"
    )

    # Indexes
    __table_args__ = (
        db.Index("idx_game_season_week", "season", "week"),
        db.Index("idx_game_kickoff", "kickoff_time"),
        db.Index("idx_game_settlement_queue", "needs_settlement", "settlement_requested_at"),
        db.CheckConstraint("home_team != away_team", name="different_teams"),
        db.CheckConstraint(
            "status IN ('scheduled', 'in_progress', 'completed')", name="valid_game_status"
        ),
    )

    def __repr__(self):
        return f"<Game {self.away_team} @ {self.home_team} Week {self.week}>"

    @property
    def is_final(self):
        return self.status == "completed"

    @property
    def lock_info(self):
        """Lock deadline details for this game"""
        # Lazy import to avoid circular imports
        from pigskin.utils.lock_time import calculate_lock_time

        return calculate_lock_time(self.kickoff_time, self.custom_lock_time)

    def is_locked(self, now=None):
        """Check if picks for this game can no longer change"""
        from pigskin.utils.lock_time import is_game_locked

        return is_game_locked(self, now)

    @staticmethod
    def get_games_for_week(season, week):
        """Get all games for a specific week ordered by kickoff"""
        return (
            Game.query.filter_by(season=season, week=week)
            .order_by(Game.kickoff_time, Game.id)
            .all()
        )

    def to_dict(self, now=None):
        """Convert game to dictionary for API responses"""
        lock = self.lock_info
        return {
            "id": self.id,
            "season": self.season,
            "week": self.week,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "spread": self.spread,
            "kickoff_time": self.kickoff_time.isoformat() if self.kickoff_time else None,
            "status": self.status,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "game_period": self.game_period,
            "game_clock": self.game_clock,
            "ats_winner": self.ats_winner,
            "margin_bonus": self.margin_bonus,
            "pick_stats": {
                "home_team_picks": self.home_team_picks,
                "home_team_locks": self.home_team_locks,
                "away_team_picks": self.away_team_picks,
                "away_team_locks": self.away_team_locks,
                "total_picks": self.total_picks,
            },
            "lock_time": lock.lock_time.isoformat(),
            "has_custom_lock_time": lock.is_custom,
            "unusual_lock_time": lock.is_unusual,
            "is_locked": self.is_locked(now),
        }

    def update_pick_stats(self, picks, now=None):
        """Recount picks per side from submitted, leaderboard-visible picks"""
        counted = [p for p in picks if p.submitted and p.show_on_leaderboard]
        self.home_team_picks = sum(
            1 for p in counted if p.selected_team == self.home_team and not p.is_lock
        )
        self.home_team_locks = sum(
            1 for p in counted if p.selected_team == self.home_team and p.is_lock
        )
        self.away_team_picks = sum(
            1 for p in counted if p.selected_team == self.away_team and not p.is_lock
        )
        self.away_team_locks = sum(
            1 for p in counted if p.selected_team == self.away_team and p.is_lock
        )
        self.total_picks = len(counted)
        self.pick_stats_updated_at = now
