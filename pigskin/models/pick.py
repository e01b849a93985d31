from datetime import datetime, timezone

from pigskin import db

PICK_RESULTS = ("win", "loss", "push")


class SettledPickMixin:
    """Columns and helpers shared by authenticated and anonymous picks"""

    selected_team = db.Column(db.String(100), nullable=False)
    is_lock = db.Column(db.Boolean, default=False, nullable=False)

    # Results (written by the pick processor)
    result = db.Column(db.String(10))
    points_earned = db.Column(db.Integer)
    settled_at = db.Column(db.DateTime)
    settlement_error = db.Column(db.String(255))

    # Admin leaderboard visibility, independent of correctness and activity
    show_on_leaderboard = db.Column(db.Boolean, default=True, nullable=False)

    # Mirror of the pick source resolver's decision; never read when scoring
    is_active_pick_set = db.Column(db.Boolean, default=True, nullable=False)

    # Drafts are saved with submitted=False and never count on leaderboards
    submitted = db.Column(db.Boolean, default=True, nullable=False)
    submitted_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    @property
    def is_settled(self):
        return self.result is not None

    def apply_settlement(self, result, points, now):
        """Write a settlement outcome, returning True if anything changed"""
        if (
            self.result == result
            and self.points_earned == points
            and self.settlement_error is None
        ):
            return False

        self.result = result
        self.points_earned = points
        self.settlement_error = None
        self.settled_at = now
        return True

    def clear_settlement(self, error=None):
        """Reset to unsettled, returning True if anything changed"""
        if (
            self.result is None
            and self.points_earned is None
            and self.settlement_error == error
        ):
            return False

        self.result = None
        self.points_earned = None
        self.settled_at = None
        self.settlement_error = error
        return True


class Pick(SettledPickMixin, db.Model):
    __tablename__ = "picks"

    id = db.Column(db.Integer, primary_key=True)

    # Pick identification
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey("games.id"), nullable=False)

    # Denormalized from the game at submission time
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Constraints and indexes
    __table_args__ = (
        db.UniqueConstraint("user_id", "game_id", name="unique_user_game_pick"),
        db.Index("idx_pick_user_week", "user_id", "season", "week"),
        db.Index("idx_pick_game", "game_id"),
    )

    source = "authenticated"

    def __repr__(self):
        return f"<Pick user_id={self.user_id} game_id={self.game_id} team={self.selected_team}>"

    @property
    def owner_id(self):
        return self.user_id

    @property
    def key(self):
        return (self.source, self.id)

    def to_dict(self):
        """Convert pick to dictionary for API responses"""
        return {
            "id": self.id,
            "source": self.source,
            "user_id": self.user_id,
            "game_id": self.game_id,
            "season": self.season,
            "week": self.week,
            "selected_team": self.selected_team,
            "is_lock": self.is_lock,
            "result": self.result,
            "points_earned": self.points_earned,
            "is_active_pick_set": self.is_active_pick_set,
            "show_on_leaderboard": self.show_on_leaderboard,
            "submitted": self.submitted,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }
