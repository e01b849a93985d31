from datetime import datetime, timezone

from pigskin import db

from .pick import SettledPickMixin


class AnonymousPick(SettledPickMixin, db.Model):
    """Pick submitted before the participant had an account.

    Reconciled to a user by setting ``assigned_user_id``; until then it is
    settled like any other pick but never reaches a leaderboard.
    """

    __tablename__ = "anonymous_picks"

    id = db.Column(db.Integer, primary_key=True)

    # Submitter details
    email = db.Column(db.String(255), nullable=False, index=True)
    name = db.Column(db.String(100))

    game_id = db.Column(db.Integer, db.ForeignKey("games.id"), nullable=False)
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)

    assigned_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.Index("idx_anon_pick_assigned_week", "assigned_user_id", "season", "week"),
        db.Index("idx_anon_pick_game", "game_id"),
    )

    source = "anonymous"

    def __repr__(self):
        return f"<AnonymousPick email={self.email} game_id={self.game_id} team={self.selected_team}>"

    @property
    def owner_id(self):
        return self.assigned_user_id

    @property
    def key(self):
        return (self.source, self.id)

    def to_dict(self):
        return {
            "id": self.id,
            "source": self.source,
            "name": self.name,
            "assigned_user_id": self.assigned_user_id,
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
