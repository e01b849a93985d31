from datetime import datetime, timezone

from pigskin import db


class User(db.Model):
    """Contest participant.

    Accounts are created and authenticated elsewhere; the engine only reads
    the display name and the payment-driven ``leaderboard_visible`` toggle.
    """

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    display_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, index=True)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)

    # Computed upstream from payment reconciliation
    leaderboard_visible = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    picks = db.relationship("Pick", backref="user", lazy="dynamic")
    anonymous_picks = db.relationship(
        "AnonymousPick", backref="assigned_user", lazy="dynamic"
    )

    def __repr__(self):
        return f"<User {self.display_name}>"

    def to_dict(self):
        return {
            "id": self.id,
            "display_name": self.display_name,
            "leaderboard_visible": self.leaderboard_visible,
        }
