from datetime import datetime, timezone

from pigskin import db

PICK_SOURCES = ("authenticated", "anonymous")


class PickSourcePreference(db.Model):
    """Admin choice of which pick source counts for a user's week"""

    __tablename__ = "pick_source_preferences"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)

    preferred_source = db.Column(db.String(20), nullable=False)
    reasoning = db.Column(db.Text)
    set_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "season", "week", name="unique_user_week_preference"),
        db.CheckConstraint(
            "preferred_source IN ('authenticated', 'anonymous')", name="valid_preferred_source"
        ),
    )

    def __repr__(self):
        return f"<PickSourcePreference user_id={self.user_id} week={self.week} source={self.preferred_source}>"

    @staticmethod
    def get_for(user_id, season, week):
        return PickSourcePreference.query.filter_by(
            user_id=user_id, season=season, week=week
        ).first()


class CustomPickCombination(db.Model):
    """Admin-curated six pick set that overrides every other precedence rule"""

    __tablename__ = "custom_pick_combinations"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)

    reasoning = db.Column(db.Text)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    members = db.relationship(
        "CustomPickCombinationMember",
        backref="combination",
        cascade="all, delete-orphan",
        order_by="CustomPickCombinationMember.id",
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "season", "week", name="unique_user_week_combination"),
    )

    def __repr__(self):
        return f"<CustomPickCombination user_id={self.user_id} week={self.week} members={len(self.members)}>"

    @staticmethod
    def get_for(user_id, season, week):
        return CustomPickCombination.query.filter_by(
            user_id=user_id, season=season, week=week
        ).first()

    @property
    def lock_member(self):
        return next((m for m in self.members if m.is_lock), None)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "season": self.season,
            "week": self.week,
            "reasoning": self.reasoning,
            "created_by": self.created_by,
            "members": [member.to_dict() for member in self.members],
        }


class CustomPickCombinationMember(db.Model):
    __tablename__ = "custom_pick_combination_members"

    id = db.Column(db.Integer, primary_key=True)
    combination_id = db.Column(
        db.Integer, db.ForeignKey("custom_pick_combinations.id"), nullable=False
    )

    source = db.Column(db.String(20), nullable=False)
    pick_id = db.Column(db.Integer, db.ForeignKey("picks.id"), nullable=True)
    anonymous_pick_id = db.Column(
        db.Integer, db.ForeignKey("anonymous_picks.id"), nullable=True
    )

    is_lock = db.Column(db.Boolean, default=False, nullable=False)
    show_in_combination = db.Column(db.Boolean, default=True, nullable=False)

    __table_args__ = (
        db.CheckConstraint(
            "(pick_id IS NULL) != (anonymous_pick_id IS NULL)", name="exactly_one_origin"
        ),
        db.Index("idx_combination_member_combination", "combination_id"),
    )

    @property
    def key(self):
        if self.source == "authenticated":
            return ("authenticated", self.pick_id)
        return ("anonymous", self.anonymous_pick_id)

    def to_dict(self):
        source, member_id = self.key
        return {
            "source": source,
            "pick_id": member_id,
            "is_lock": self.is_lock,
            "show_in_combination": self.show_in_combination,
        }
