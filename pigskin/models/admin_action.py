from datetime import datetime, timezone

from pigskin import db


class AdminAction(db.Model):
    __tablename__ = "admin_actions"

    id = db.Column(db.Integer, primary_key=True)

    # Action details
    admin_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    target_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=True
    )  # User whose picks are affected
    season = db.Column(db.Integer, nullable=True)
    week = db.Column(db.Integer, nullable=True)

    # Action type and details
    action_type = db.Column(
        db.String(50), nullable=False
    )  # 'set_pick_source', 'save_combination', 'clear_combination', etc.
    action_description = db.Column(db.String(500), nullable=False)

    # Additional context data (JSON)
    action_metadata = db.Column(db.JSON, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    admin_user = db.relationship("User", foreign_keys=[admin_user_id])
    target_user = db.relationship("User", foreign_keys=[target_user_id])

    # Indexes
    __table_args__ = (
        db.Index("idx_admin_action_target_week", "target_user_id", "season", "week"),
        db.Index("idx_admin_action_type", "action_type"),
        db.Index("idx_admin_action_created", "created_at"),
    )

    def __repr__(self):
        return f"<AdminAction {self.action_type} target={self.target_user_id} week={self.week}>"

    @staticmethod
    def log_action(
        admin_user_id,
        action_type,
        description,
        target_user_id=None,
        season=None,
        week=None,
        action_metadata=None,
    ):
        """Log an admin action"""
        action = AdminAction(
            admin_user_id=admin_user_id,
            target_user_id=target_user_id,
            season=season,
            week=week,
            action_type=action_type,
            action_description=description,
            action_metadata=action_metadata or {},
        )

        db.session.add(action)
        return action

    @staticmethod
    def get_recent_actions(target_user_id=None, limit=50):
        """Get recent admin actions, optionally for one participant"""
        query = AdminAction.query
        if target_user_id is not None:
            query = query.filter_by(target_user_id=target_user_id)
        return query.order_by(AdminAction.created_at.desc()).limit(limit).all()

    def to_dict(self):
        """Convert admin action to dictionary"""
        return {
            "id": self.id,
            "admin_user_id": self.admin_user_id,
            "target_user_id": self.target_user_id,
            "season": self.season,
            "week": self.week,
            "action_type": self.action_type,
            "description": self.action_description,
            "metadata": self.action_metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
