from datetime import datetime, timezone

from flask import current_app
from flask_login import UserMixin

from pickem import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    # Stable opaque identity key supplied by the identity provider
    username = db.Column(db.String(120), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(100))

    # Account status
    is_active = db.Column(db.Boolean, default=True)
    is_admin = db.Column(db.Boolean, default=False)  # Site-wide admin privileges

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    picks = db.relationship(
        "Pick", backref="user", lazy="dynamic", cascade="all, delete-orphan"
    )
    league_memberships = db.relationship(
        "LeagueMember", backref="user", lazy="dynamic", cascade="all, delete-orphan"
    )
    created_leagues = db.relationship("League", backref="creator", lazy="dynamic")

    __table_args__ = (db.Index("idx_user_active_status", "is_active"),)

    def __repr__(self):
        return f"<User {self.username}>"

    @property
    def full_name(self):
        """Return display name or username"""
        return self.display_name or self.username

    @property
    def has_admin_rights(self):
        """Site admin flag or listed in ADMIN_IDENTITIES"""
        if self.is_admin:
            return True
        return self.username in current_app.config.get("ADMIN_IDENTITIES", [])

    def to_dict(self):
        """Convert user to dictionary for API responses"""
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.full_name,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
