from datetime import datetime, timezone

from pickem import db

MEMBER_ACTIVE = "active"
MEMBER_INACTIVE = "inactive"

ROLE_OWNER = "owner"
ROLE_MEMBER = "member"


class LeagueMember(db.Model):
    __tablename__ = "league_members"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    league_id = db.Column(db.Integer, db.ForeignKey("leagues.id"), nullable=False)

    # Membership status and role
    status = db.Column(db.String(10), nullable=False, default=MEMBER_ACTIVE)
    role = db.Column(db.String(10), nullable=False, default=ROLE_MEMBER)

    # Timestamps; joined_at orders members for standings tie-breaks
    joined_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    left_at = db.Column(db.DateTime)

    __table_args__ = (
        db.UniqueConstraint("user_id", "league_id", name="unique_user_league"),
        db.Index("idx_league_members_status", "league_id", "status"),
        db.Index("idx_user_memberships", "user_id", "status"),
    )

    def __repr__(self):
        return f"<LeagueMember user_id={self.user_id} league_id={self.league_id}>"

    @property
    def is_active(self):
        return self.status == MEMBER_ACTIVE

    def deactivate(self):
        """Deactivate membership"""
        self.status = MEMBER_INACTIVE
        self.left_at = datetime.now(timezone.utc)

    def reactivate(self):
        """Reactivate membership; rejoining moves the member to the back of the join order"""
        self.status = MEMBER_ACTIVE
        self.left_at = None
        self.joined_at = datetime.now(timezone.utc)

    def to_dict(self):
        """Convert membership to dictionary for API responses"""
        return {
            "user_id": self.user_id,
            "league_id": self.league_id,
            "username": self.user.username if self.user else None,
            "display_name": self.user.full_name if self.user else None,
            "role": self.role,
            "status": self.status,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }
