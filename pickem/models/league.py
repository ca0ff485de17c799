import secrets
from datetime import datetime, timezone

from pickem import db

from .league_member import MEMBER_ACTIVE, LeagueMember


class League(db.Model):
    __tablename__ = "leagues"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)

    # League settings
    is_active = db.Column(db.Boolean, default=True)
    max_members = db.Column(db.Integer, default=50)

    # League code for easy joining
    invite_code = db.Column(db.String(8), unique=True, nullable=False, index=True)

    # Creator, season and timestamps
    creator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    members = db.relationship(
        "LeagueMember", backref="league", lazy="dynamic", cascade="all, delete-orphan"
    )
    season = db.relationship("Season", foreign_keys=[season_id])

    __table_args__ = (
        db.Index("idx_league_creator", "creator_id"),
        db.Index("idx_league_season", "season_id"),
    )

    def __repr__(self):
        return f"<League {self.name}>"

    def __init__(self, **kwargs):
        super(League, self).__init__(**kwargs)
        if not self.invite_code:
            self.invite_code = self.generate_invite_code()

    @staticmethod
    def generate_invite_code():
        """Generate a unique 8-character invite code"""
        while True:
            code = secrets.token_urlsafe(6)[:8].upper()
            if not League.query.filter_by(invite_code=code).first():
                return code

    def get_active_members(self):
        """Active members in join order"""
        return (
            self.members.filter_by(status=MEMBER_ACTIVE)
            .order_by(LeagueMember.joined_at, LeagueMember.id)
            .all()
        )

    def get_member_count(self):
        """Get count of active members"""
        return self.members.filter_by(status=MEMBER_ACTIVE).count()

    def is_full(self):
        """Check if league has reached maximum capacity"""
        return self.get_member_count() >= self.max_members

    def is_user_member(self, user_id):
        """Check if user is an active member"""
        return (
            self.members.filter_by(user_id=user_id, status=MEMBER_ACTIVE).first()
            is not None
        )

    def to_dict(self, include_members=False):
        """Convert league to dictionary for API responses"""
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "invite_code": self.invite_code,
            "member_count": self.get_member_count(),
            "max_members": self.max_members,
            "season_id": self.season_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "creator": self.creator.username if self.creator else None,
        }

        if include_members:
            data["members"] = [member.to_dict() for member in self.get_active_members()]

        return data
