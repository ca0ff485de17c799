from datetime import datetime, timezone

from pickem import db
from pickem.utils.timezone_utils import as_utc


class Week(db.Model):
    __tablename__ = "weeks"

    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)
    number = db.Column(db.Integer, nullable=False)

    # Picks close at the first kickoff of the week; unset until games exist
    lock_time = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    games = db.relationship(
        "Game", backref="week", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.UniqueConstraint("season_id", "number", name="unique_season_week"),
        db.CheckConstraint("number >= 1", name="positive_week_number"),
    )

    def __repr__(self):
        return f"<Week {self.number} season_id={self.season_id}>"

    def is_locked(self, now=None):
        """True once the first game of the week has kicked off"""
        if self.lock_time is None:
            return False
        now = now or datetime.now(timezone.utc)
        return as_utc(self.lock_time) <= now

    def to_dict(self):
        return {
            "id": self.id,
            "season_id": self.season_id,
            "number": self.number,
            "lock_time": as_utc(self.lock_time).isoformat() if self.lock_time else None,
            "is_locked": self.is_locked(),
            "is_playoff": self.season.is_playoff_week(self.number) if self.season else False,
        }
