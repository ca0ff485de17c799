from datetime import datetime, timezone

from pickem import db


class Season(db.Model):
    __tablename__ = "seasons"

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, nullable=False, unique=True, index=True)
    name = db.Column(db.String(50), nullable=False)  # e.g., "2025 NFL Season"

    # Season dates
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    regular_season_weeks = db.Column(db.Integer, default=18, nullable=False)
    playoff_weeks = db.Column(db.Integer, default=4, nullable=False)

    # Status
    is_active = db.Column(db.Boolean, default=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    weeks = db.relationship(
        "Week",
        backref="season",
        lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="Week.number",
    )
    teams = db.relationship("Team", backref="season", lazy="dynamic")

    __table_args__ = (
        db.Index("idx_season_active", "is_active"),
        db.Index("idx_season_dates", "start_date", "end_date"),
    )

    def __repr__(self):
        return f"<Season {self.year}>"

    @property
    def num_weeks(self):
        """Total number of weeks including playoffs"""
        return (self.regular_season_weeks or 0) + (self.playoff_weeks or 0)

    @staticmethod
    def get_current_season():
        """Get the currently active season"""
        return Season.query.filter_by(is_active=True).first()

    def is_playoff_week(self, week_number):
        """Check if a week number is a playoff week"""
        return week_number > self.regular_season_weeks

    def has_week_number(self, week_number):
        return 1 <= week_number <= self.num_weeks

    def week_number_for(self, day):
        """Week number a calendar date falls in, clamped to the season"""
        if day <= self.start_date:
            return 1
        week_number = (day - self.start_date).days // 7 + 1
        return min(week_number, self.num_weeks)

    def to_dict(self):
        """Convert season to dictionary for API responses"""
        return {
            "id": self.id,
            "year": self.year,
            "name": self.name,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "is_active": self.is_active,
            "num_weeks": self.num_weeks,
            "regular_season_weeks": self.regular_season_weeks,
            "playoff_weeks": self.playoff_weeks,
        }
