from datetime import datetime, timezone

from pickem import db


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)

    # Team identification
    name = db.Column(db.String(100), nullable=False)
    city = db.Column(db.String(100), nullable=False, default="")
    abbreviation = db.Column(db.String(10), nullable=False, index=True)

    # External ID for result feed integration
    external_id = db.Column(db.String(20), index=True)

    # Visual elements
    primary_color = db.Column(db.String(7))  # Hex color
    logo_url = db.Column(db.String(500))

    # Season context
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    home_games = db.relationship(
        "Game",
        foreign_keys="Game.home_team_id",
        backref=db.backref("home_team", lazy="joined"),
        lazy="dynamic",
    )
    away_games = db.relationship(
        "Game",
        foreign_keys="Game.away_team_id",
        backref=db.backref("away_team", lazy="joined"),
        lazy="dynamic",
    )

    __table_args__ = (
        db.UniqueConstraint(
            "season_id", "abbreviation", name="unique_team_season_abbr"
        ),
    )

    def __repr__(self):
        return f"<Team {self.abbreviation}>"

    @property
    def full_name(self):
        """Return full team name"""
        return f"{self.city} {self.name}".strip()

    def to_dict(self):
        """Convert team to dictionary for API responses"""
        return {
            "id": self.id,
            "name": self.name,
            "city": self.city,
            "full_name": self.full_name,
            "abbreviation": self.abbreviation,
            "primary_color": self.primary_color,
            "logo_url": self.logo_url,
            "season_id": self.season_id,
        }
