from datetime import datetime, timezone

from pickem import db
from pickem.utils.timezone_utils import as_utc, format_game_time

STATUS_SCHEDULED = "scheduled"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"

# Status only ever moves forward through this sequence
STATUS_ORDER = (STATUS_SCHEDULED, STATUS_IN_PROGRESS, STATUS_COMPLETED)


class Game(db.Model):
    __tablename__ = "games"

    id = db.Column(db.Integer, primary_key=True)

    # Game identification
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)
    week_id = db.Column(db.Integer, db.ForeignKey("weeks.id"), nullable=False)

    # Teams
    home_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)
    away_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)

    # Game timing
    game_time = db.Column(db.DateTime, nullable=False)

    # Status and scores (scores stay NULL until the feed reports them)
    status = db.Column(db.String(20), nullable=False, default=STATUS_SCHEDULED)
    home_score = db.Column(db.Integer)
    away_score = db.Column(db.Integer)

    # External ID for result feed integration
    external_id = db.Column(db.String(50), unique=True, index=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    picks = db.relationship(
        "Pick", backref="game", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_game_week_time", "week_id", "game_time"),
        db.Index("idx_game_season_status", "season_id", "status"),
        db.CheckConstraint("home_team_id != away_team_id", name="different_teams"),
        db.CheckConstraint(
            "(home_score IS NULL) = (away_score IS NULL)", name="scores_paired"
        ),
        db.CheckConstraint(
            "status IN ('scheduled', 'in_progress', 'completed')", name="valid_status"
        ),
    )

    def __repr__(self):
        return f'<Game {self.away_team.abbreviation if self.away_team else "TBD"} @ {self.home_team.abbreviation if self.home_team else "TBD"} week_id={self.week_id}>'

    @property
    def is_final(self):
        return self.status == STATUS_COMPLETED

    @property
    def is_tie(self):
        """Check if game ended in a tie"""
        return self.is_final and self.home_score is not None and self.home_score == self.away_score

    @property
    def winning_team_id(self):
        """Winning team id (None if game not final or tie)"""
        if not self.is_final or self.home_score is None or self.is_tie:
            return None
        if self.home_score > self.away_score:
            return self.home_team_id
        return self.away_team_id

    @property
    def margin_of_victory(self):
        if not self.is_final or self.home_score is None:
            return None
        return abs(self.home_score - self.away_score)

    def involves_team(self, team_id):
        return team_id in (self.home_team_id, self.away_team_id)

    def has_started(self, now=None):
        """Check if the scheduled kickoff has passed"""
        if not self.game_time:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= as_utc(self.game_time)

    def can_transition_to(self, status):
        return STATUS_ORDER.index(status) >= STATUS_ORDER.index(self.status)

    def is_pickable(self):
        """Picks are open only while the game is scheduled"""
        return self.status == STATUS_SCHEDULED

    def to_dict(self):
        """Convert game to dictionary for API responses"""
        return {
            "id": self.id,
            "season_id": self.season_id,
            "week_id": self.week_id,
            "week": self.week.number if self.week else None,
            "game_time": as_utc(self.game_time).isoformat() if self.game_time else None,
            "local_game_time": format_game_time(self.game_time),
            "home_team": self.home_team.to_dict() if self.home_team else None,
            "away_team": self.away_team.to_dict() if self.away_team else None,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "status": self.status,
            "winning_team_id": self.winning_team_id,
            "margin_of_victory": self.margin_of_victory,
            "is_pickable": self.is_pickable(),
            "external_id": self.external_id,
        }
