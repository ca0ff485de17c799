from datetime import datetime, timezone

from pickem import db


class Pick(db.Model):
    __tablename__ = "picks"

    id = db.Column(db.Integer, primary_key=True)

    # Pick identification; (user_id, game_id) never changes once created
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    week_id = db.Column(db.Integer, db.ForeignKey("weeks.id"), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey("games.id"), nullable=False)

    # Pick details
    selected_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)
    is_home_team_pick = db.Column(db.Boolean, nullable=False, default=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    selected_team = db.relationship("Team", foreign_keys=[selected_team_id])
    week = db.relationship("Week", foreign_keys=[week_id])

    __table_args__ = (
        db.UniqueConstraint("user_id", "game_id", name="unique_user_game_pick"),
        db.Index("idx_pick_user_week", "user_id", "week_id"),
        db.Index("idx_pick_game", "game_id"),
    )

    def __repr__(self):
        return f"<Pick user_id={self.user_id} game_id={self.game_id} team_id={self.selected_team_id}>"

    @property
    def is_correct(self):
        """True/False once the game is final, None while open or on a tie"""
        if not self.game or not self.game.is_final:
            return None
        winner = self.game.winning_team_id
        if winner is None:
            return None
        return self.selected_team_id == winner

    def to_dict(self):
        """Convert pick to dictionary for API responses"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "week_id": self.week_id,
            "week": self.week.number if self.week else None,
            "game_id": self.game_id,
            "selected_team_id": self.selected_team_id,
            "selected_team": (
                self.selected_team.abbreviation if self.selected_team else None
            ),
            "is_home_team_pick": self.is_home_team_pick,
            "is_correct": self.is_correct,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
