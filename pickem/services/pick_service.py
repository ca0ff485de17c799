"""
Pick Service: users and their per-game selections.

A pick is keyed by (user_id, game_id). Resubmitting overwrites the selection
in place through a single INSERT ... ON CONFLICT statement, so concurrent
submissions for the same key serialize in the database and the last write
wins. Picks close as soon as the game leaves the scheduled state.
"""

import logging
from datetime import datetime, timezone

from flask import current_app

from pickem import db
from pickem.models import Game, Pick, User, Week
from pickem.utils.db_utils import insert_or_ignore, upsert
from pickem.utils.errors import NotFound, PicksLocked, ValidationError

logger = logging.getLogger(__name__)


class PickService:
    """Validates and persists picks"""

    def __init__(self, clock=None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def get_or_create_user(self, identity_key):
        """Idempotent upsert of a user by stable identity key"""
        if identity_key is None or not str(identity_key).strip():
            raise ValidationError("An identity key is required")
        identity_key = str(identity_key).strip()

        return insert_or_ignore(
            User,
            {
                "username": identity_key,
                "is_active": True,
                "is_admin": False,
                "created_at": self._clock(),
            },
            ["username"],
        )

    def get_user(self, user_id):
        user = db.session.get(User, user_id)
        if not user:
            raise NotFound(f"User {user_id} not found")
        return user

    def _validate_submission(self, user_id, game_id, selected_team_id, week_id=None):
        """Return the target game or raise the first failing rule"""
        if game_id is None:
            raise ValidationError("game_id is required")
        if selected_team_id is None:
            raise ValidationError("selected_team_id is required")

        self.get_user(user_id)

        game = db.session.get(Game, game_id)
        if not game:
            raise NotFound(f"Game {game_id} not found")

        if week_id is not None:
            if not db.session.get(Week, week_id):
                raise NotFound(f"Week {week_id} not found")
            if game.week_id != week_id:
                raise ValidationError(
                    f"Game {game_id} is not part of week {week_id}",
                    game_id=game_id,
                    week_id=week_id,
                )

        if not game.involves_team(selected_team_id):
            raise ValidationError(
                "Selected team is not participating in this game",
                game_id=game_id,
                selected_team_id=selected_team_id,
            )

        if not game.is_pickable():
            raise PicksLocked(
                f"Picks for game {game_id} are closed ({game.status})",
                game_id=game_id,
                status=game.status,
            )
        if current_app.config.get("PICKS_LOCK_AT_KICKOFF") and game.has_started(
            self._clock()
        ):
            raise PicksLocked(
                f"Picks for game {game_id} closed at kickoff", game_id=game_id
            )

        return game

    def _upsert_pick(self, user_id, game, selected_team_id):
        now = self._clock()
        return upsert(
            Pick,
            {
                "user_id": user_id,
                "week_id": game.week_id,
                "game_id": game.id,
                "selected_team_id": selected_team_id,
                "is_home_team_pick": selected_team_id == game.home_team_id,
                "created_at": now,
                "updated_at": now,
            },
            ["user_id", "game_id"],
            ["selected_team_id", "is_home_team_pick", "updated_at"],
        )

    def submit_pick(self, user_id, week_id, game_id, selected_team_id):
        """
        Create or update the user's pick for a game.

        Args:
            user_id: Picking user
            week_id: Week the caller believes the game is in (None to skip the check)
            game_id: Target game
            selected_team_id: Home or away team of the game

        Returns:
            The persisted Pick; exactly one row exists for (user_id, game_id)
        """
        game = self._validate_submission(user_id, game_id, selected_team_id, week_id)
        pick = self._upsert_pick(user_id, game, selected_team_id)
        logger.info(
            f"Pick submitted: user {user_id} picked team {selected_team_id} for game {game_id}"
        )
        return pick

    def submit_bulk_picks(self, user_id, submissions):
        """Validate every submission first, then upsert them all"""
        if not submissions:
            raise ValidationError("No picks provided")

        max_picks = current_app.config.get("MAX_BULK_PICKS", 20)
        if len(submissions) > max_picks:
            raise ValidationError(
                f"Maximum {max_picks} picks allowed per bulk submission"
            )

        seen = set()
        validated = []
        for submission in submissions:
            game_id = submission.get("game_id")
            if game_id in seen:
                raise ValidationError(f"Game {game_id} appears more than once")
            seen.add(game_id)
            game = self._validate_submission(
                user_id,
                game_id,
                submission.get("selected_team_id"),
                submission.get("week_id"),
            )
            validated.append((game, submission["selected_team_id"]))

        picks = [
            self._upsert_pick(user_id, game, selected_team_id)
            for game, selected_team_id in validated
        ]
        logger.info(f"Bulk picks submitted: user {user_id} submitted {len(picks)} picks")
        return picks

    def get_user_picks(self, user_id, week_id=None):
        """A user's picks in schedule order, optionally for one week"""
        self.get_user(user_id)

        query = (
            Pick.query.join(Game, Pick.game_id == Game.id)
            .join(Week, Pick.week_id == Week.id)
            .filter(Pick.user_id == user_id)
        )
        if week_id is not None:
            if not db.session.get(Week, week_id):
                raise NotFound(f"Week {week_id} not found")
            query = query.filter(Pick.week_id == week_id)

        return query.order_by(Week.number, Game.game_time, Game.id).all()
