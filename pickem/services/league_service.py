import logging

from flask import current_app

from pickem import db
from pickem.models import League, LeagueMember, Season
from pickem.models.league_member import MEMBER_ACTIVE, ROLE_MEMBER, ROLE_OWNER
from pickem.utils.errors import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)


class LeagueService:
    """League creation and membership"""

    def get_league(self, league_id):
        league = db.session.get(League, league_id)
        if not league or not league.is_active:
            raise NotFound(f"League {league_id} not found")
        return league

    def create_league(
        self, creator_id, name, season_id=None, description=None, max_members=None
    ):
        """Create a league; the creator joins as owner"""
        name = (name or "").strip()
        if not name:
            raise ValidationError("League name is required")
        if len(name) > 100:
            raise ValidationError("League name must be at most 100 characters")

        if season_id is None:
            season = Season.get_current_season()
            if not season:
                raise NotFound("No active season found")
        else:
            season = db.session.get(Season, season_id)
            if not season:
                raise NotFound(f"Season {season_id} not found")

        max_members = max_members or current_app.config.get("DEFAULT_LEAGUE_SIZE", 50)
        if max_members < 1:
            raise ValidationError("max_members must be at least 1")

        league = League(
            name=name,
            description=description,
            season_id=season.id,
            creator_id=creator_id,
            max_members=max_members,
        )
        db.session.add(league)
        db.session.flush()

        db.session.add(
            LeagueMember(user_id=creator_id, league_id=league.id, role=ROLE_OWNER)
        )
        db.session.commit()

        logger.info(f"League created: {league.id} '{league.name}' by user {creator_id}")
        return league

    def join_league(self, user_id, invite_code):
        """Join by invite code, reactivating a previous membership"""
        if not invite_code:
            raise ValidationError("An invite code is required")

        league = League.query.filter_by(
            invite_code=invite_code.strip().upper(), is_active=True
        ).first()
        if not league:
            raise NotFound("No league matches that invite code")

        existing = league.members.filter_by(user_id=user_id).first()
        if existing and existing.is_active:
            raise Conflict("Already a member of this league", league_id=league.id)
        if league.is_full():
            raise ValidationError("League is full", league_id=league.id)

        if existing:
            existing.reactivate()
            message = "Membership reactivated"
        else:
            db.session.add(
                LeagueMember(user_id=user_id, league_id=league.id, role=ROLE_MEMBER)
            )
            message = "Joined league"
        db.session.commit()

        logger.info(f"User {user_id} joined league {league.id}: {message}")
        return league

    def leave_league(self, user_id, league_id):
        """Mark the membership inactive; picks are kept"""
        league = self.get_league(league_id)
        member = league.members.filter_by(user_id=user_id, status=MEMBER_ACTIVE).first()
        if not member:
            raise NotFound(f"User {user_id} is not a member of league {league_id}")

        member.deactivate()
        db.session.commit()
        logger.info(f"User {user_id} left league {league_id}")
        return member

    def get_user_leagues(self, user_id):
        """Active leagues the user is an active member of"""
        return (
            League.query.join(LeagueMember, LeagueMember.league_id == League.id)
            .filter(
                LeagueMember.user_id == user_id,
                LeagueMember.status == MEMBER_ACTIVE,
                League.is_active.is_(True),
            )
            .order_by(League.created_at, League.id)
            .all()
        )
