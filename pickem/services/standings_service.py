"""
Standings Engine: loads snapshots for one league and ranks its members.

Nothing is stored; every call reads the current picks and results and runs
the pure computation in pickem.utils.scoring. A feed refresh is optional and
its failure only marks the response stale.
"""

import logging
from datetime import datetime, timezone

from pickem import db
from pickem.models import Game, LeagueMember, Pick, Season, User, Week
from pickem.services.league_service import LeagueService
from pickem.services.result_feed import ResultSync, get_feed_status, is_feed_stale
from pickem.utils.errors import NotFound, UpstreamUnavailable, ValidationError
from pickem.utils.scoring import (
    GameSnapshot,
    MemberSnapshot,
    PickSnapshot,
    compute_standings,
)

logger = logging.getLogger(__name__)


class StandingsService:
    def __init__(self, result_sync_factory=None, clock=None):
        self._result_sync_factory = result_sync_factory or ResultSync
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.leagues = LeagueService()

    def _load_members(self, league):
        rows = (
            db.session.query(LeagueMember, User.username)
            .join(User, LeagueMember.user_id == User.id)
            .filter(LeagueMember.league_id == league.id)
            .order_by(LeagueMember.joined_at, LeagueMember.id)
            .all()
        )
        return [
            MemberSnapshot(
                user_id=member.user_id,
                username=username,
                status=member.status,
                join_order=position,
            )
            for position, (member, username) in enumerate(rows)
        ]

    def _load_games(self, season_id):
        rows = (
            db.session.query(Game, Week.number)
            .join(Week, Game.week_id == Week.id)
            .filter(Game.season_id == season_id)
            .all()
        )
        return [
            GameSnapshot(
                game_id=game.id,
                week_number=week_number,
                home_team_id=game.home_team_id,
                away_team_id=game.away_team_id,
                status=game.status,
                home_score=game.home_score,
                away_score=game.away_score,
            )
            for game, week_number in rows
        ]

    def _load_picks(self, season_id, user_ids):
        if not user_ids:
            return []
        rows = (
            db.session.query(Pick.user_id, Pick.game_id, Pick.selected_team_id)
            .join(Game, Pick.game_id == Game.id)
            .filter(Game.season_id == season_id, Pick.user_id.in_(user_ids))
            .all()
        )
        return [
            PickSnapshot(user_id=user_id, game_id=game_id, selected_team_id=team_id)
            for user_id, game_id, team_id in rows
        ]

    def get_standings(self, league_id, week=None, refresh=False):
        """
        Ranked standings for a league, for one week number or the season.

        With ``refresh`` a feed sync runs first; if the feed is unavailable the
        standings come from stored results and the response is marked stale.
        """
        league = self.leagues.get_league(league_id)
        season = league.season
        if week is not None and not season.has_week_number(week):
            raise ValidationError(
                f"Week must be between 1 and {season.num_weeks}", week=week
            )

        feed_error = None
        active = Season.get_current_season()
        in_active_season = active is not None and active.id == season.id
        if refresh and not in_active_season:
            # The feed only ever syncs the active season
            logger.info(
                f"Skipped result refresh for league {league_id}: season {season.year} is not active"
            )
        elif refresh:
            try:
                self._result_sync_factory().sync(week)
            except UpstreamUnavailable as e:
                feed_error = e.message
                logger.warning(
                    f"Serving stored standings for league {league_id}: {e.message}"
                )
            except NotFound as e:
                logger.info(f"Skipped result refresh for league {league_id}: {e.message}")

        members = self._load_members(league)
        standings = compute_standings(
            members,
            self._load_games(season.id),
            self._load_picks(season.id, [m.user_id for m in members]),
            week=week,
        )

        # Feed freshness only describes the active season
        feed_status = get_feed_status() if in_active_season else {}
        return {
            "league_id": league.id,
            "season_year": season.year,
            "week": week,
            "standings": standings,
            "stale": feed_error is not None
            or is_feed_stale(feed_status, now=self._clock()),
            "last_synced_at": feed_status.get("last_success_at"),
            "feed_error": feed_error or feed_status.get("last_error"),
            "computed_at": self._clock().isoformat(),
        }
