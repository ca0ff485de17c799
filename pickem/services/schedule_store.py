"""
Schedule Store: seasons, weeks and games.

Source of truth for which games exist, when they start and their current
status and score. Week and season creation go through atomic
create-if-absent statements so concurrent first use never duplicates rows.
"""

import logging
from datetime import date, datetime, timezone

from flask import current_app
from sqlalchemy import func

from pickem import db
from pickem.models import Game, Season, Team, Week
from pickem.models.game import STATUS_COMPLETED, STATUS_ORDER, STATUS_SCHEDULED
from pickem.utils.cache_utils import invalidate_cache
from pickem.utils.db_utils import insert_or_ignore
from pickem.utils.errors import InvalidTransition, NotFound, ValidationError
from pickem.utils.timezone_utils import as_utc

logger = logging.getLogger(__name__)


def nfl_season_year(day):
    """Season year a date belongs to; January to July close out the previous season"""
    return day.year - 1 if day.month <= 7 else day.year


class ScheduleStore:
    """Reads and mutates the season/week/game schedule"""

    def __init__(self, clock=None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self):
        return self._clock()

    # Seasons

    def get_active_season(self):
        return Season.get_current_season()

    def get_season(self, season_id):
        season = db.session.get(Season, season_id)
        if not season:
            raise NotFound(f"Season {season_id} not found")
        return season

    def create_season(
        self,
        year,
        start_date=None,
        end_date=None,
        regular_season_weeks=None,
        playoff_weeks=None,
        activate=False,
    ):
        """Create the season for ``year`` unless it exists; returns it"""
        season = insert_or_ignore(
            Season,
            {
                "year": year,
                "name": f"{year} NFL Season",
                # Rough estimate when the schedule has not been published
                "start_date": start_date or date(year, 9, 1),
                "end_date": end_date or date(year + 1, 2, 15),
                "regular_season_weeks": regular_season_weeks
                or current_app.config["DEFAULT_REGULAR_SEASON_WEEKS"],
                "playoff_weeks": playoff_weeks
                if playoff_weeks is not None
                else current_app.config["DEFAULT_PLAYOFF_WEEKS"],
                "is_active": False,
                "created_at": self.now(),
                "updated_at": self.now(),
            },
            ["year"],
        )
        if activate:
            self.activate_season(season.id)
        else:
            invalidate_cache("seasons")
        return season

    def activate_season(self, season_id):
        """Activate one season and deactivate all others"""
        season = self.get_season(season_id)
        Season.query.filter(Season.id != season.id).update({"is_active": False})
        season.is_active = True
        db.session.commit()
        invalidate_cache("seasons")
        logger.info(f"Activated season {season.year}")
        return season

    # Weeks

    def get_week(self, week_id):
        week = db.session.get(Week, week_id)
        if not week:
            raise NotFound(f"Week {week_id} not found")
        return week

    def get_or_create_week(self, season_id, number):
        """Atomic create-if-absent on (season_id, number)"""
        season = self.get_season(season_id)
        if not isinstance(number, int) or not season.has_week_number(number):
            raise ValidationError(
                f"Week number must be between 1 and {season.num_weeks}",
                week_number=number,
            )
        return insert_or_ignore(
            Week,
            {"season_id": season.id, "number": number, "created_at": self.now()},
            ["season_id", "number"],
        )

    def get_current_week(self):
        """
        The earliest week whose lock time has not passed, otherwise the most
        recently started week. Raises NotFound without a configured season
        or when the season has no weeks.
        """
        season = self.get_active_season()
        if not season:
            raise NotFound("No active season configured")

        weeks = season.weeks.order_by(Week.number).all()
        if not weeks:
            raise NotFound(f"Season {season.year} has no weeks")

        now = self.now()
        for week in weeks:
            if not week.is_locked(now):
                return week
        return weeks[-1]

    def get_or_create_current_week(self):
        """
        Current week, creating the active season (for today's season year) and
        the week derived from the calendar on first use.
        """
        season = self.get_active_season()
        if not season:
            season = self.create_season(
                nfl_season_year(self.now().date()), activate=True
            )
            logger.info(f"Created season {season.year} on first use")

        if season.weeks.count():
            return self.get_current_week()

        number = season.week_number_for(self.now().date())
        week = self.get_or_create_week(season.id, number)
        logger.info(f"Created week {week.number} for season {season.year}")
        return week

    # Teams and games

    def get_or_create_team(
        self, season_id, abbreviation, name=None, city="", external_id=None, **extra
    ):
        if not abbreviation:
            raise ValidationError("Team abbreviation is required")
        team = insert_or_ignore(
            Team,
            {
                "season_id": season_id,
                "abbreviation": abbreviation.upper(),
                "name": name or abbreviation.upper(),
                "city": city or "",
                "external_id": external_id,
                "created_at": self.now(),
                **extra,
            },
            ["season_id", "abbreviation"],
        )
        return team

    def get_game(self, game_id):
        if game_id is None:
            raise ValidationError("game_id is required")
        game = db.session.get(Game, game_id)
        if not game:
            raise NotFound(f"Game {game_id} not found")
        return game

    def add_game(self, week_id, home_team_id, away_team_id, game_time, external_id=None):
        """Schedule a game and move the week's lock time to the earliest kickoff"""
        week = self.get_week(week_id)
        if home_team_id == away_team_id:
            raise ValidationError("A team cannot play itself")
        for team_id in (home_team_id, away_team_id):
            team = db.session.get(Team, team_id)
            if not team or team.season_id != week.season_id:
                raise ValidationError(
                    f"Team {team_id} does not belong to season {week.season_id}"
                )
        if game_time is None:
            raise ValidationError("game_time is required")

        game = Game(
            season_id=week.season_id,
            week_id=week.id,
            home_team_id=home_team_id,
            away_team_id=away_team_id,
            game_time=as_utc(game_time),
            external_id=external_id,
            status=STATUS_SCHEDULED,
        )
        db.session.add(game)
        self._refresh_lock_time(week, as_utc(game_time))
        db.session.commit()
        return game

    def _refresh_lock_time(self, week, kickoff):
        if week.lock_time is None or kickoff < as_utc(week.lock_time):
            week.lock_time = kickoff

    def list_games(self, week_id):
        """Games for a week in schedule order; each call is a fresh query"""
        week = self.get_week(week_id)
        return week.games.order_by(Game.game_time, Game.id).all()

    def update_game_result(self, game_id, status, home_score=None, away_score=None):
        """
        Move a game forward through scheduled -> in_progress -> completed and
        record its score. Backward moves raise InvalidTransition.
        """
        game = self.get_game(game_id)

        if status not in STATUS_ORDER:
            raise ValidationError(f"Unknown game status '{status}'", status=status)
        if (home_score is None) != (away_score is None):
            raise ValidationError("home_score and away_score must be set together")
        if status == STATUS_SCHEDULED and home_score is not None:
            raise ValidationError("A scheduled game cannot have a score")
        if status == STATUS_COMPLETED and home_score is None and game.home_score is None:
            raise ValidationError("A completed game needs a final score")
        for score in (home_score, away_score):
            if score is not None and (not isinstance(score, int) or score < 0):
                raise ValidationError("Scores must be non-negative integers")

        if not game.can_transition_to(status):
            raise InvalidTransition(
                f"Game {game.id} cannot move from {game.status} to {status}",
                current=game.status,
                requested=status,
            )

        previous = game.status
        game.status = status
        if home_score is not None:
            game.home_score = home_score
            game.away_score = away_score
        db.session.commit()

        if previous != status:
            logger.info(f"Game {game.id} moved {previous} -> {status}")
        return game

    # Feed integration

    def import_week_schedule(self, season, week_number, feed_games):
        """
        Upsert teams and games for one week from the feed.

        Games are matched by external id; kickoff times of existing games are
        refreshed, status and score are left to update_game_result.
        """
        week = self.get_or_create_week(season.id, week_number)
        imported = []

        for feed_game in feed_games:
            home = self.get_or_create_team(season.id, **feed_game["home_team"])
            away = self.get_or_create_team(season.id, **feed_game["away_team"])
            kickoff = feed_game["game_time"]

            game = Game.query.filter_by(external_id=feed_game["external_id"]).first()
            if game:
                game.game_time = kickoff
                db.session.flush()
                week.lock_time = (
                    db.session.query(func.min(Game.game_time))
                    .filter(Game.week_id == week.id)
                    .scalar()
                )
                db.session.commit()
            else:
                game = self.add_game(
                    week.id, home.id, away.id, kickoff, feed_game["external_id"]
                )
            imported.append(game)

        logger.info(
            f"Imported {len(imported)} games for season {season.year} week {week_number}"
        )
        return imported

    def apply_feed_results(self, results):
        """
        Apply normalized feed results to stored games.

        Unknown external ids are skipped. A backward status move reported by
        the feed is logged and ignored so one bad tuple never blocks the rest.
        """
        counts = {"updated": 0, "unchanged": 0, "unknown": 0, "rejected": 0}

        for result in results:
            game = Game.query.filter_by(external_id=result["game_external_id"]).first()
            if not game:
                counts["unknown"] += 1
                continue

            home_score = result.get("home_score")
            away_score = result.get("away_score")
            if result["status"] == STATUS_SCHEDULED:
                home_score = away_score = None

            if (
                game.status == result["status"]
                and game.home_score == home_score
                and game.away_score == away_score
            ):
                counts["unchanged"] += 1
                continue

            try:
                self.update_game_result(game.id, result["status"], home_score, away_score)
                counts["updated"] += 1
            except (InvalidTransition, ValidationError) as e:
                db.session.rollback()
                logger.warning(
                    f"Skipping feed result for game {game.id} ({game.external_id}): {e.message}"
                )
                counts["rejected"] += 1

        return counts
