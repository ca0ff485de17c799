"""
Result Feed Adapter: the ESPN scoreboard API mapped onto game results.

The adapter only fetches and normalizes. Every transport, timeout or payload
failure surfaces as UpstreamUnavailable and is never retried past the
adapter's own backoff; ResultSync records the outcome in the cache so
standings can report how fresh their data is.
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from functools import wraps

import requests
from flask import current_app

from pickem import cache
from pickem.models.game import STATUS_COMPLETED, STATUS_IN_PROGRESS, STATUS_SCHEDULED
from pickem.services.schedule_store import ScheduleStore
from pickem.utils.errors import NotFound, UpstreamUnavailable, ValidationError
from pickem.utils.timezone_utils import as_utc, parse_feed_time

logger = logging.getLogger(__name__)

FEED_STATUS_CACHE_KEY = "result_feed_status"

# ESPN season types
REGULAR_SEASON = 2
POSTSEASON = 3

_STATUS_MAP = {
    "pre": STATUS_SCHEDULED,
    "in": STATUS_IN_PROGRESS,
    "post": STATUS_COMPLETED,
    STATUS_SCHEDULED: STATUS_SCHEDULED,
    STATUS_IN_PROGRESS: STATUS_IN_PROGRESS,
    "in-progress": STATUS_IN_PROGRESS,
    STATUS_COMPLETED: STATUS_COMPLETED,
}


def normalize_status(state):
    """Map a feed status state onto scheduled/in_progress/completed"""
    key = (state or "").strip().lower()
    if key not in _STATUS_MAP:
        raise ValidationError(f"Unknown feed status '{state}'", state=state)
    return _STATUS_MAP[key]


def rate_limit_decorator(max_retries=3, base_delay=1.0, backoff_factor=2.0):
    """
    Retry a request method with exponential backoff on 429, 5xx and
    transport errors. Gives up with UpstreamUnavailable.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            last_error = None
            for attempt in range(max_retries):
                delay = base_delay * (backoff_factor**attempt)
                try:
                    response = func(self, *args, **kwargs)
                except requests.exceptions.RequestException as e:
                    last_error = e
                    logger.warning(
                        f"Feed request failed: {e}. Retry {attempt + 1}/{max_retries}"
                    )
                    if attempt < max_retries - 1:
                        time.sleep(delay)
                    continue

                if response.status_code == 429:
                    retry_after = float(response.headers.get("Retry-After", delay))
                    last_error = f"rate limited ({response.status_code})"
                    logger.warning(
                        f"Feed rate limited. Waiting {retry_after}s before retry {attempt + 1}/{max_retries}"
                    )
                    if attempt < max_retries - 1:
                        time.sleep(retry_after)
                    continue
                if response.status_code >= 500:
                    last_error = f"server error {response.status_code}"
                    logger.warning(
                        f"Feed server error {response.status_code}. Retry {attempt + 1}/{max_retries}"
                    )
                    if attempt < max_retries - 1:
                        time.sleep(delay)
                    continue

                return response

            raise UpstreamUnavailable(
                f"Result feed unavailable after {max_retries} attempts: {last_error}"
            )

        return wrapper

    return decorator


class ResultFeedAdapter:
    """Fetches scoreboards and schedules from the result feed"""

    def __init__(self, api_base_url=None, timeout=None, session=None):
        config = current_app.config
        self.api_base_url = (api_base_url or config["RESULT_FEED_BASE_URL"]).rstrip("/")
        self.timeout = timeout or config.get("RESULT_FEED_TIMEOUT", 10)
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": "NFL-Pickem-Core/1.0"})

        self.min_request_interval = 0.5
        self.max_requests_per_minute = 60
        self.last_request_time = 0
        self.request_timestamps = []

    def _enforce_rate_limit(self):
        current_time = time.time()
        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        if len(self.request_timestamps) >= self.max_requests_per_minute:
            sleep_time = 60 - (current_time - self.request_timestamps[0])
            if sleep_time > 0:
                logger.info(f"Feed rate limit reached. Sleeping for {sleep_time:.1f}s")
                time.sleep(sleep_time)
                self.request_timestamps = []

        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_request_interval:
            time.sleep(self.min_request_interval - time_since_last)

        self.last_request_time = time.time()
        self.request_timestamps.append(self.last_request_time)

    @rate_limit_decorator(max_retries=3, base_delay=2.0)
    def _make_api_request(self, path, params=None):
        self._enforce_rate_limit()
        return self.session.get(
            f"{self.api_base_url}/{path}", params=params, timeout=self.timeout
        )

    def _get_json(self, path, params=None):
        response = self._make_api_request(path, params=params)
        if response.status_code >= 400:
            raise UpstreamUnavailable(
                f"Result feed returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"Result feed returned invalid JSON: {e}")
        if not isinstance(data, dict) or not isinstance(data.get("events", []), list):
            raise UpstreamUnavailable("Result feed returned a malformed scoreboard")
        return data

    @staticmethod
    def _scoreboard_params(season_year, week, regular_season_weeks):
        params = {}
        if season_year is not None:
            params["dates"] = season_year
        if week is not None:
            if week > regular_season_weeks:
                params["seasontype"] = POSTSEASON
                params["week"] = week - regular_season_weeks
            else:
                params["seasontype"] = REGULAR_SEASON
                params["week"] = week
        return params

    @staticmethod
    def _competitors(event):
        competitions = event.get("competitions") or []
        if not competitions:
            return None, None, {}
        competition = competitions[0]
        home = away = None
        for competitor in competition.get("competitors", []):
            if competitor.get("homeAway") == "home":
                home = competitor
            elif competitor.get("homeAway") == "away":
                away = competitor
        return home, away, competition

    @staticmethod
    def _score(competitor):
        score = competitor.get("score")
        if score in (None, ""):
            return 0
        return int(score)

    def _parse_result(self, event):
        home, away, competition = self._competitors(event)
        if not event.get("id") or home is None or away is None:
            raise ValidationError("Event is missing its id or competitors")

        status_type = (competition.get("status") or event.get("status") or {}).get(
            "type", {}
        )
        status = normalize_status(status_type.get("state"))

        result = {
            "game_external_id": str(event["id"]),
            "status": status,
            "home_score": None,
            "away_score": None,
        }
        if status != STATUS_SCHEDULED:
            result["home_score"] = self._score(home)
            result["away_score"] = self._score(away)
        return result

    def fetch_scoreboard(self, season_year=None, week=None, regular_season_weeks=18):
        """
        Fetch normalized results for one week, or the feed's current week when
        no week is given.

        Returns:
            List of {"game_external_id", "home_score", "away_score", "status"}
        """
        data = self._get_json(
            "scoreboard", self._scoreboard_params(season_year, week, regular_season_weeks)
        )

        results = []
        for event in data.get("events", []):
            try:
                results.append(self._parse_result(event))
            except (ValidationError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping feed event {event.get('id')}: {e}")
        logger.info(f"Fetched {len(results)} results from feed (week={week})")
        return results

    @staticmethod
    def _team(competitor):
        team = competitor.get("team") or {}
        abbreviation = (team.get("abbreviation") or "").upper()
        if not abbreviation:
            raise ValidationError("Competitor has no team abbreviation")
        descriptor = {
            "abbreviation": abbreviation,
            "name": team.get("name") or team.get("displayName") or abbreviation,
            "city": team.get("location", ""),
            "external_id": str(team["id"]) if team.get("id") else None,
        }
        if team.get("color"):
            descriptor["primary_color"] = f"#{team['color']}"
        if team.get("logo"):
            descriptor["logo_url"] = team["logo"]
        return descriptor

    def fetch_week_schedule(self, season_year, week, regular_season_weeks=18):
        """
        Fetch one week's games with their team descriptors.

        Returns:
            List of {"external_id", "game_time", "status", "home_team", "away_team"}
        """
        data = self._get_json(
            "scoreboard", self._scoreboard_params(season_year, week, regular_season_weeks)
        )

        games = []
        for event in data.get("events", []):
            try:
                home, away, _ = self._competitors(event)
                if not event.get("id") or home is None or away is None:
                    raise ValidationError("Event is missing its id or competitors")
                game_time = parse_feed_time(event.get("date"))
                if game_time is None:
                    raise ValidationError("Event has no start time")
                games.append(
                    {
                        "external_id": str(event["id"]),
                        "game_time": game_time,
                        "status": self._parse_result(event)["status"],
                        "home_team": self._team(home),
                        "away_team": self._team(away),
                    }
                )
            except (ValidationError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping feed event {event.get('id')}: {e}")
        logger.info(f"Fetched {len(games)} scheduled games for {season_year} week {week}")
        return games


def get_feed_status():
    """Last recorded sync outcome, or an empty dict before the first sync"""
    return cache.get(FEED_STATUS_CACHE_KEY) or {}


def _record_feed_status(**changes):
    status = dict(get_feed_status())
    status.update(changes)
    cache.set(FEED_STATUS_CACHE_KEY, status, timeout=0)
    return status


def is_feed_stale(status, now=None, stale_after=None):
    """
    Stale when the last sync failed or the last success is too old. Data that
    never came from the feed is not considered stale.
    """
    if not status:
        return False
    if status.get("last_error"):
        return True
    last_success = status.get("last_success_at")
    if not last_success:
        return False
    if stale_after is None:
        stale_after = current_app.config.get("FEED_STALE_AFTER", 900)
    now = as_utc(now) if now else datetime.now(timezone.utc)
    return now - as_utc(datetime.fromisoformat(last_success)) > timedelta(
        seconds=stale_after
    )


class ResultSync:
    """Fetches feed results and applies them through the Schedule Store"""

    def __init__(self, adapter=None, store=None):
        self.adapter = adapter or ResultFeedAdapter()
        self.store = store or ScheduleStore()

    def _target_week(self, week):
        if week is not None:
            return week
        try:
            return self.store.get_current_week().number
        except NotFound:
            return None

    def sync(self, week=None):
        """
        Pull results for ``week`` (default: the current week) and apply them.

        Raises:
            NotFound: No active season
            UpstreamUnavailable: The feed failed; the failure is recorded first
        """
        season = self.store.get_active_season()
        if not season:
            raise NotFound("No active season configured")
        week_number = self._target_week(week)
        attempted_at = self.store.now().isoformat()

        try:
            results = self.adapter.fetch_scoreboard(
                season.year, week_number, season.regular_season_weeks
            )
        except UpstreamUnavailable as e:
            _record_feed_status(last_attempt_at=attempted_at, last_error=e.message)
            logger.warning(f"Result sync failed for week {week_number}: {e.message}")
            raise

        counts = self.store.apply_feed_results(results)
        counts["fetched"] = len(results)
        _record_feed_status(
            last_attempt_at=attempted_at, last_success_at=attempted_at, last_error=None
        )
        logger.info(f"Result sync for {season.year} week {week_number}: {counts}")
        return counts

    def sync_schedule(self, week):
        """Import one week's schedule for the active season"""
        season = self.store.get_active_season()
        if not season:
            raise NotFound("No active season configured")
        feed_games = self.adapter.fetch_week_schedule(
            season.year, week, season.regular_season_weeks
        )
        return self.store.import_week_schedule(season, week, feed_games)
