"""
Background result syncing with APScheduler.

Live results are pulled every 90 seconds while games are being played, a full
sync of the current week runs hourly, and the schedule for the current and
next week is re-imported every Tuesday.
"""

import atexit
import logging
from datetime import datetime, timezone

import pytz
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from pickem import db
from pickem.models import Game, Season
from pickem.models.game import STATUS_IN_PROGRESS
from pickem.services.result_feed import ResultSync
from pickem.utils.errors import PickemError

logger = logging.getLogger(__name__)

EASTERN = pytz.timezone("US/Eastern")

# Thursday, Saturday, Sunday, Monday
GAME_DAYS = (3, 5, 6, 0)


def is_game_time(now=None):
    """Typical NFL kickoff windows, noon to 1 AM US Eastern on game days"""
    now = now or datetime.now(timezone.utc)
    eastern = now.astimezone(EASTERN)
    if eastern.hour < 1:
        # Late games spill past midnight into the next day
        return eastern.weekday() in tuple((day + 1) % 7 for day in GAME_DAYS)
    return eastern.weekday() in GAME_DAYS and eastern.hour >= 12


class SchedulerService:
    """Owns the background scheduler and its sync jobs"""

    def __init__(self, app=None, result_sync_factory=None):
        self.scheduler = None
        self.app = app
        self.result_sync_factory = result_sync_factory or ResultSync
        self.is_running = False
        self.sync_stats = {
            "last_sync": None,
            "total_syncs": 0,
            "successful_syncs": 0,
            "failed_syncs": 0,
            "last_error": None,
            "games_updated": 0,
        }

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")
        atexit.register(self.shutdown)

        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        if self.is_running:
            return

        self.scheduler.remove_all_jobs()
        self._add_core_jobs()
        self.scheduler.start()
        self.is_running = True
        logger.info("Scheduler started successfully")

    def stop(self):
        if not self.is_running:
            return

        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Scheduler stopped")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        self.scheduler.add_job(
            func=self._sync_live_games,
            trigger=IntervalTrigger(seconds=90),
            id="sync_live_games",
            name="Sync Live Game Results",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30,
        )

        self.scheduler.add_job(
            func=self._hourly_sync,
            trigger=CronTrigger(minute=0),
            id="hourly_sync",
            name="Hourly Result Sync",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )

        # Tuesday 6 AM UTC, after Monday night football
        self.scheduler.add_job(
            func=self._weekly_schedule_sync,
            trigger=CronTrigger(day_of_week=1, hour=6, minute=0),
            id="weekly_schedule_sync",
            name="Weekly Schedule Update",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        logger.info("Core scheduled jobs added")

    def _has_live_games(self):
        season = Season.get_current_season()
        if not season:
            return False
        return (
            Game.query.filter_by(season_id=season.id, status=STATUS_IN_PROGRESS).count()
            > 0
        )

    def run_result_sync(self, week=None):
        """
        One result sync inside the app context. Failures are recorded and
        logged, never raised into the scheduler thread.
        """
        with self.app.app_context():
            try:
                counts = self.result_sync_factory().sync(week)
            except PickemError as e:
                db.session.rollback()
                self._update_stats(False, error=e.message)
                logger.warning(f"Scheduled result sync failed: {e.message}")
                return None

            self._update_stats(True, counts.get("updated", 0))
            return counts

    def _sync_live_games(self):
        """High-frequency sync, only while games may be live"""
        with self.app.app_context():
            should_run = is_game_time() or self._has_live_games()
        if should_run:
            self.run_result_sync()

    def _hourly_sync(self):
        logger.info("Running hourly result sync...")
        self.run_result_sync()

    def _weekly_schedule_sync(self):
        """Re-import the current and next week's schedule"""
        with self.app.app_context():
            sync = self.result_sync_factory()
            try:
                week = sync.store.get_or_create_current_week()
                season = week.season
                for number in (week.number, week.number + 1):
                    if season.has_week_number(number):
                        sync.sync_schedule(number)
                self._update_stats(True)
                logger.info("Weekly schedule sync completed")
            except PickemError as e:
                db.session.rollback()
                self._update_stats(False, error=e.message)
                logger.warning(f"Weekly schedule sync issues: {e.message}")

    def _update_stats(self, success, games_updated=0, error=None):
        self.sync_stats["last_sync"] = datetime.now(timezone.utc)
        self.sync_stats["total_syncs"] += 1

        if success:
            self.sync_stats["successful_syncs"] += 1
            self.sync_stats["games_updated"] += games_updated
            self.sync_stats["last_error"] = None
        else:
            self.sync_stats["failed_syncs"] += 1
            self.sync_stats["last_error"] = error

    def get_status(self):
        """Scheduler state, jobs and sync counters"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = job.next_run_time
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        return {"is_running": self.is_running, "jobs": jobs, "stats": self.sync_stats}


# Global scheduler instance
scheduler_service = SchedulerService()
