#!/usr/bin/env python3
"""
NFL Pick'em Management CLI

Command-line management for seasons, result syncing, leagues and demo data.
"""

import json
from datetime import date

import click
from flask.cli import with_appcontext
from sqlalchemy import text

from pickem import create_app, db
from pickem.models import Game, League, Season, User
from pickem.models.game import STATUS_COMPLETED, STATUS_SCHEDULED
from pickem.services.league_service import LeagueService
from pickem.services.pick_service import PickService
from pickem.services.result_feed import ResultSync, get_feed_status
from pickem.services.schedule_store import ScheduleStore
from pickem.services.standings_service import StandingsService
from pickem.utils.cache_utils import get_cache_stats
from pickem.utils.errors import PickemError
from pickem.utils.timezone_utils import parse_feed_time


def _fail(error):
    raise click.ClickException(f"❌ {error.message}")


@click.group()
def cli():
    """NFL Pick'em Management CLI"""
    pass


# Season Management Commands
@cli.group()
def season():
    """Season management commands"""
    pass


@season.command("create")
@click.argument("year", type=int)
@click.option(
    "--start-date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Season start date (YYYY-MM-DD)",
)
@click.option(
    "--end-date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Season end date (YYYY-MM-DD)",
)
@click.option("--regular-weeks", type=int, help="Regular season weeks")
@click.option("--playoff-weeks", type=int, help="Playoff weeks")
@click.option("--activate", is_flag=True, help="Activate this season")
@with_appcontext
def create_season(year, start_date, end_date, regular_weeks, playoff_weeks, activate):
    """Create a season (no-op if it already exists)"""
    try:
        season = ScheduleStore().create_season(
            year,
            start_date=start_date.date() if start_date else None,
            end_date=end_date.date() if end_date else None,
            regular_season_weeks=regular_weeks,
            playoff_weeks=playoff_weeks,
            activate=activate,
        )
    except PickemError as e:
        _fail(e)

    click.echo(
        f"✅ Season {season.year} ({season.start_date} to {season.end_date}, "
        f"{season.num_weeks} weeks)"
    )
    if activate:
        click.echo(f"✅ Activated season {season.year}")


@season.command("activate")
@click.argument("year", type=int)
@with_appcontext
def activate_season(year):
    """Activate a season"""
    season = Season.query.filter_by(year=year).first()
    if not season:
        raise click.ClickException(f"❌ Season {year} not found!")

    ScheduleStore().activate_season(season.id)
    click.echo(f"✅ Activated season {year}")


@season.command("list")
@with_appcontext
def list_seasons():
    """List all seasons"""
    seasons = Season.query.order_by(Season.year.desc()).all()

    if not seasons:
        click.echo("No seasons found.")
        return

    click.echo("Seasons:")
    for s in seasons:
        status = "🟢 ACTIVE" if s.is_active else "⚪ Inactive"
        click.echo(f"  {s.year}: {status} - {s.weeks.count()}/{s.num_weeks} weeks")


# Week Commands
@cli.group()
def week():
    """Week commands"""
    pass


@week.command("ensure-current")
@with_appcontext
def ensure_current_week():
    """Create the active season and current week if missing"""
    try:
        current = ScheduleStore().get_or_create_current_week()
    except PickemError as e:
        _fail(e)
    click.echo(f"✅ Current week: {current.season.year} week {current.number}")


# Data Sync Commands
@cli.group()
def sync():
    """Result feed sync commands"""
    pass


@sync.command("schedule")
@click.argument("week_number", type=int)
@with_appcontext
def sync_schedule(week_number):
    """Import one week's schedule for the active season"""
    try:
        games = ResultSync().sync_schedule(week_number)
    except PickemError as e:
        _fail(e)
    click.echo(f"✅ Imported {len(games)} games for week {week_number}")


@sync.command("results")
@click.option("--week", "week_number", type=int, help="Week number (default: current)")
@with_appcontext
def sync_results(week_number):
    """Pull results from the feed and apply them"""
    try:
        counts = ResultSync().sync(week_number)
    except PickemError as e:
        _fail(e)
    click.echo(
        f"✅ Fetched {counts['fetched']} results: {counts['updated']} updated, "
        f"{counts['unchanged']} unchanged, {counts['unknown']} unknown, "
        f"{counts['rejected']} rejected"
    )


# League Commands
@cli.group()
def league():
    """League commands"""
    pass


@league.command("standings")
@click.argument("league_id", type=int)
@click.option("--week", "week_number", type=int, help="Single week instead of season")
@click.option("--refresh", is_flag=True, help="Sync results from the feed first")
@with_appcontext
def league_standings(league_id, week_number, refresh):
    """Print league standings"""
    try:
        result = StandingsService().get_standings(
            league_id, week=week_number, refresh=refresh
        )
    except PickemError as e:
        _fail(e)

    scope = f"week {week_number}" if week_number else "season"
    click.echo(f"🏆 League {league_id} standings ({scope})")
    click.echo("=" * 40)
    for standing in result["standings"]:
        click.echo(
            f"  {standing.rank:>3}. {standing.username:<20} {standing.total_score:>4} "
            f"({standing.trend})"
        )
    if result["stale"]:
        click.echo(f"⚠️  Results may be stale: {result['feed_error'] or 'feed out of date'}")


# User Commands
@cli.group()
def user():
    """User management commands"""
    pass


@user.command("promote")
@click.argument("identity")
@with_appcontext
def promote_user(identity):
    """Grant site admin rights to an identity key"""
    try:
        account = PickService().get_or_create_user(identity)
    except PickemError as e:
        _fail(e)
    account.is_admin = True
    db.session.commit()
    click.echo(f"✅ {account.username} is now an admin")


# Demo data
@cli.group()
def seed():
    """Demo data commands"""
    pass


def load_fixture(data):
    """
    Load a demo fixture through the service layer.

    Games are created scheduled, picks are submitted, then any results in the
    fixture are applied, so the usual lock rules hold for seeded data too.

    Returns:
        Dict of created object counts
    """
    store = ScheduleStore()
    pick_service = PickService()
    league_service = LeagueService()

    season_data = data["season"]
    season = store.create_season(
        season_data["year"],
        start_date=date.fromisoformat(season_data["start_date"])
        if season_data.get("start_date")
        else None,
        regular_season_weeks=season_data.get("regular_season_weeks"),
        playoff_weeks=season_data.get("playoff_weeks"),
        activate=season_data.get("activate", True),
    )

    teams = {}
    for team in data.get("teams", []):
        created = store.get_or_create_team(season.id, **team)
        teams[created.abbreviation] = created

    games = {}
    results = []
    for week_data in data.get("weeks", []):
        week = store.get_or_create_week(season.id, week_data["number"])
        for game_data in week_data.get("games", []):
            game = store.add_game(
                week.id,
                teams[game_data["home"].upper()].id,
                teams[game_data["away"].upper()].id,
                parse_feed_time(game_data["game_time"]),
                game_data.get("external_id"),
            )
            games[game_data.get("external_id") or str(game.id)] = game
            if game_data.get("status", STATUS_SCHEDULED) != STATUS_SCHEDULED:
                results.append((game, game_data))

    users = {key: pick_service.get_or_create_user(key) for key in data.get("users", [])}

    leagues = []
    for league_data in data.get("leagues", []):
        owner = users[league_data["owner"]]
        created = league_service.create_league(
            owner.id, league_data["name"], season_id=season.id
        )
        for member in league_data.get("members", []):
            league_service.join_league(users[member].id, created.invite_code)
        leagues.append(created)

    for pick in data.get("picks", []):
        game = games[str(pick["game"])]
        pick_service.submit_pick(
            users[pick["user"]].id, game.week_id, game.id, teams[pick["team"].upper()].id
        )

    for game, game_data in results:
        store.update_game_result(
            game.id,
            game_data["status"],
            game_data.get("home_score"),
            game_data.get("away_score"),
        )

    return {
        "teams": len(teams),
        "games": len(games),
        "users": len(users),
        "leagues": len(leagues),
        "picks": len(data.get("picks", [])),
        "results": len(results),
    }


@seed.command("load")
@click.argument("fixture", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def load_seed(fixture):
    """Load a JSON demo fixture"""
    with open(fixture) as f:
        data = json.load(f)

    try:
        counts = load_fixture(data)
    except PickemError as e:
        db.session.rollback()
        _fail(e)
    except (KeyError, ValueError) as e:
        db.session.rollback()
        raise click.ClickException(f"❌ Invalid fixture: {e}")

    click.echo(
        "✅ Loaded " + ", ".join(f"{count} {name}" for name, count in counts.items())
    )


@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("🏈 NFL Pick'em Application Status")
    click.echo("=" * 40)

    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except Exception as e:
        click.echo(f"❌ Database: Error - {str(e)}")

    current_season = Season.get_current_season()
    if current_season:
        click.echo(f"✅ Current Season: {current_season.year}")
        game_count = Game.query.filter_by(season_id=current_season.id).count()
        final_count = Game.query.filter_by(
            season_id=current_season.id, status=STATUS_COMPLETED
        ).count()
        click.echo(f"🏈 Games: {final_count}/{game_count} completed")
    else:
        click.echo("⚠️  Current Season: None active")

    click.echo(f"👥 Active Users: {User.query.filter_by(is_active=True).count()}")
    click.echo(f"🏆 Active Leagues: {League.query.filter_by(is_active=True).count()}")

    feed_status = get_feed_status()
    if feed_status.get("last_error"):
        click.echo(f"⚠️  Result feed: {feed_status['last_error']}")
    else:
        click.echo(f"📡 Result feed last synced: {feed_status.get('last_success_at') or 'never'}")

    cache_stats = get_cache_stats()
    click.echo(f"🗄️  Cache: {cache_stats['type']} ({cache_stats['timeout']}s)")


if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        cli()
