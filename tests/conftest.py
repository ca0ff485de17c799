"""Shared pytest fixtures for the pick'em tests."""

import threading
from datetime import date, datetime, timedelta, timezone

import pytest
from flask import g

from pickem import create_app, db
from pickem.services.league_service import LeagueService
from pickem.services.pick_service import PickService
from pickem.services.schedule_store import ScheduleStore

TEAMS = [
    ("KC", "Chiefs", "Kansas City"),
    ("BAL", "Ravens", "Baltimore"),
    ("PHI", "Eagles", "Philadelphia"),
    ("DAL", "Cowboys", "Dallas"),
]


def auth(identity):
    """Headers the identity provider would forward for ``identity``"""
    return {"X-Identity-Key": identity}


class FixedClock:
    """Callable clock that tests can move forward"""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def app():
    """Application with a fresh in-memory database per test."""
    app = create_app("testing")
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """
    Test client for the app fixture.

    Requests share the fixture's app context, and with it `g`, so the user
    Flask-Login resolved for one request is dropped before the next.
    """

    @app.before_request
    def resolve_identity_per_request():
        g.pop("_login_user", None)

    return app.test_client()


@pytest.fixture
def file_app(tmp_path, monkeypatch):
    """App on a file-backed SQLite database, for tests that use threads"""
    monkeypatch.setenv("TEST_DATABASE_URL", f"sqlite:///{tmp_path / 'pickem.db'}")
    app = create_app("testing")
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def run_concurrently(app, target, count=16):
    """
    Call target(i) from `count` threads released together, each inside its
    own app context (and so its own session). Returns raised exceptions.
    """
    barrier = threading.Barrier(count)
    errors = []

    def worker(i):
        with app.app_context():
            barrier.wait()
            try:
                target(i)
            except Exception as e:
                errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return errors


@pytest.fixture
def store(app):
    return ScheduleStore()


@pytest.fixture
def pick_service(app):
    return PickService()


@pytest.fixture
def league_service(app):
    return LeagueService()


@pytest.fixture
def season(store):
    return store.create_season(2025, start_date=date(2025, 9, 4), activate=True)


@pytest.fixture
def teams(store, season):
    return {
        abbreviation: store.get_or_create_team(season.id, abbreviation, name, city)
        for abbreviation, name, city in TEAMS
    }


@pytest.fixture
def kickoff():
    return datetime.now(timezone.utc) + timedelta(days=3)


@pytest.fixture
def week(store, season):
    return store.get_or_create_week(season.id, 1)


@pytest.fixture
def games(store, week, teams, kickoff):
    """Two scheduled week 1 games: KC vs BAL, then PHI vs DAL"""
    first = store.add_game(week.id, teams["KC"].id, teams["BAL"].id, kickoff, "401")
    second = store.add_game(
        week.id, teams["PHI"].id, teams["DAL"].id, kickoff + timedelta(hours=3), "402"
    )
    return [first, second]


@pytest.fixture
def make_user(pick_service):
    return pick_service.get_or_create_user


@pytest.fixture
def league(league_service, make_user, season):
    """League owned by alice with bob as the second member"""
    alice = make_user("alice")
    bob = make_user("bob")
    league = league_service.create_league(alice.id, "Office Pool")
    league_service.join_league(bob.id, league.invite_code)
    return league
