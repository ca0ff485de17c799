from datetime import datetime, timedelta, timezone

import pytest

from pickem.models import Pick, User
from pickem.services.pick_service import PickService
from pickem.services.schedule_store import ScheduleStore
from pickem.utils.errors import NotFound, PicksLocked, ValidationError
from pickem.utils.timezone_utils import as_utc

from .conftest import FixedClock, run_concurrently


class TestUsers:
    def test_get_or_create_user_is_idempotent(self, pick_service):
        first = pick_service.get_or_create_user("alice")
        second = pick_service.get_or_create_user("alice")

        assert first.id == second.id
        assert User.query.filter_by(username="alice").count() == 1

    def test_identity_key_is_trimmed(self, pick_service):
        assert pick_service.get_or_create_user("  alice ").username == "alice"

    @pytest.mark.parametrize("key", [None, "", "   "])
    def test_blank_identity_key(self, pick_service, key):
        with pytest.raises(ValidationError):
            pick_service.get_or_create_user(key)


class TestSubmitPick:
    def test_first_pick(self, pick_service, make_user, week, games, teams):
        user = make_user("alice")
        game = games[0]

        pick = pick_service.submit_pick(user.id, week.id, game.id, teams["KC"].id)

        assert pick.selected_team_id == teams["KC"].id
        assert pick.is_home_team_pick is True
        assert pick.created_at == pick.updated_at
        assert len(pick_service.get_user_picks(user.id, week.id)) == 1

    def test_resubmission_updates_in_place(self, app, make_user, week, games, teams):
        user = make_user("alice")
        game = games[0]
        clock = FixedClock(datetime.now(timezone.utc))
        service = PickService(clock=clock)

        first = service.submit_pick(user.id, week.id, game.id, teams["KC"].id)
        first_id, created_at = first.id, as_utc(first.created_at)
        clock.advance(minutes=5)
        second = service.submit_pick(user.id, week.id, game.id, teams["BAL"].id)

        picks = service.get_user_picks(user.id, week.id)
        assert len(picks) == 1
        assert second.id == first_id
        assert picks[0].selected_team_id == teams["BAL"].id
        assert picks[0].is_home_team_pick is False
        assert as_utc(picks[0].created_at) == created_at
        assert as_utc(picks[0].updated_at) == clock.now

    def test_repeated_submissions_keep_one_row(self, pick_service, make_user, week, games, teams):
        user = make_user("alice")
        for team in ("KC", "BAL", "KC", "KC"):
            pick_service.submit_pick(user.id, week.id, games[0].id, teams[team].id)

        assert Pick.query.filter_by(user_id=user.id, game_id=games[0].id).count() == 1

    def test_week_is_optional(self, pick_service, make_user, games, teams):
        user = make_user("alice")

        pick = pick_service.submit_pick(user.id, None, games[1].id, teams["DAL"].id)

        assert pick.week_id == games[1].week_id

    def test_game_not_in_week(self, store, pick_service, make_user, season, games, teams):
        other_week = store.get_or_create_week(season.id, 2)
        user = make_user("alice")

        with pytest.raises(ValidationError):
            pick_service.submit_pick(user.id, other_week.id, games[0].id, teams["KC"].id)

    def test_unknown_week(self, pick_service, make_user, games, teams):
        user = make_user("alice")

        with pytest.raises(NotFound):
            pick_service.submit_pick(user.id, 999, games[0].id, teams["KC"].id)

    def test_team_not_in_game(self, pick_service, make_user, week, games, teams):
        user = make_user("alice")

        with pytest.raises(ValidationError):
            pick_service.submit_pick(user.id, week.id, games[0].id, teams["PHI"].id)

    def test_missing_game_id(self, pick_service, make_user, week, teams):
        user = make_user("alice")

        with pytest.raises(ValidationError):
            pick_service.submit_pick(user.id, week.id, None, teams["KC"].id)

    def test_unknown_game(self, pick_service, make_user, week, teams):
        user = make_user("alice")

        with pytest.raises(NotFound):
            pick_service.submit_pick(user.id, week.id, 999, teams["KC"].id)

    def test_unknown_user(self, pick_service, week, games, teams):
        with pytest.raises(NotFound):
            pick_service.submit_pick(999, week.id, games[0].id, teams["KC"].id)

    @pytest.mark.parametrize(
        "status,scores", [("in_progress", (7, 3)), ("completed", (24, 17))]
    )
    def test_picks_lock_once_game_leaves_scheduled(
        self, store, pick_service, make_user, week, games, teams, status, scores
    ):
        user = make_user("alice")
        pick_service.submit_pick(user.id, week.id, games[0].id, teams["KC"].id)
        store.update_game_result(games[0].id, status, *scores)

        with pytest.raises(PicksLocked):
            pick_service.submit_pick(user.id, week.id, games[0].id, teams["BAL"].id)

        pick = Pick.query.filter_by(user_id=user.id, game_id=games[0].id).one()
        assert pick.selected_team_id == teams["KC"].id

    def test_kickoff_lock_is_opt_in(self, app, make_user, week, games, teams, kickoff):
        user = make_user("alice")
        after_kickoff = PickService(clock=lambda: kickoff + timedelta(minutes=1))

        after_kickoff.submit_pick(user.id, week.id, games[0].id, teams["KC"].id)

        app.config["PICKS_LOCK_AT_KICKOFF"] = True
        with pytest.raises(PicksLocked):
            after_kickoff.submit_pick(user.id, week.id, games[0].id, teams["BAL"].id)


class TestBulkPicks:
    def test_submits_all(self, pick_service, make_user, week, games, teams):
        user = make_user("alice")

        picks = pick_service.submit_bulk_picks(
            user.id,
            [
                {"game_id": games[0].id, "selected_team_id": teams["KC"].id},
                {"game_id": games[1].id, "selected_team_id": teams["DAL"].id, "week_id": week.id},
            ],
        )

        assert len(picks) == 2
        assert len(pick_service.get_user_picks(user.id)) == 2

    def test_all_or_nothing(self, store, pick_service, make_user, games, teams):
        user = make_user("alice")
        store.update_game_result(games[1].id, "in_progress", 0, 0)

        with pytest.raises(PicksLocked):
            pick_service.submit_bulk_picks(
                user.id,
                [
                    {"game_id": games[0].id, "selected_team_id": teams["KC"].id},
                    {"game_id": games[1].id, "selected_team_id": teams["DAL"].id},
                ],
            )

        assert pick_service.get_user_picks(user.id) == []

    def test_duplicate_game(self, pick_service, make_user, games, teams):
        user = make_user("alice")

        with pytest.raises(ValidationError):
            pick_service.submit_bulk_picks(
                user.id,
                [
                    {"game_id": games[0].id, "selected_team_id": teams["KC"].id},
                    {"game_id": games[0].id, "selected_team_id": teams["BAL"].id},
                ],
            )

    def test_limit(self, app, pick_service, make_user, games, teams):
        app.config["MAX_BULK_PICKS"] = 1
        user = make_user("alice")

        with pytest.raises(ValidationError):
            pick_service.submit_bulk_picks(
                user.id,
                [
                    {"game_id": games[0].id, "selected_team_id": teams["KC"].id},
                    {"game_id": games[1].id, "selected_team_id": teams["DAL"].id},
                ],
            )

    def test_empty(self, pick_service, make_user):
        with pytest.raises(ValidationError):
            pick_service.submit_bulk_picks(make_user("alice").id, [])


class TestGetUserPicks:
    def test_schedule_order_and_week_filter(
        self, store, pick_service, make_user, season, week, games, teams, kickoff
    ):
        user = make_user("alice")
        week2 = store.get_or_create_week(season.id, 2)
        later = store.add_game(
            week2.id, teams["KC"].id, teams["DAL"].id, kickoff + timedelta(days=7)
        )

        pick_service.submit_pick(user.id, week2.id, later.id, teams["KC"].id)
        pick_service.submit_pick(user.id, week.id, games[1].id, teams["PHI"].id)
        pick_service.submit_pick(user.id, week.id, games[0].id, teams["KC"].id)

        all_picks = pick_service.get_user_picks(user.id)
        assert [p.game_id for p in all_picks] == [games[0].id, games[1].id, later.id]
        assert [p.game_id for p in pick_service.get_user_picks(user.id, week2.id)] == [
            later.id
        ]

    def test_only_own_picks(self, pick_service, make_user, week, games, teams):
        alice = make_user("alice")
        bob = make_user("bob")
        pick_service.submit_pick(bob.id, week.id, games[0].id, teams["KC"].id)

        assert pick_service.get_user_picks(alice.id) == []

    def test_unknown_week(self, pick_service, make_user):
        with pytest.raises(NotFound):
            pick_service.get_user_picks(make_user("alice").id, 999)


class TestConcurrentSubmissions:
    def test_same_pick_from_many_threads_keeps_one_row(self, file_app):
        with file_app.app_context():
            store = ScheduleStore()
            season = store.create_season(2025, activate=True)
            home = store.get_or_create_team(season.id, "KC")
            away = store.get_or_create_team(season.id, "BAL")
            week = store.get_or_create_week(season.id, 1)
            game = store.add_game(
                week.id, home.id, away.id, datetime.now(timezone.utc) + timedelta(days=3)
            )
            user = PickService().get_or_create_user("alice")
            user_id, week_id, game_id = user.id, week.id, game.id
            team_ids = (home.id, away.id)

        errors = run_concurrently(
            file_app,
            lambda i: PickService().submit_pick(user_id, week_id, game_id, team_ids[i % 2]),
        )

        assert errors == []
        with file_app.app_context():
            picks = Pick.query.filter_by(user_id=user_id, game_id=game_id).all()
            assert len(picks) == 1
            assert picks[0].selected_team_id in team_ids
