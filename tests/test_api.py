import pytest

from pickem.utils.errors import UpstreamUnavailable

from .conftest import auth


class FailingSync:
    def sync(self, week=None):
        raise UpstreamUnavailable("Result feed unavailable after 3 attempts: timeout")


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


class TestIdentity:
    def test_missing_identity(self, client):
        response = client.get("/api/me")

        assert response.status_code == 401
        assert response.get_json()["kind"] == "unauthorized"

    def test_first_request_creates_user(self, client):
        response = client.get("/api/me", headers=auth("alice"))

        assert response.status_code == 200
        body = response.get_json()
        assert body["user"]["username"] == "alice"
        assert body["user"]["is_admin"] is False
        assert response.headers["Cache-Control"].startswith("no-store")

    def test_each_request_uses_its_own_identity(self, client):
        first = client.get("/api/me", headers=auth("alice")).get_json()["user"]
        second = client.get("/api/me", headers=auth("bob")).get_json()["user"]

        assert (first["username"], second["username"]) == ("alice", "bob")
        assert client.get("/api/me").status_code == 401

    def test_configured_admin(self, client):
        response = client.get("/api/me", headers=auth("commissioner"))

        assert response.get_json()["user"]["is_admin"] is True


class TestSchedule:
    def test_seasons_listing_sees_new_seasons(self, client, store):
        assert client.get("/api/seasons").get_json()["seasons"] == []

        store.create_season(2025, activate=True)

        seasons = client.get("/api/seasons").get_json()["seasons"]
        assert [s["year"] for s in seasons] == [2025]

    def test_current_week_without_season(self, client):
        response = client.get("/api/weeks/current")

        assert response.status_code == 404
        assert response.get_json()["kind"] == "not_found"

    def test_current_week(self, client, week, games):
        body = client.get("/api/weeks/current").get_json()

        assert body["week"]["id"] == week.id
        assert body["season"]["year"] == 2025

    def test_week_games_in_schedule_order(self, client, week, games):
        body = client.get(f"/api/weeks/{week.id}/games").get_json()

        assert [g["external_id"] for g in body["games"]] == ["401", "402"]
        assert body["games"][0]["home_team"]["abbreviation"] == "KC"

    def test_unknown_week_games(self, client, season):
        assert client.get("/api/weeks/999/games").status_code == 404


class TestGameResult:
    def test_requires_admin(self, client, games):
        response = client.post(
            f"/api/games/{games[0].id}/result",
            json={"status": "completed", "home_score": 24, "away_score": 17},
            headers=auth("alice"),
        )

        assert response.status_code == 403
        assert response.get_json()["kind"] == "forbidden"

    def test_admin_records_result(self, client, games):
        response = client.post(
            f"/api/games/{games[0].id}/result",
            json={"status": "completed", "home_score": 24, "away_score": 17},
            headers=auth("commissioner"),
        )

        assert response.status_code == 200
        game = response.get_json()["game"]
        assert game["status"] == "completed"
        assert game["winning_team_id"] == games[0].home_team_id

    def test_backward_transition(self, client, store, games):
        store.update_game_result(games[0].id, "completed", 24, 17)

        response = client.post(
            f"/api/games/{games[0].id}/result",
            json={"status": "scheduled"},
            headers=auth("commissioner"),
        )

        assert response.status_code == 409
        assert response.get_json()["kind"] == "invalid_transition"

    def test_scheduled_with_score_rejected(self, client, games):
        response = client.post(
            f"/api/games/{games[0].id}/result",
            json={"status": "scheduled", "home_score": 21, "away_score": 3},
            headers=auth("commissioner"),
        )

        assert response.status_code == 400
        assert response.get_json()["kind"] == "validation_error"

    def test_non_integer_score(self, client, games):
        response = client.post(
            f"/api/games/{games[0].id}/result",
            json={"status": "in_progress", "home_score": "seven", "away_score": 0},
            headers=auth("commissioner"),
        )

        assert response.status_code == 400


class TestPicks:
    def test_submit_and_resubmit(self, client, week, games, teams):
        payload = {"week_id": week.id, "game_id": games[0].id, "selected_team_id": teams["KC"].id}
        first = client.post("/api/picks", json=payload, headers=auth("alice"))
        payload["selected_team_id"] = teams["BAL"].id
        second = client.post("/api/picks", json=payload, headers=auth("alice"))

        assert first.status_code == 200 and second.status_code == 200
        assert first.get_json()["pick"]["id"] == second.get_json()["pick"]["id"]

        picks = client.get(f"/api/picks?week_id={week.id}", headers=auth("alice")).get_json()["picks"]
        assert [p["selected_team"] for p in picks] == ["BAL"]

    def test_locked_game(self, client, store, week, games, teams):
        store.update_game_result(games[0].id, "in_progress", 0, 7)

        response = client.post(
            "/api/picks",
            json={"game_id": games[0].id, "selected_team_id": teams["KC"].id},
            headers=auth("alice"),
        )

        assert response.status_code == 409
        assert response.get_json()["kind"] == "picks_locked"

    @pytest.mark.parametrize(
        "payload",
        [{}, {"game_id": "abc", "selected_team_id": 1}, {"selected_team_id": 1}],
    )
    def test_invalid_payload(self, client, games, payload):
        response = client.post("/api/picks", json=payload, headers=auth("alice"))

        assert response.status_code == 400
        assert response.get_json()["kind"] == "validation_error"

    def test_requires_identity(self, client, games, teams):
        response = client.post(
            "/api/picks", json={"game_id": games[0].id, "selected_team_id": teams["KC"].id}
        )

        assert response.status_code == 401

    def test_bulk(self, client, games, teams):
        response = client.post(
            "/api/picks/bulk",
            json={
                "picks": [
                    {"game_id": games[0].id, "selected_team_id": teams["KC"].id},
                    {"game_id": games[1].id, "selected_team_id": teams["PHI"].id},
                ]
            },
            headers=auth("alice"),
        )

        assert response.status_code == 200
        assert response.get_json()["count"] == 2

    def test_bulk_requires_list(self, client, games):
        response = client.post("/api/picks/bulk", json={"picks": "all"}, headers=auth("alice"))

        assert response.status_code == 400


class TestLeagues:
    def _create(self, client, identity="alice", name="Office Pool"):
        response = client.post("/api/leagues", json={"name": name}, headers=auth(identity))
        assert response.status_code == 201
        return response.get_json()["league"]

    def test_create_and_join(self, client, season):
        league = self._create(client)

        joined = client.post(
            "/api/leagues/join", json={"invite_code": league["invite_code"]}, headers=auth("bob")
        )
        again = client.post(
            "/api/leagues/join", json={"invite_code": league["invite_code"]}, headers=auth("bob")
        )

        assert league["members"][0]["role"] == "owner"
        assert joined.get_json()["league"]["member_count"] == 2
        assert again.status_code == 409
        leagues = client.get("/api/leagues", headers=auth("bob")).get_json()["leagues"]
        assert [l["id"] for l in leagues] == [league["id"]]

    def test_leave(self, client, season):
        league = self._create(client)
        client.post("/api/leagues/join", json={"invite_code": league["invite_code"]}, headers=auth("bob"))

        response = client.post(f"/api/leagues/{league['id']}/leave", headers=auth("bob"))

        assert response.get_json()["membership"]["status"] == "inactive"
        assert client.get("/api/leagues", headers=auth("bob")).get_json()["leagues"] == []

    def test_create_without_name(self, client, season):
        response = client.post("/api/leagues", json={}, headers=auth("alice"))

        assert response.status_code == 400

    def test_unknown_invite_code(self, client, season):
        response = client.post(
            "/api/leagues/join", json={"invite_code": "ZZZZZZZZ"}, headers=auth("bob")
        )

        assert response.status_code == 404


class TestStandings:
    @pytest.fixture
    def scored(self, store, pick_service, league, week, games, teams):
        alice, bob = [m.user_id for m in league.get_active_members()]
        pick_service.submit_pick(alice, week.id, games[0].id, teams["KC"].id)
        pick_service.submit_pick(bob, week.id, games[0].id, teams["BAL"].id)
        store.update_game_result(games[0].id, "completed", 24, 17)
        return league

    def test_member_sees_standings(self, client, scored):
        response = client.get(f"/api/leagues/{scored.id}/standings?week=1", headers=auth("bob"))

        body = response.get_json()
        assert response.status_code == 200
        assert [(s["username"], s["rank"], s["total_score"]) for s in body["standings"]] == [
            ("alice", 1, 1),
            ("bob", 2, 0),
        ]
        assert body["week"] == 1
        assert body["stale"] is False
        assert body["standings"][0]["weekly_scores"][0]["correct_picks"] == 1

    def test_non_member_forbidden(self, client, scored):
        response = client.get(f"/api/leagues/{scored.id}/standings", headers=auth("mallory"))

        assert response.status_code == 403
        assert response.get_json()["kind"] == "forbidden"

    def test_admin_may_view_any_league(self, client, scored):
        response = client.get(f"/api/leagues/{scored.id}/standings", headers=auth("commissioner"))

        assert response.status_code == 200

    def test_refresh_with_feed_down_is_stale(self, client, monkeypatch, scored):
        monkeypatch.setattr("pickem.services.standings_service.ResultSync", FailingSync)

        response = client.get(
            f"/api/leagues/{scored.id}/standings?refresh=true", headers=auth("alice")
        )

        body = response.get_json()
        assert response.status_code == 200
        assert body["stale"] is True
        assert "unavailable" in body["feed_error"]
        assert [s["total_score"] for s in body["standings"]] == [1, 0]

    def test_bad_week(self, client, scored):
        response = client.get(f"/api/leagues/{scored.id}/standings?week=x", headers=auth("alice"))

        assert response.status_code == 400

    def test_unknown_league(self, client, season):
        response = client.get("/api/leagues/999/standings", headers=auth("alice"))

        assert response.status_code == 404


class TestResultSyncEndpoint:
    def test_requires_admin(self, client, season):
        assert client.post("/api/sync/results", headers=auth("alice")).status_code == 403

    def test_feed_unavailable(self, client, monkeypatch, season):
        monkeypatch.setattr("pickem.routes.api.routes.ResultSync", FailingSync)

        response = client.post("/api/sync/results", json={"week": 1}, headers=auth("commissioner"))

        assert response.status_code == 503
        assert response.get_json()["kind"] == "upstream_unavailable"

    def test_sync_counts(self, client, monkeypatch, season):
        class CountingSync:
            def sync(self, week=None):
                return {"updated": 2, "unchanged": 0, "unknown": 0, "rejected": 0, "fetched": 2}

        monkeypatch.setattr("pickem.routes.api.routes.ResultSync", CountingSync)

        response = client.post("/api/sync/results", headers=auth("commissioner"))

        assert response.get_json()["counts"]["updated"] == 2
