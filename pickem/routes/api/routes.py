from functools import wraps

from flask import current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import text

from pickem import db, limiter
from pickem.models import Season
from pickem.routes.api import bp
from pickem.services.identity import admin_required
from pickem.services.league_service import LeagueService
from pickem.services.pick_service import PickService
from pickem.services.result_feed import ResultSync
from pickem.services.schedule_store import ScheduleStore
from pickem.services.standings_service import StandingsService
from pickem.utils.cache_utils import cached_route
from pickem.utils.errors import ValidationError


def no_store(f):
    """Keep per-user API responses out of shared caches"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = current_app.make_response(f(*args, **kwargs))
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        return response

    return decorated_function


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _as_int(value, name, required=True):
    if value is None or value == "":
        if required:
            raise ValidationError(f"{name} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", **{name: value})


def _as_flag(value):
    return str(value).lower() in ("1", "true", "yes", "on")


def _pick_rate_limit():
    return current_app.config.get("PICK_RATE_LIMIT", "60 per minute")


@bp.route("/health")
@limiter.exempt
def health():
    """Liveness plus a database round-trip"""
    db.session.execute(text("SELECT 1"))
    return jsonify({"success": True, "status": "ok"})


@bp.route("/me")
@login_required
@no_store
def me():
    data = current_user.to_dict()
    data["is_admin"] = current_user.has_admin_rights
    return jsonify({"success": True, "user": data})


@bp.route("/seasons")
@cached_route(timeout=3600, key_prefix="seasons")  # Cache for 1 hour
def seasons():
    """All seasons, newest first"""
    seasons = Season.query.order_by(Season.year.desc()).all()
    return {"success": True, "seasons": [season.to_dict() for season in seasons]}


@bp.route("/weeks/current")
def current_week():
    week = ScheduleStore().get_current_week()
    return jsonify(
        {"success": True, "week": week.to_dict(), "season": week.season.to_dict()}
    )


@bp.route("/weeks/current", methods=["POST"])
@login_required
def ensure_current_week():
    """Current week, creating the season and week on first use"""
    week = ScheduleStore().get_or_create_current_week()
    return jsonify(
        {"success": True, "week": week.to_dict(), "season": week.season.to_dict()}
    )


@bp.route("/weeks/<int:week_id>/games")
def week_games(week_id):
    games = ScheduleStore().list_games(week_id)
    return jsonify({"success": True, "games": [game.to_dict() for game in games]})


@bp.route("/games/<int:game_id>/result", methods=["POST"])
@login_required
@admin_required
def game_result(game_id):
    """Record a status change and score for a game"""
    data = _json_body()
    status = data.get("status")
    if not status:
        raise ValidationError("status is required")

    game = ScheduleStore().update_game_result(
        game_id,
        status,
        _as_int(data.get("home_score"), "home_score", required=False),
        _as_int(data.get("away_score"), "away_score", required=False),
    )
    return jsonify({"success": True, "game": game.to_dict()})


@bp.route("/picks", methods=["POST"])
@login_required
@limiter.limit(_pick_rate_limit)
@no_store
def submit_pick():
    data = _json_body()
    pick = PickService().submit_pick(
        current_user.id,
        _as_int(data.get("week_id"), "week_id", required=False),
        _as_int(data.get("game_id"), "game_id"),
        _as_int(data.get("selected_team_id"), "selected_team_id"),
    )
    return jsonify({"success": True, "pick": pick.to_dict()})


@bp.route("/picks/bulk", methods=["POST"])
@login_required
@limiter.limit(_pick_rate_limit)
@no_store
def submit_bulk_picks():
    """Submit several picks; nothing is saved unless every pick is valid"""
    data = _json_body()
    submissions = data.get("picks")
    if not isinstance(submissions, list):
        raise ValidationError("picks must be a list")

    parsed = []
    for submission in submissions:
        if not isinstance(submission, dict):
            raise ValidationError("Each pick must be a JSON object")
        parsed.append(
            {
                "week_id": _as_int(submission.get("week_id"), "week_id", required=False),
                "game_id": _as_int(submission.get("game_id"), "game_id"),
                "selected_team_id": _as_int(
                    submission.get("selected_team_id"), "selected_team_id"
                ),
            }
        )

    picks = PickService().submit_bulk_picks(current_user.id, parsed)
    return jsonify(
        {"success": True, "count": len(picks), "picks": [p.to_dict() for p in picks]}
    )


@bp.route("/picks")
@login_required
@no_store
def user_picks():
    week_id = _as_int(request.args.get("week_id"), "week_id", required=False)
    picks = PickService().get_user_picks(current_user.id, week_id)
    return jsonify({"success": True, "picks": [pick.to_dict() for pick in picks]})


@bp.route("/leagues")
@login_required
@no_store
def leagues():
    user_leagues = LeagueService().get_user_leagues(current_user.id)
    return jsonify(
        {"success": True, "leagues": [league.to_dict() for league in user_leagues]}
    )


@bp.route("/leagues", methods=["POST"])
@login_required
def create_league():
    data = _json_body()
    league = LeagueService().create_league(
        current_user.id,
        data.get("name"),
        season_id=_as_int(data.get("season_id"), "season_id", required=False),
        description=data.get("description"),
        max_members=_as_int(data.get("max_members"), "max_members", required=False),
    )
    return jsonify({"success": True, "league": league.to_dict(include_members=True)}), 201


@bp.route("/leagues/join", methods=["POST"])
@login_required
def join_league():
    data = _json_body()
    league = LeagueService().join_league(current_user.id, data.get("invite_code"))
    return jsonify({"success": True, "league": league.to_dict()})


@bp.route("/leagues/<int:league_id>/leave", methods=["POST"])
@login_required
def leave_league(league_id):
    membership = LeagueService().leave_league(current_user.id, league_id)
    return jsonify({"success": True, "membership": membership.to_dict()})


@bp.route("/leagues/<int:league_id>/standings")
@login_required
@no_store
def league_standings(league_id):
    """Standings for league members; admins may view any league"""
    league = LeagueService().get_league(league_id)
    if not league.is_user_member(current_user.id) and not current_user.has_admin_rights:
        return (
            jsonify(
                {
                    "success": False,
                    "error": "Not a member of this league",
                    "kind": "forbidden",
                }
            ),
            403,
        )

    result = StandingsService().get_standings(
        league_id,
        week=_as_int(request.args.get("week"), "week", required=False),
        refresh=_as_flag(request.args.get("refresh", "")),
    )
    result["standings"] = [standing.to_dict() for standing in result["standings"]]
    return jsonify({"success": True, **result})


@bp.route("/sync/results", methods=["POST"])
@login_required
@admin_required
def sync_results():
    """Pull results from the feed now"""
    data = _json_body()
    counts = ResultSync().sync(_as_int(data.get("week"), "week", required=False))
    return jsonify({"success": True, "counts": counts})
