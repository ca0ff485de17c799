"""
Request identity.

The identity provider in front of the API forwards a stable opaque key in a
header. It is trusted as given: no credentials are checked here, the key is
only mapped onto a local user, created on first sight.
"""

import logging
from functools import wraps

from flask import abort, current_app, jsonify
from flask_login import current_user

from pickem import db
from pickem.models import User
from pickem.services.pick_service import PickService
from pickem.utils.errors import ValidationError

logger = logging.getLogger(__name__)


def resolve_identity(request):
    """Return the user for the request's identity key, or None without one"""
    header = current_app.config.get("IDENTITY_HEADER", "X-Identity-Key")
    identity_key = (request.headers.get(header) or "").strip()
    if not identity_key:
        return None

    try:
        user = PickService().get_or_create_user(identity_key)
    except ValidationError as e:
        logger.warning(f"Rejected identity key: {e.message}")
        return None

    if not user.is_active:
        return None
    return user


def register_identity_loader(login_manager):
    """Wire header identity into Flask-Login"""

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.request_loader
    def load_user_from_request(request):
        return resolve_identity(request)

    @login_manager.unauthorized_handler
    def unauthorized():
        return (
            jsonify(
                {
                    "success": False,
                    "error": "Authentication required",
                    "kind": "unauthorized",
                }
            ),
            401,
        )


def admin_required(f):
    """Require site admin rights; use after login_required"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated or not current_user.has_admin_rights:
            abort(403)
        return f(*args, **kwargs)

    return decorated_function
