# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/rrsa/routes/auth.py
"""
Authentication API routes

- Login with lockout after repeated failures (429 while locked)
- Bearer session tokens; every authenticated response carries the
  refreshed token in X-Session-Token
- Logout is audited; the client drops its token
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..extensions import get_store
from ..services import permission_service
from ..services.session_service import SessionManager, decode_token, encode_token
from ..validation import ValidationError
from .errors import json_error, public_user


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and issue a session token.

    Errors:
    - 400 missing username/password
    - 401 invalid credentials or disabled account
    - 429 locked, with locked_until
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not username or password is None:
            raise ValidationError("username and password required")

        store = get_store()
        session = SessionManager(store).login(username, password)
        user = store.get_user(session.username)

        return jsonify({
            "token": encode_token(session),
            "session": session.to_dict(),
            "user": public_user(user),
        })
    except Exception as exc:
        return json_error(exc)


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        SessionManager(g.store).logout(g.session)
        return jsonify({"message": "Logged out"})
    except Exception as exc:
        return json_error(exc)


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user, resolved capabilities and the leagues they can see."""
    try:
        settings = g.store.get_settings()
        return jsonify({
            "user": public_user(g.current_user),
            "session": g.session.to_dict(),
            "access": permission_service.describe_user(g.current_user),
            "visible_leagues": permission_service.visible_leagues(g.current_user, settings),
        })
    except Exception as exc:
        return json_error(exc)


@auth_bp.post("/touch")
@require_auth
def touch_route():
    """Activity signal. The refreshed token is in X-Session-Token."""
    return jsonify({"session": g.session.to_dict()})


@auth_bp.post("/validate")
def validate_route():
    """Check a token without touching it."""
    try:
        data = request.get_json(silent=True) or {}
        session = decode_token(data.get("token"))
        valid = SessionManager(get_store()).is_valid(session)
        return jsonify({"valid": valid, "session": session.to_dict() if valid else None})
    except Exception as exc:
        return json_error(exc)
