# Overview: Request and capability decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, make_response

from .extensions import get_store
from .permissions import Capability
from .services import permission_service
from .services.permission_service import PermissionDeniedError
from .services.session_service import AuthError, SessionManager, encode_token


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'session')


def _request_league(kwargs) -> str | None:
    """League scope from the URL, the query string, or the JSON body."""
    if kwargs.get("league"):
        return kwargs["league"]
    if request.args.get("league"):
        return request.args.get("league")
    body = request.get_json(silent=True)
    if isinstance(body, dict) and body.get("league"):
        return str(body["league"])
    return None


def require_auth(f):
    """
    Require a valid session.

    Sets the following Flask g attributes:
    - g.current_user: the user record (dict)
    - g.session: the touched Session
    - g.store: the app's DocumentStore

    Every authenticated response carries the refreshed token in the
    X-Session-Token header; clients replace their stored token with it.

    Returns 401 if:
    - No Authorization header
    - Malformed, idle or expired token
    - User deleted or deactivated since login
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        store = get_store()

        try:
            session, user = SessionManager(store).authenticate(token)
        except AuthError as e:
            return jsonify({"error": str(e)}), 401

        g.current_user = user
        g.session = session
        g.store = store

        response = make_response(f(*args, **kwargs))
        response.headers["X-Session-Token"] = encode_token(session)
        return response

    return decorated_function


def require_capability(capability: Capability, *, scoped: bool = True):
    """
    Require a capability, scoped to the request's league when one is given.

    With scoped=False the check ignores any league in the request.
    Denials are written to the audit log as permission_denied.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            league = _request_league(kwargs) if scoped else None

            try:
                permission_service.require_capability(
                    g.current_user,
                    capability,
                    league,
                    store=g.store,
                    resource=request.path,
                )
            except PermissionDeniedError as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_capability": capability.value,
                    "league": league,
                    "message": str(e)
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_league_visibility(f):
    """Require that the user may see the league named in the request."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401

        league = _request_league(kwargs)
        if not league:
            return jsonify({"error": "league is required"}), 400

        settings = g.store.get_settings()
        if league not in (settings.get("leagues") or []):
            return jsonify({"error": f"Unknown league: {league}"}), 404
        if league not in permission_service.visible_leagues(g.current_user, settings):
            return jsonify({"error": "Permission denied", "league": league}), 403

        g.league = league
        return f(*args, **kwargs)

    return decorated_function
