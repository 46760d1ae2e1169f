# Overview: Flask API routes for association settings; thresholds, leagues and auth policy.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_capability
from ..permissions import Capability
from .errors import json_error


settings_bp = Blueprint("settings", __name__, url_prefix="/api")


@settings_bp.get("/settings")
@require_auth
def get_settings_route():
    """Any signed-in user may read settings; leagues drive the UI scope picker."""
    try:
        return jsonify({"settings": g.store.get_settings()})
    except Exception as exc:
        return json_error(exc)


@settings_bp.patch("/settings")
@require_auth
@require_capability(Capability.CONFIGURE_SYSTEM, scoped=False)
def update_settings_route():
    """
    Merge changes into settings.

    Body keys: performance_threshold, leagues, default_league, auth_policy
    (merged key by key).
    """
    try:
        data = request.get_json(silent=True) or {}
        changed = ", ".join(sorted(data)) if isinstance(data, dict) else ""
        settings = g.store.update_settings(
            data, audit=(g.current_user["username"], "settings_update", f"Updated settings: {changed}."),
        )
        return jsonify({"settings": settings})
    except Exception as exc:
        return json_error(exc)


@settings_bp.get("/leagues")
@require_auth
def list_leagues_route():
    try:
        settings = g.store.get_settings()
        return jsonify({
            "leagues": settings.get("leagues") or [],
            "default_league": settings.get("default_league"),
        })
    except Exception as exc:
        return json_error(exc)
