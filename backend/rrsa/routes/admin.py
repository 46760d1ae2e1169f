# Overview: Flask API routes for admin operations; users, league roles, lockouts and audit.

"""
Admin API routes

User management:
- Creating, deleting and resetting passwords needs MANAGE_USERS_FULL
- League roles and active status need MANAGE_USERS in the affected league
  (or MANAGE_USERS_FULL)
- Users cannot delete themselves
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_capability
from ..permissions import Capability
from ..services import permission_service
from ..services.lockout_policy import LockoutPolicy
from ..services.permission_service import PermissionDeniedError
from ..services.session_service import SessionManager
from ..validation import ConflictError, NotFoundError, ValidationError, require_int
from .errors import json_error, public_user


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _actor() -> str:
    return g.current_user["username"]


def _require_manage(target: dict, league: str | None = None) -> None:
    """MANAGE_USERS_FULL anywhere, or MANAGE_USERS in the league(s) being touched."""
    actor = g.current_user
    if permission_service.has_capability(actor, Capability.MANAGE_USERS_FULL):
        return
    if permission_service.has_capability(actor, Capability.MANAGE_USERS):
        return
    leagues = [league] if league else list((target.get("league_roles") or {}).keys())
    if any(permission_service.has_capability(actor, Capability.MANAGE_USERS, lg) for lg in leagues):
        return
    # Audits the denial and raises
    permission_service.require_capability(
        actor, Capability.MANAGE_USERS, league, store=g.store, resource=request.path,
    )


def _get_target(username: str) -> dict:
    user = g.store.get_user(username)
    if user is None:
        raise NotFoundError("User not found.")
    return user


# -- users --

@admin_bp.get("/users")
@require_auth
def list_users_route():
    """
    List users.

    With ?league=X: members of X (needs full-roster visibility in X).
    Without: every user (executives and MANAGE_USERS_FULL only).
    """
    try:
        league = request.args.get("league")
        users = g.store.list_users()
        if league:
            if not permission_service.can_view_league_records(g.current_user, league):
                raise PermissionDeniedError(Capability.VIEW_ALL_RECORDS, league)
            users = [u for u in users if league in (u.get("league_roles") or {})]
        elif not (
            permission_service.is_executive(g.current_user)
            or permission_service.has_capability(g.current_user, Capability.MANAGE_USERS_FULL)
        ):
            raise PermissionDeniedError(Capability.VIEW_ALL_RECORDS)

        return jsonify({"users": [public_user(u) for u in users]})
    except Exception as exc:
        return json_error(exc)


@admin_bp.post("/users")
@require_auth
@require_capability(Capability.MANAGE_USERS_FULL, scoped=False)
def create_user_route():
    try:
        data = request.get_json(silent=True) or {}
        SessionManager(g.store).validate_password(data.get("password"))

        user = g.store.create_user(
            username=data.get("username"),
            password=data.get("password"),
            display_name=data.get("display_name"),
            global_role=data.get("global_role") or "OFFICIAL",
            league=data.get("league"),
            league_role=data.get("league_role") or "OFFICIAL",
            department=data.get("department"),
            audit=(_actor(), "user_create", f"Created @{str(data.get('username') or '').strip()}."),
        )
        return jsonify({"user": public_user(user)}), 201
    except Exception as exc:
        return json_error(exc)


@admin_bp.get("/users/<username>")
@require_auth
def get_user_route(username: str):
    try:
        user = _get_target(username)
        is_self = user["username"] == _actor()
        visible = any(
            permission_service.can_view_league_records(g.current_user, lg)
            for lg in (user.get("league_roles") or {})
        )
        if not (is_self or visible or permission_service.is_executive(g.current_user)):
            raise PermissionDeniedError(Capability.VIEW_ALL_RECORDS)
        return jsonify({
            "user": public_user(user),
            "access": permission_service.describe_user(user),
        })
    except Exception as exc:
        return json_error(exc)


@admin_bp.patch("/users/<username>")
@require_auth
def update_user_route(username: str):
    """
    Edit display_name, active and (MANAGE_USERS_FULL only) global_role.
    """
    try:
        data = request.get_json(silent=True) or {}
        target = _get_target(username)
        _require_manage(target)

        updated = dict(target)
        changes = []
        if "display_name" in data:
            name = str(data.get("display_name") or "").strip()
            if not name:
                raise ValidationError("display_name cannot be blank")
            updated["display_name"] = name
            changes.append(f"display_name={name}")
        if "global_role" in data:
            permission_service.require_capability(
                g.current_user, Capability.MANAGE_USERS_FULL, store=g.store, resource=request.path,
            )
            updated["global_role"] = data.get("global_role")
            changes.append(f"global_role={data.get('global_role')}")
        if "active" in data:
            if target["username"] == _actor() and not data.get("active"):
                raise ConflictError("You cannot deactivate your own account.")
            updated["active"] = bool(data.get("active"))
            changes.append(f"active={updated['active']}")

        if not changes:
            raise ValidationError("Nothing to update")

        action = "user_toggle" if changes == [f"active={updated.get('active')}"] else "user_edit"
        user = g.store.update_user(
            updated, audit=(_actor(), action, f"Updated @{target['username']}: {', '.join(changes)}."),
        )
        return jsonify({"user": public_user(user)})
    except Exception as exc:
        return json_error(exc)


@admin_bp.put("/users/<username>/leagues/<league>")
@require_auth
def set_league_role_route(username: str, league: str):
    try:
        data = request.get_json(silent=True) or {}
        target = _get_target(username)
        if league not in g.store.list_leagues():
            raise NotFoundError(f"Unknown league: {league}")
        _require_manage(target, league)

        role = data.get("role") or "OFFICIAL"
        department = data.get("department")
        user = g.store.set_league_role(
            username, league, role, department,
            audit=(_actor(), "user_edit", f"Updated @{target['username']} (league={league}) role={role}."),
        )
        return jsonify({"user": public_user(user)})
    except Exception as exc:
        return json_error(exc)


@admin_bp.delete("/users/<username>/leagues/<league>")
@require_auth
def remove_league_role_route(username: str, league: str):
    try:
        target = _get_target(username)
        _require_manage(target, league)
        user = g.store.set_league_role(
            username, league, None,
            audit=(_actor(), "user_edit", f"Removed @{target['username']} from {league}."),
        )
        return jsonify({"user": public_user(user)})
    except Exception as exc:
        return json_error(exc)


@admin_bp.post("/users/<username>/password")
@require_auth
@require_capability(Capability.MANAGE_USERS_FULL, scoped=False)
def set_password_route(username: str):
    try:
        data = request.get_json(silent=True) or {}
        SessionManager(g.store).validate_password(data.get("password"))
        user = g.store.set_user_password(
            username, data.get("password"),
            audit=(_actor(), "user_edit", f"Reset password for @{str(username).lower()}."),
        )
        return jsonify({"user": public_user(user)})
    except Exception as exc:
        return json_error(exc)


@admin_bp.delete("/users/<username>")
@require_auth
@require_capability(Capability.MANAGE_USERS_FULL, scoped=False)
def delete_user_route(username: str):
    """Hard delete; also removes the user's attendance marks, reviews and lockout."""
    try:
        if str(username).strip().lower() == _actor():
            raise ConflictError("You cannot delete your own account.")
        removed = g.store.delete_user(
            username, audit=(_actor(), "user_delete", f"Deleted @{str(username).strip().lower()}."),
        )
        return jsonify({"deleted": public_user(removed)})
    except Exception as exc:
        return json_error(exc)


@admin_bp.get("/users/<username>/capabilities")
@require_auth
def user_capabilities_route(username: str):
    """Resolved capability set for a user, optionally scoped with ?league=."""
    try:
        target = _get_target(username)
        if target["username"] != _actor():
            _require_manage(target)
        league = request.args.get("league")
        caps = permission_service.resolve_capabilities(target, league)
        return jsonify({
            "username": target["username"],
            "league": league,
            "capabilities": sorted(c.value for c in caps),
        })
    except Exception as exc:
        return json_error(exc)


# -- lockouts --

@admin_bp.get("/lockouts")
@require_auth
@require_capability(Capability.MANAGE_USERS_FULL, scoped=False)
def list_lockouts_route():
    try:
        statuses = LockoutPolicy(g.store).list_statuses()
        return jsonify({"lockouts": {u: s.to_dict() for u, s in statuses.items()}})
    except Exception as exc:
        return json_error(exc)


@admin_bp.delete("/lockouts/<username>")
@require_auth
@require_capability(Capability.MANAGE_USERS_FULL, scoped=False)
def clear_lockout_route(username: str):
    try:
        cleared = LockoutPolicy(g.store).clear_lockout(username, actor=_actor())
        return jsonify({"username": str(username).strip().lower(), "cleared": cleared})
    except Exception as exc:
        return json_error(exc)


# -- audit --

@admin_bp.get("/audit")
@require_auth
@require_capability(Capability.VIEW_AUDIT, scoped=False)
def list_audit_route():
    try:
        raw_limit = request.args.get("limit")
        limit = require_int(raw_limit, "limit", minimum=1) if raw_limit else None
        return jsonify({"audit": g.store.list_audit(limit)})
    except Exception as exc:
        return json_error(exc)
