# Overview: Flask API routes for invite operations; issue, list, revoke and redeem.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_capability
from ..extensions import get_store
from ..permissions import Capability
from ..services.invite_service import InviteService
from .errors import json_error, public_user


invites_bp = Blueprint("invites", __name__, url_prefix="/api/invites")


@invites_bp.get("")
@require_auth
@require_capability(Capability.MANAGE_USERS_FULL, scoped=False)
def list_invites_route():
    try:
        return jsonify({"invites": InviteService(g.store).list_invites()})
    except Exception as exc:
        return json_error(exc)


@invites_bp.post("")
@require_auth
@require_capability(Capability.MANAGE_USERS_FULL, scoped=False)
def create_invite_route():
    try:
        data = request.get_json(silent=True) or {}
        invite = InviteService(g.store).create_invite(
            created_by=g.current_user["username"],
            league=data.get("league"),
            league_role=data.get("league_role") or "OFFICIAL",
            department=data.get("department"),
            max_uses=data.get("max_uses", 1),
            expires_at=data.get("expires_at"),
            note=data.get("note") or "",
        )
        return jsonify({"invite": invite}), 201
    except Exception as exc:
        return json_error(exc)


@invites_bp.get("/<code>")
@require_auth
@require_capability(Capability.MANAGE_USERS_FULL, scoped=False)
def get_invite_route(code: str):
    try:
        return jsonify({"invite": InviteService(g.store).get_invite(code)})
    except Exception as exc:
        return json_error(exc)


@invites_bp.post("/<code>/revoke")
@require_auth
@require_capability(Capability.MANAGE_USERS_FULL, scoped=False)
def revoke_invite_route(code: str):
    try:
        invite = InviteService(g.store).revoke(code, actor=g.current_user["username"])
        return jsonify({"invite": invite})
    except Exception as exc:
        return json_error(exc)


@invites_bp.post("/redeem")
def redeem_invite_route():
    """
    Create an account from an invite code. No session required.

    The password is checked against the auth policy only once the code and
    username have passed, so a dead code answers 404/410 first.
    """
    try:
        data = request.get_json(silent=True) or {}
        user = InviteService(get_store()).redeem(
            data.get("code"),
            data.get("username"),
            data.get("password"),
            data.get("display_name"),
        )
        return jsonify({"user": public_user(user)}), 201
    except Exception as exc:
        return json_error(exc)
