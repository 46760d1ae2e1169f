# Overview: Flask API routes for attendance and performance records within a league.

"""
Records API routes

All routes are league-scoped (/api/records/leagues/<league>/...).
Users with full-roster visibility in a league (VIEW_ALL_RECORDS there, or
executives) see every official's records; everyone else sees only their own.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_capability, require_league_visibility
from ..permissions import Capability
from ..services import attendance_service, performance_service, permission_service
from ..services.permission_service import PermissionDeniedError
from ..validation import NotFoundError, normalize_username
from .errors import json_error


records_bp = Blueprint("records", __name__, url_prefix="/api/records")


def _actor() -> str:
    return g.current_user["username"]


def _can_view_all(league: str) -> bool:
    return permission_service.can_view_league_records(g.current_user, league)


def _require_self_or_view_all(league: str, username: str) -> None:
    if normalize_username(username) == _actor():
        return
    if not _can_view_all(league):
        raise PermissionDeniedError(Capability.VIEW_ALL_RECORDS, league)


# -- attendance --

@records_bp.get("/leagues/<league>/attendance")
@require_auth
@require_league_visibility
def list_attendance_route(league: str):
    try:
        events = g.store.list_attendance(league)
        if not _can_view_all(league):
            for event in events:
                event["marks"] = [m for m in event.get("marks") or [] if m.get("username") == _actor()]
        return jsonify({"league": league, "events": events})
    except Exception as exc:
        return json_error(exc)


@records_bp.post("/leagues/<league>/attendance")
@require_auth
@require_league_visibility
@require_capability(Capability.CREATE_ATTENDANCE_EVENTS)
def create_event_route(league: str):
    try:
        data = request.get_json(silent=True) or {}
        event = attendance_service.create_event(
            g.store,
            league=league,
            event_name=data.get("event_name"),
            event_date=data.get("event_date") or "",
            event_type=data.get("event_type") or "Game",
            created_by=_actor(),
        )
        return jsonify({"event": event}), 201
    except Exception as exc:
        return json_error(exc)


@records_bp.post("/attendance/<event_id>/marks")
@require_auth
def mark_attendance_route(event_id: str):
    """Grade one official. The league scope is the event's league."""
    try:
        data = request.get_json(silent=True) or {}
        event = g.store.get_attendance_event(event_id)
        if event is None:
            raise NotFoundError("Attendance event not found.")
        permission_service.require_capability(
            g.current_user, Capability.GRADE_ATTENDANCE, event["league"],
            store=g.store, resource=request.path,
        )
        updated = attendance_service.mark_attendance(
            g.store,
            event_id,
            data.get("username"),
            data.get("status"),
            note=data.get("note") or "",
            actor=_actor(),
        )
        return jsonify({"event": updated})
    except Exception as exc:
        return json_error(exc)


@records_bp.get("/leagues/<league>/users/<username>/attendance")
@require_auth
@require_league_visibility
def user_attendance_route(league: str, username: str):
    try:
        _require_self_or_view_all(league, username)
        return jsonify({
            "username": normalize_username(username),
            "league": league,
            "history": attendance_service.user_history(g.store, username, league),
            "stats": attendance_service.attendance_stats(g.store, username, league),
        })
    except Exception as exc:
        return json_error(exc)


# -- performance --

@records_bp.get("/leagues/<league>/performance")
@require_auth
@require_league_visibility
def list_performance_route(league: str):
    try:
        reviews = g.store.list_performance(league)
        if not _can_view_all(league):
            reviews = [r for r in reviews if r.get("subject_username") == _actor()]
        return jsonify({"league": league, "reviews": reviews})
    except Exception as exc:
        return json_error(exc)


@records_bp.post("/leagues/<league>/performance")
@require_auth
@require_league_visibility
@require_capability(Capability.CREATE_PERFORMANCE_REVIEWS)
def create_review_route(league: str):
    try:
        data = request.get_json(silent=True) or {}
        review = performance_service.create_review(
            g.store,
            league=league,
            subject_username=data.get("subject_username"),
            scores=data.get("scores"),
            created_by=_actor(),
            event_ref=data.get("event_ref") or "General",
            comments=data.get("comments") or "",
        )
        return jsonify({"review": review}), 201
    except Exception as exc:
        return json_error(exc)


@records_bp.get("/leagues/<league>/users/<username>/performance")
@require_auth
@require_league_visibility
def user_performance_route(league: str, username: str):
    try:
        _require_self_or_view_all(league, username)
        return jsonify({
            "username": normalize_username(username),
            "league": league,
            "reviews": performance_service.reviews_for_user(g.store, username, league),
            "stats": performance_service.average_for_user(g.store, username, league),
        })
    except Exception as exc:
        return json_error(exc)


@records_bp.get("/leagues/<league>/flagged")
@require_auth
@require_league_visibility
def flagged_route(league: str):
    try:
        if not _can_view_all(league):
            raise PermissionDeniedError(Capability.VIEW_ALL_RECORDS, league)
        return jsonify({
            "league": league,
            "threshold": g.store.get_settings().get("performance_threshold"),
            "flagged": performance_service.flagged_officials(g.store, league),
        })
    except Exception as exc:
        return json_error(exc)
