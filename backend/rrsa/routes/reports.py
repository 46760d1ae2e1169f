# Overview: Flask API routes for reports; league summaries and CSV downloads.

from flask import Blueprint, Response, request, jsonify, g

from ..decorators import require_auth, require_capability, require_league_visibility
from ..permissions import Capability
from ..services import reporting_service
from ..services.permission_service import PermissionDeniedError, can_view_league_records
from .errors import json_error


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _csv_response(text: str, filename: str) -> Response:
    return Response(
        text,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@reports_bp.get("/leagues/<league>/summary")
@require_auth
@require_league_visibility
@require_capability(Capability.VIEW_MANAGER_DASH)
def league_summary_route(league: str):
    try:
        if not can_view_league_records(g.current_user, league):
            raise PermissionDeniedError(Capability.VIEW_ALL_RECORDS, league)
        return jsonify(reporting_service.league_summary(g.store, league))
    except Exception as exc:
        return json_error(exc)


@reports_bp.get("/leagues/<league>/attendance.csv")
@require_auth
@require_league_visibility
@require_capability(Capability.EXPORT_CSV)
def attendance_csv_route(league: str):
    try:
        username = request.args.get("username")
        text = reporting_service.attendance_csv(g.store, league, username)
        g.store.append_audit(g.current_user["username"], "export_csv", f"Exported attendance CSV for {league}.")
        return _csv_response(text, f"rrsa_attendance_{league}.csv")
    except Exception as exc:
        return json_error(exc)


@reports_bp.get("/leagues/<league>/performance.csv")
@require_auth
@require_league_visibility
@require_capability(Capability.EXPORT_CSV)
def performance_csv_route(league: str):
    try:
        username = request.args.get("username")
        text = reporting_service.performance_csv(g.store, league, username)
        g.store.append_audit(g.current_user["username"], "export_csv", f"Exported performance CSV for {league}.")
        return _csv_response(text, f"rrsa_performance_{league}.csv")
    except Exception as exc:
        return json_error(exc)
