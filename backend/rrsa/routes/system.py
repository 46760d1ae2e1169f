# backend/rrsa/routes/system.py
"""
System health and whole-document endpoints.

Export and import move the entire persisted document. Import and reset are
irreversible overwrites and require {"confirm": true} in the body.
"""

import time
from flask import Blueprint, current_app, request, jsonify, g

from ..decorators import require_auth, require_capability
from ..extensions import get_store
from ..permissions import Capability
from ..services.schema_migrator import CURRENT_SCHEMA_VERSION, document_version
from ..time_utils import to_utc_z, utcnow
from ..validation import ValidationError
from .errors import json_error

system_bp = Blueprint("system", __name__)


def check_document_health() -> dict:
    """
    Check the persisted document can be read and is at the current schema.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        doc = get_store().snapshot()
        version = document_version(doc)
        elapsed_ms = (time.time() - start_time) * 1000

        details = {
            "schema_version": version,
            "users": len(doc.get("users") or []),
            "invites": len(doc.get("invites") or []),
            "attendance_events": len(doc.get("attendance_events") or []),
            "performance_reviews": len(doc.get("performance_reviews") or []),
            "active_lockouts": len(doc.get("lockouts") or {}),
        }
        if version != CURRENT_SCHEMA_VERSION:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": f"Schema v{version}, expected v{CURRENT_SCHEMA_VERSION}",
                "details": details,
            }
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Document health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Document store error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: document unreadable
    """
    start_time = time.time()
    document_health = check_document_health()

    if document_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    else:
        overall_status, http_status = document_health["status"], 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "document": document_health,
        }
    }

    return response, http_status


def _require_confirm(data: dict) -> None:
    if data.get("confirm") is not True:
        raise ValidationError("This overwrites the whole document; send confirm=true")


@system_bp.get("/api/system/export")
@require_auth
@require_capability(Capability.EXPORT_DB_JSON, scoped=False)
def export_document_route():
    try:
        doc = g.store.export_document()
        g.store.append_audit(g.current_user["username"], "db_export", "Exported document JSON.")
        return jsonify(doc)
    except Exception as exc:
        return json_error(exc)


@system_bp.post("/api/system/import")
@require_auth
@require_capability(Capability.IMPORT_DB_JSON, scoped=False)
def import_document_route():
    """Body: {"confirm": true, "document": {...}}."""
    try:
        data = request.get_json(silent=True) or {}
        _require_confirm(data)
        counts = g.store.import_document(
            data.get("document"),
            audit=(g.current_user["username"], "db_import", "Imported document JSON (full replace)."),
        )
        return jsonify({"imported": counts})
    except Exception as exc:
        return json_error(exc)


@system_bp.post("/api/system/reset")
@require_auth
@require_capability(Capability.IMPORT_DB_JSON, scoped=False)
def reset_document_route():
    try:
        data = request.get_json(silent=True) or {}
        _require_confirm(data)
        g.store.reset(actor=g.current_user["username"])
        return jsonify({"reset": True})
    except Exception as exc:
        return json_error(exc)
