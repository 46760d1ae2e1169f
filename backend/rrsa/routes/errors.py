# Overview: Maps service exceptions onto JSON error responses for every blueprint.

from flask import jsonify, current_app

from ..services.invite_service import ExpiredError, InactiveError
from ..services.permission_service import PermissionDeniedError
from ..services.session_service import AuthError, LockedError
from ..validation import ConflictError, NotFoundError, SchemaError, ValidationError


def json_error(exc: Exception):
    """
    Translate an exception into (response, status).

    Call from inside an except block so unexpected errors are logged with
    their traceback.
    """
    if isinstance(exc, (ValidationError, SchemaError)):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, LockedError):
        return jsonify({"error": str(exc), "locked": True, "locked_until": exc.locked_until}), 429
    if isinstance(exc, AuthError):
        return jsonify({"error": str(exc)}), 401
    if isinstance(exc, PermissionDeniedError):
        return jsonify({"error": "Permission denied", "message": str(exc)}), 403
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc)}), 409
    if isinstance(exc, (InactiveError, ExpiredError)):
        return jsonify({"error": str(exc)}), 410
    current_app.logger.exception("Unhandled error")
    return jsonify({"error": "Internal server error"}), 500


def public_user(user: dict) -> dict:
    """User record without the password."""
    return {key: value for key, value in user.items() if key != "password"}
