"""
Monthly Updates
Blueprint registry and shared error handling.

Every API blueprint calls ``register_error_handlers(bp)`` once so that
service exceptions map to the same status codes everywhere:

    NotFoundError          → 404 ERR_NOT_FOUND
    ValidationError        → 400 ERR_VALIDATION_INVALID
    ConflictError          → 409 ERR_CONFLICT_DUPLICATE
    LockedStateViolation   → 423 ERR_LOCKED
    TransactionAborted     → 500 ERR_TRANSACTION_ABORTED
    anything else          → 500 ERR_INTERNAL
"""

import logging

from flask import current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from monthly_updates.core.exceptions import (
    ConflictError,
    LockedStateViolation,
    NotFoundError,
    TransactionAborted,
    ValidationError,
)
from monthly_updates.utils.errors import E, api_error

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def json_body() -> dict:
    """Request JSON as a dict; anything else is a validation error."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def request_actor() -> str:
    """Who is acting, for the audit trail. No auth layer: a plain header."""
    return (request.headers.get("X-Actor") or "system").strip()[:150] or "system"


def register_error_handlers(bp) -> None:
    """Attach the standard exception → JSON error mapping to ``bp``."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(LockedStateViolation)
    def _handle_locked(error: LockedStateViolation):
        return api_error(E.LOCKED, str(error))

    @bp.errorhandler(TransactionAborted)
    def _handle_aborted(error: TransactionAborted):
        return api_error(E.TRANSACTION_ABORTED, str(error))

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description, "code": f"HTTP_{error.code}"}), error.code
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        body = {"error": "Internal server error", "code": E.INTERNAL}
        if current_app.debug:
            body["detail"] = str(error)
        return jsonify(body), 500
