"""JSON error bodies returned by every blueprint.

Shape: ``{"error": <message>, "code": <E.*>, "details": {...}}``, where
``details`` is present only for field-level validation errors. A write
against a locked reporting period answers 423 with ``ERR_LOCKED``.
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Values of the ``code`` field."""

    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    LOCKED = "ERR_LOCKED"
    TRANSACTION_ABORTED = "ERR_TRANSACTION_ABORTED"
    INTERNAL = "ERR_INTERNAL"


STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.LOCKED: 423,
    E.TRANSACTION_ABORTED: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(response, status)`` for an error handler; status defaults from ``code``."""
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_BY_CODE.get(code, 400)
