"""
Reporting period endpoints.

Endpoints:
    GET    /api/v1/periods                    — all periods, newest first
    GET    /api/v1/periods/current            — the active period
    GET    /api/v1/periods/next               — preview of the next period
    POST   /api/v1/periods/create-next        — preview, or rollover with confirmed=true
    GET    /api/v1/periods/calculate          — period containing ?date=
    GET    /api/v1/periods/pending-locks      — unlocked periods past their end
    POST   /api/v1/periods/auto-lock          — lock every pending period
    GET    /api/v1/periods/<id>               — detail (+ ?includeSnapshot=true)
    GET    /api/v1/periods/<id>/projects      — every project as of that period
    PUT    /api/v1/periods/<id>               — rename (?force=true for locked)
    POST   /api/v1/periods/<id>/lock          — lock with snapshot
    DELETE /api/v1/periods/<id>               — delete (?force=true for locked)
"""

import logging

from flask import Blueprint, jsonify, request

from monthly_updates.blueprints import API_PREFIX, json_body, register_error_handlers, request_actor
from monthly_updates.core.exceptions import NotFoundError, ValidationError
from monthly_updates.services import period_service
from monthly_updates.services.project_data_service import get_projects_for_period
from monthly_updates.utils.helpers import parse_bool_arg, parse_date_input

logger = logging.getLogger(__name__)

period_bp = Blueprint("periods", __name__, url_prefix=f"{API_PREFIX}/periods")
register_error_handlers(period_bp)

ROLLOVER_ACTIONS = (
    "Lock the current reporting period",
    "Create the new reporting period and make it current",
    "Copy benefits, key risks, key updates and description of every project forward",
)


def _summary(period) -> dict:
    return {
        key: value for key, value in period.to_dict().items()
        if key in ("id", "name", "startDate", "endDate", "isActive", "isLocked", "lockedAt")
    }


@period_bp.route("", methods=["GET"])
def list_periods():
    periods = period_service.get_all_periods()
    return jsonify({"periods": [_summary(p) for p in periods], "count": len(periods)}), 200


@period_bp.route("/current", methods=["GET"])
def current_period():
    period = period_service.get_current_period()
    if period is None:
        raise NotFoundError(resource="Current reporting period")
    return jsonify(period.to_dict()), 200


@period_bp.route("/next", methods=["GET"])
def next_period():
    return jsonify(period_service.calculate_next_period().to_dict()), 200


@period_bp.route("/create-next", methods=["POST"])
def create_next_period():
    """Two-step rollover: without ``confirmed: true`` nothing is written."""
    data = json_body()
    confirmed = data.get("confirmed", False)
    if not isinstance(confirmed, bool):
        raise ValidationError("confirmed must be a boolean", details={"confirmed": "expected boolean"})

    if not confirmed:
        bounds = period_service.calculate_next_period()
        return jsonify({
            "preview": True,
            "data": {
                "nextPeriod": bounds.to_dict(),
                "message": f"Creating {bounds.name} will lock the current reporting period. "
                           "Send confirmed=true to proceed.",
                "actions": list(ROLLOVER_ACTIONS),
            },
        }), 200

    result = period_service.create_new_period(actor=request_actor())
    return jsonify(result), 201


@period_bp.route("/calculate", methods=["GET"])
def calculate_period():
    on = parse_date_input(request.args.get("date"), "date")
    bounds = period_service.calculate_period_for_date(on)
    return jsonify(bounds.to_dict()), 200


@period_bp.route("/pending-locks", methods=["GET"])
def pending_locks():
    periods = period_service.find_pending_locks()
    return jsonify({"periods": [_summary(p) for p in periods], "count": len(periods)}), 200


@period_bp.route("/auto-lock", methods=["POST"])
def auto_lock():
    actor = (request.headers.get("X-Actor") or "").strip()[:150] or period_service.AUTO_LOCK_ACTOR
    results = period_service.auto_lock_pending(actor=actor)
    successful, failed = results["successful"], results["failed"]
    return jsonify({
        "results": results,
        "message": f"Locked {len(successful)} reporting period(s), {len(failed)} failed",
        "meta": {
            "totalProcessed": len(successful) + len(failed),
            "successCount": len(successful),
            "failureCount": len(failed),
        },
    }), 200


@period_bp.route("/<int:period_id>", methods=["GET"])
def get_period(period_id):
    include_snapshot = parse_bool_arg(request.args.get("includeSnapshot"))
    return jsonify(period_service.get_period_detail(period_id, include_snapshot=include_snapshot)), 200


@period_bp.route("/<int:period_id>/projects", methods=["GET"])
def period_projects(period_id):
    projects = get_projects_for_period(period_id)
    return jsonify({"periodId": period_id, "projects": projects, "count": len(projects)}), 200


@period_bp.route("/<int:period_id>", methods=["PUT"])
def update_period(period_id):
    period = period_service.update_period(
        period_id,
        json_body(),
        force=parse_bool_arg(request.args.get("force")),
        actor=request_actor(),
    )
    return jsonify(period.to_dict()), 200


@period_bp.route("/<int:period_id>/lock", methods=["POST"])
def lock_period(period_id):
    data = json_body()
    flags = {}
    for key, kwarg in (
        ("includeProjectData", "include_project_data"),
        ("includeNextSteps", "include_next_steps"),
        ("includeComments", "include_comments"),
    ):
        value = data.get(key, True)
        if not isinstance(value, bool):
            raise ValidationError(f"{key} must be a boolean", details={key: "expected boolean"})
        flags[kwarg] = value

    period = period_service.lock_period(period_id, actor=request_actor(), **flags)
    return jsonify(period.to_dict()), 200


@period_bp.route("/<int:period_id>", methods=["DELETE"])
def delete_period(period_id):
    period_service.delete_period(
        period_id,
        force=parse_bool_arg(request.args.get("force")),
        actor=request_actor(),
    )
    return jsonify({"message": "Reporting period deleted", "id": period_id}), 200
