"""
Next-step endpoints.

Endpoints:
    GET    /api/v1/next-steps?projectId=&periodId=
    GET    /api/v1/next-steps/summary?projectId=&periodId=
    POST   /api/v1/next-steps
    PUT    /api/v1/next-steps/<id>
    DELETE /api/v1/next-steps/<id>
"""

from flask import Blueprint, jsonify, request

from monthly_updates.blueprints import API_PREFIX, json_body, register_error_handlers, request_actor
from monthly_updates.services import next_step_service

next_step_bp = Blueprint("next_steps", __name__, url_prefix=f"{API_PREFIX}/next-steps")
register_error_handlers(next_step_bp)


@next_step_bp.route("", methods=["GET"])
def list_next_steps():
    steps = next_step_service.list_next_steps(
        project_id=request.args.get("projectId", type=int),
        period_id=request.args.get("periodId", type=int),
    )
    return jsonify({"nextSteps": [s.to_dict() for s in steps], "count": len(steps)}), 200


@next_step_bp.route("/summary", methods=["GET"])
def next_step_summary():
    summary = next_step_service.get_status_summary(
        project_id=request.args.get("projectId", type=int),
        period_id=request.args.get("periodId", type=int),
    )
    return jsonify(summary), 200


@next_step_bp.route("", methods=["POST"])
def create_next_step():
    step = next_step_service.create_next_step(json_body(), actor=request_actor())
    return jsonify(step.to_dict()), 201


@next_step_bp.route("/<int:step_id>", methods=["PUT"])
def update_next_step(step_id):
    step = next_step_service.update_next_step(step_id, json_body(), actor=request_actor())
    return jsonify(step.to_dict()), 200


@next_step_bp.route("/<int:step_id>", methods=["DELETE"])
def delete_next_step(step_id):
    next_step_service.delete_next_step(step_id, actor=request_actor())
    return "", 204
