"""
Project endpoints: live CRUD plus period-scoped reads and writes.

Endpoints:
    GET    /api/v1/projects
    POST   /api/v1/projects
    GET    /api/v1/projects/<id>
    PUT    /api/v1/projects/<id>          (PATCH accepted)
    DELETE /api/v1/projects/<id>
    GET    /api/v1/projects/<id>/summary
    GET    /api/v1/projects/<id>/periods/<period_id>
    GET    /api/v1/projects/<id>/periods/<period_id>/data
    PUT    /api/v1/projects/<id>/periods/<period_id>/data/<field_name>
"""

import logging

from flask import Blueprint, jsonify, request

from monthly_updates.blueprints import API_PREFIX, json_body, register_error_handlers, request_actor
from monthly_updates.core.exceptions import ValidationError
from monthly_updates.services import project_data_service, project_service

logger = logging.getLogger(__name__)

project_bp = Blueprint("projects", __name__, url_prefix=f"{API_PREFIX}/projects")
register_error_handlers(project_bp)


# ── Live project ─────────────────────────────────────────────────────────────


@project_bp.route("", methods=["GET"])
def list_projects():
    return jsonify(project_service.list_projects(request.args)), 200


@project_bp.route("", methods=["POST"])
def create_project():
    project = project_service.create_project(json_body(), actor=request_actor())
    return jsonify(project.to_dict()), 201


@project_bp.route("/<int:project_id>", methods=["GET"])
def get_project(project_id):
    return jsonify(project_data_service.get_project_or_404(project_id).to_dict()), 200


@project_bp.route("/<int:project_id>", methods=["PUT", "PATCH"])
def update_project(project_id):
    project = project_service.update_project(project_id, json_body(), actor=request_actor())
    return jsonify(project.to_dict()), 200


@project_bp.route("/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    project_service.delete_project(project_id, actor=request_actor())
    return "", 204


@project_bp.route("/<int:project_id>/summary", methods=["GET"])
def project_summary(project_id):
    return jsonify(project_service.get_project_summary(project_id)), 200


# ── Period-scoped ────────────────────────────────────────────────────────────


@project_bp.route("/<int:project_id>/periods/<int:period_id>", methods=["GET"])
def project_for_period(project_id, period_id):
    return jsonify(project_data_service.get_project_for_period(project_id, period_id)), 200


@project_bp.route("/<int:project_id>/periods/<int:period_id>/data", methods=["GET"])
def project_period_data(project_id, period_id):
    rows = project_data_service.get_project_data(project_id, period_id)
    return jsonify({"data": [r.to_dict() for r in rows], "count": len(rows)}), 200


@project_bp.route(
    "/<int:project_id>/periods/<int:period_id>/data/<field_name>", methods=["PUT"],
)
def set_project_period_field(project_id, period_id, field_name):
    data = json_body()
    if "value" not in data:
        raise ValidationError("value is required", details={"value": "required"})
    row = project_data_service.set_field_value(
        project_id, period_id, field_name, data["value"], actor=request_actor(),
    )
    return jsonify(row.to_dict()), 200
