"""
Field-level comment endpoints.

Endpoints:
    GET    /api/v1/comments/project/<project_id>?periodId=
    GET    /api/v1/comments/field/<project_id>/<period_id>/<field_reference>
    GET    /api/v1/comments/summary/<project_id>/<period_id>
    GET    /api/v1/comments/unresolved?projectId=&periodId=
    POST   /api/v1/comments
    POST   /api/v1/comments/<id>/reply
    PUT    /api/v1/comments/<id>
    DELETE /api/v1/comments/<id>
"""

from flask import Blueprint, jsonify, request

from monthly_updates.blueprints import API_PREFIX, json_body, register_error_handlers, request_actor
from monthly_updates.services import comment_service

comment_bp = Blueprint("comments", __name__, url_prefix=f"{API_PREFIX}/comments")
register_error_handlers(comment_bp)


def _threads(comments) -> list[dict]:
    return [c.to_dict(include_replies=True) for c in comments]


@comment_bp.route("/project/<int:project_id>", methods=["GET"])
def project_comments(project_id):
    period_id = request.args.get("periodId", type=int)
    comments = comment_service.list_for_project(project_id, period_id)
    return jsonify({
        "comments": _threads(comments),
        "count": len(comments),
        "projectId": project_id,
        "periodId": period_id,
    }), 200


@comment_bp.route(
    "/field/<int:project_id>/<int:period_id>/<path:field_reference>", methods=["GET"],
)
def field_comments(project_id, period_id, field_reference):
    comments = comment_service.list_for_field(project_id, period_id, field_reference)
    return jsonify({
        "comments": _threads(comments),
        "count": len(comments),
        "fieldReference": field_reference,
    }), 200


@comment_bp.route("/summary/<int:project_id>/<int:period_id>", methods=["GET"])
def comment_summary(project_id, period_id):
    return jsonify(comment_service.field_summary(project_id, period_id)), 200


@comment_bp.route("/unresolved", methods=["GET"])
def unresolved_comments():
    comments = comment_service.list_unresolved(
        project_id=request.args.get("projectId", type=int),
        period_id=request.args.get("periodId", type=int),
    )
    return jsonify({"comments": _threads(comments), "count": len(comments)}), 200


@comment_bp.route("", methods=["POST"])
def create_comment():
    comment = comment_service.create_comment(json_body(), actor=request_actor())
    return jsonify(comment.to_dict()), 201


@comment_bp.route("/<int:comment_id>/reply", methods=["POST"])
def reply(comment_id):
    comment = comment_service.reply_to(comment_id, json_body(), actor=request_actor())
    return jsonify(comment.to_dict()), 201


@comment_bp.route("/<int:comment_id>", methods=["PUT"])
def update_comment(comment_id):
    comment = comment_service.update_comment(comment_id, json_body(), actor=request_actor())
    return jsonify(comment.to_dict()), 200


@comment_bp.route("/<int:comment_id>", methods=["DELETE"])
def delete_comment(comment_id):
    comment_service.delete_comment(comment_id, actor=request_actor())
    return "", 204
