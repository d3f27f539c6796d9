"""Field-level comment threads.

A thread is one top-level comment plus its direct replies; a reply to a
reply is rejected. Every write checks the comment's period first and
raises LockedStateViolation when it is locked.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from monthly_updates.core.exceptions import LockedStateViolation, NotFoundError, ValidationError
from monthly_updates.models import db
from monthly_updates.models.audit import write_audit
from monthly_updates.models.comment import Comment
from monthly_updates.services.project_data_service import get_period_or_404, get_project_or_404
from monthly_updates.utils.helpers import require_int

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 5000
MAX_FIELD_REFERENCE_LENGTH = 100


def _get_or_404(comment_id: int) -> Comment:
    comment = db.session.get(Comment, comment_id)
    if comment is None:
        raise NotFoundError(resource="Comment", resource_id=comment_id)
    return comment


def _require_open_period(period_id: int, verb: str):
    period = get_period_or_404(period_id)
    if period.is_locked:
        raise LockedStateViolation(
            "ReportingPeriod", period.id, f"Cannot {verb} comments in a locked reporting period",
        )
    return period


def _text(data: dict, key: str, max_len: int) -> str:
    value = str(data.get(key) or "").strip()
    if not value:
        raise ValidationError(f"{key} is required", details={key: "required"})
    if len(value) > max_len:
        raise ValidationError(f"{key} must be at most {max_len} characters", details={key: "too long"})
    return value


# ── Reads ────────────────────────────────────────────────────────────────────


def list_for_project(project_id: int, period_id: int | None = None) -> list[Comment]:
    """Top-level comments of a project, newest first."""
    get_project_or_404(project_id)
    query = Comment.query.filter_by(project_id=project_id, parent_comment_id=None)
    if period_id is not None:
        query = query.filter_by(period_id=period_id)
    return query.order_by(Comment.created_at.desc(), Comment.id.desc()).all()


def list_for_field(project_id: int, period_id: int, field_reference: str) -> list[Comment]:
    """Top-level comments on one field, oldest first."""
    get_project_or_404(project_id)
    get_period_or_404(period_id)
    return (
        Comment.query
        .filter_by(
            project_id=project_id, period_id=period_id,
            field_reference=field_reference, parent_comment_id=None,
        )
        .order_by(Comment.created_at.asc(), Comment.id.asc())
        .all()
    )


def list_unresolved(project_id: int | None = None, period_id: int | None = None) -> list[Comment]:
    query = Comment.query.filter(
        Comment.is_resolved.is_(False), Comment.parent_comment_id.is_(None),
    )
    if project_id is not None:
        query = query.filter_by(project_id=project_id)
    if period_id is not None:
        query = query.filter_by(period_id=period_id)
    return query.order_by(Comment.created_at.desc(), Comment.id.desc()).all()


def field_summary(project_id: int, period_id: int) -> dict:
    """``{field_reference: {total, resolved, unresolved}}`` for one period."""
    get_project_or_404(project_id)
    get_period_or_404(period_id)
    summary: dict[str, dict] = {}
    rows = db.session.execute(
        db.select(Comment.field_reference, Comment.is_resolved)
        .where(Comment.project_id == project_id, Comment.period_id == period_id)
    ).all()
    for field_reference, is_resolved in rows:
        entry = summary.setdefault(field_reference, {"total": 0, "resolved": 0, "unresolved": 0})
        entry["total"] += 1
        entry["resolved" if is_resolved else "unresolved"] += 1
    return summary


# ── Writes ───────────────────────────────────────────────────────────────────


def create_comment(data: dict, *, actor: str = "system") -> Comment:
    """Create a top-level comment, or a reply when ``parentCommentId`` is set."""
    project = get_project_or_404(require_int(data, "projectId"))
    period = _require_open_period(require_int(data, "periodId"), "add")
    field_reference = _text(data, "fieldReference", MAX_FIELD_REFERENCE_LENGTH)

    parent = None
    if data.get("parentCommentId") is not None:
        parent = _get_or_404(require_int(data, "parentCommentId"))
        if (parent.project_id, parent.period_id, parent.field_reference) != (
            project.id, period.id, field_reference,
        ):
            raise ValidationError(
                "Parent comment must be in the same project, period and field",
                details={"parentCommentId": "mismatch"},
            )
        if parent.parent_comment_id is not None:
            raise ValidationError(
                "Replies can only be added to top-level comments",
                details={"parentCommentId": "nested reply"},
            )

    comment = Comment(
        project_id=project.id,
        period_id=period.id,
        field_reference=field_reference,
        parent_comment_id=parent.id if parent else None,
        author_name=_text(data, "authorName", 255),
        content=_text(data, "content", MAX_CONTENT_LENGTH),
    )
    db.session.add(comment)
    try:
        db.session.flush()
        write_audit(
            entity_type="comment", entity_id=comment.id, action="create", actor=actor,
            project_id=project.id, period_id=period.id,
            diff={"fieldReference": field_reference, "parentCommentId": comment.parent_comment_id},
        )
        db.session.commit()
    except LockedStateViolation:
        db.session.rollback()
        raise
    logger.info(
        "Comment created id=%s project_id=%s field=%s", comment.id, project.id, field_reference,
    )
    return comment


def reply_to(comment_id: int, data: dict, *, actor: str = "system") -> Comment:
    """Reply to a top-level comment; project, period and field are inherited."""
    parent = _get_or_404(comment_id)
    payload = {
        "projectId": parent.project_id,
        "periodId": parent.period_id,
        "fieldReference": parent.field_reference,
        "parentCommentId": parent.id,
        "authorName": data.get("authorName"),
        "content": data.get("content"),
    }
    return create_comment(payload, actor=actor)


def update_comment(comment_id: int, data: dict, *, actor: str = "system") -> Comment:
    """Edit content and/or toggle resolution."""
    comment = _get_or_404(comment_id)
    _require_open_period(comment.period_id, "modify")
    if "content" not in data and "isResolved" not in data:
        raise ValidationError("Provide content or isResolved")
    if "isResolved" in data and not isinstance(data["isResolved"], bool):
        raise ValidationError("isResolved must be a boolean", details={"isResolved": "invalid"})

    changes = {}
    if "content" in data:
        content = _text(data, "content", MAX_CONTENT_LENGTH)
        if content != comment.content:
            changes["content"] = {"old": comment.content, "new": content}
            comment.content = content
    if "isResolved" in data:
        resolved = data["isResolved"]
        if resolved and not comment.is_resolved:
            comment.is_resolved = True
            comment.resolved_at = datetime.now(timezone.utc)
            comment.resolved_by = str(data.get("resolvedBy") or actor)[:255]
            changes["isResolved"] = {"old": False, "new": True}
        elif not resolved and comment.is_resolved:
            comment.is_resolved = False
            comment.resolved_at = None
            comment.resolved_by = None
            changes["isResolved"] = {"old": True, "new": False}

    try:
        if changes:
            write_audit(
                entity_type="comment", entity_id=comment.id, action="update", actor=actor,
                project_id=comment.project_id, period_id=comment.period_id, diff=changes,
            )
        db.session.commit()
    except LockedStateViolation:
        db.session.rollback()
        raise
    return comment


def delete_comment(comment_id: int, *, actor: str = "system") -> None:
    """Delete a comment and its replies."""
    comment = _get_or_404(comment_id)
    _require_open_period(comment.period_id, "delete")
    project_id, period_id = comment.project_id, comment.period_id
    reply_count = len(comment.replies)

    db.session.delete(comment)
    write_audit(
        entity_type="comment", entity_id=comment_id, action="delete", actor=actor,
        project_id=project_id, period_id=period_id, diff={"replies": reply_count},
    )
    db.session.commit()
    logger.info("Comment thread deleted id=%s replies=%d", comment_id, reply_count)
