"""Next-step CRUD, scoped to (project, period).

Writes against a locked period raise LockedStateViolation. Inserts and
updates are also rejected at flush time by the model guard; deletes are
checked here only.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from monthly_updates.core.exceptions import LockedStateViolation, NotFoundError, ValidationError
from monthly_updates.models import db
from monthly_updates.models.audit import write_audit
from monthly_updates.models.next_step import NEXT_STEP_STATUSES, NextStep
from monthly_updates.services.project_data_service import get_period_or_404, get_project_or_404
from monthly_updates.utils.helpers import parse_date_input, require_int

logger = logging.getLogger(__name__)

DUE_SOON_DAYS = 7


def _require_open_period(period_id: int):
    period = get_period_or_404(period_id)
    if period.is_locked:
        raise LockedStateViolation(
            "ReportingPeriod", period.id,
            "Cannot change next steps in a locked reporting period",
        )
    return period


def _get_or_404(step_id: int) -> NextStep:
    step = db.session.get(NextStep, step_id)
    if step is None:
        raise NotFoundError(resource="NextStep", resource_id=step_id)
    return step


def _required_text(data: dict, key: str, max_len: int | None = None) -> str:
    value = str(data.get(key) or "").strip()
    if not value:
        raise ValidationError(f"{key} is required", details={key: "required"})
    if max_len and len(value) > max_len:
        raise ValidationError(f"{key} must be at most {max_len} characters", details={key: "too long"})
    return value


def _status(value) -> str:
    if value not in NEXT_STEP_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(NEXT_STEP_STATUSES)}",
            details={"status": "invalid value"},
        )
    return value


def list_next_steps(project_id: int | None = None, period_id: int | None = None) -> list[NextStep]:
    query = NextStep.query
    if project_id is not None:
        query = query.filter_by(project_id=project_id)
    if period_id is not None:
        query = query.filter_by(period_id=period_id)
    return query.order_by(NextStep.created_at.asc(), NextStep.id.asc()).all()


def get_status_summary(
    project_id: int | None = None,
    period_id: int | None = None,
    today: date | None = None,
) -> dict:
    """Counts per status plus overdue / due-within-a-week for open steps."""
    today = today or date.today()
    summary = {"total": 0, "overdue": 0, "dueSoon": 0}
    summary.update({status: 0 for status in NEXT_STEP_STATUSES})

    for step in list_next_steps(project_id, period_id):
        summary["total"] += 1
        summary[step.status] = summary.get(step.status, 0) + 1
        if step.due_date and step.status != "completed":
            if step.due_date < today:
                summary["overdue"] += 1
            elif step.due_date <= today + timedelta(days=DUE_SOON_DAYS):
                summary["dueSoon"] += 1
    return summary


def create_next_step(data: dict, *, actor: str = "system") -> NextStep:
    project = get_project_or_404(require_int(data, "projectId"))
    period = _require_open_period(require_int(data, "periodId"))

    step = NextStep(
        project_id=project.id,
        period_id=period.id,
        description=_required_text(data, "description"),
        owner=_required_text(data, "owner", 255),
        due_date=parse_date_input(data.get("dueDate"), "dueDate"),
        status=_status(data.get("status") or "not-started"),
    )
    db.session.add(step)
    try:
        db.session.flush()
        write_audit(
            entity_type="next_step", entity_id=step.id, action="create", actor=actor,
            project_id=project.id, period_id=period.id,
            diff={"description": step.description, "owner": step.owner},
        )
        db.session.commit()
    except LockedStateViolation:
        db.session.rollback()
        raise
    logger.info("Next step created id=%s project_id=%s period_id=%s", step.id, project.id, period.id)
    return step


def update_next_step(step_id: int, data: dict, *, actor: str = "system") -> NextStep:
    step = _get_or_404(step_id)
    _require_open_period(step.period_id)

    changes = {}
    if "description" in data:
        changes["description"] = _required_text(data, "description")
    if "owner" in data:
        changes["owner"] = _required_text(data, "owner", 255)
    if "dueDate" in data:
        changes["due_date"] = parse_date_input(data.get("dueDate"), "dueDate")
    if "status" in data:
        changes["status"] = _status(data.get("status"))
    if not changes:
        raise ValidationError("At least one field must be provided for update")

    for attr, value in changes.items():
        setattr(step, attr, value)
    try:
        write_audit(
            entity_type="next_step", entity_id=step.id, action="update", actor=actor,
            project_id=step.project_id, period_id=step.period_id, diff=changes,
        )
        db.session.commit()
    except LockedStateViolation:
        db.session.rollback()
        raise
    return step


def delete_next_step(step_id: int, *, actor: str = "system") -> None:
    step = _get_or_404(step_id)
    _require_open_period(step.period_id)
    project_id, period_id = step.project_id, step.period_id

    db.session.delete(step)
    write_audit(
        entity_type="next_step", entity_id=step_id, action="delete", actor=actor,
        project_id=project_id, period_id=period_id,
    )
    db.session.commit()
    logger.info("Next step deleted id=%s", step_id)
