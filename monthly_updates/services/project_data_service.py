"""Period-scoped project fields: reads, writes and the "project as of period" merge.

Rules:
  - A project's live row is never touched here; overrides live in
    ``project_data`` keyed by (project, period, field).
  - Writes into a locked period raise LockedStateViolation (checked here
    and again at flush time by the model guard).
  - db.session.commit() happens only in service modules.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from monthly_updates.core.exceptions import (
    ConflictError,
    LockedStateViolation,
    NotFoundError,
    ValidationError,
)
from monthly_updates.models import db
from monthly_updates.models.audit import write_audit
from monthly_updates.models.period import ReportingPeriod
from monthly_updates.models.project import (
    BENEFIT_APPLICABLE_VALUES,
    AiStage,
    Project,
    ProjectStage,
    default_benefits,
)
from monthly_updates.models.project_data import PERIOD_SCOPED_FIELDS, ProjectData
from monthly_updates.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

_STAGE_FIELDS = {
    "current_project_stage": ProjectStage,
    "current_ai_stage": AiStage,
}
_DATE_FIELDS = ("target_next_stage_date", "target_completion_date")


# ── Lookups ──────────────────────────────────────────────────────────────────


def get_project_or_404(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def get_period_or_404(period_id: int) -> ReportingPeriod:
    period = db.session.get(ReportingPeriod, period_id)
    if period is None:
        raise NotFoundError(resource="ReportingPeriod", resource_id=period_id)
    return period


# ── Merge ────────────────────────────────────────────────────────────────────


def merge_period_data(project: Project, rows) -> dict:
    """Layer ProjectData overrides onto the project's live dict.

    Fields without an override keep the live value. Unknown field names
    are ignored.
    """
    merged = project.to_dict()
    for row in rows:
        mapping = PERIOD_SCOPED_FIELDS.get(row.field_name)
        if mapping is None:
            continue
        merged[mapping[1]] = row.value
    return merged


def get_project_for_period(project_id: int, period_id: int) -> dict:
    """Return project ``project_id`` as it looked during ``period_id``."""
    project = get_project_or_404(project_id)
    period = get_period_or_404(period_id)
    rows = (
        ProjectData.query
        .filter_by(project_id=project.id, period_id=period.id)
        .all()
    )
    merged = merge_period_data(project, rows)
    merged["periodId"] = period.id
    return merged


def get_projects_for_period(period_id: int) -> list[dict]:
    """Every project merged with its overrides for ``period_id``."""
    period = get_period_or_404(period_id)

    rows_by_project: dict[int, list[ProjectData]] = defaultdict(list)
    for row in ProjectData.query.filter_by(period_id=period.id).all():
        rows_by_project[row.project_id].append(row)

    projects = Project.query.order_by(Project.created_at.asc(), Project.id.asc()).all()
    result = []
    for project in projects:
        merged = merge_period_data(project, rows_by_project.get(project.id, ()))
        merged["periodId"] = period.id
        result.append(merged)
    return result


def count_projects_in_period(period_id: int) -> int:
    """Distinct projects holding at least one value in the period."""
    return db.session.execute(
        select(func.count(func.distinct(ProjectData.project_id)))
        .where(ProjectData.period_id == period_id)
    ).scalar_one()


# ── Field store ──────────────────────────────────────────────────────────────


def get_project_data(project_id: int, period_id: int) -> list[ProjectData]:
    get_project_or_404(project_id)
    get_period_or_404(period_id)
    return (
        ProjectData.query
        .filter_by(project_id=project_id, period_id=period_id)
        .order_by(ProjectData.field_name.asc())
        .all()
    )


def get_field_value(project_id: int, period_id: int, field_name: str):
    """Decoded value of one field in one period, or None when unset."""
    _require_known_field(field_name)
    row = ProjectData.query.filter_by(
        project_id=project_id, period_id=period_id, field_name=field_name,
    ).first()
    return row.value if row else None


def set_field_value(
    project_id: int,
    period_id: int,
    field_name: str,
    value,
    *,
    actor: str = "system",
) -> ProjectData:
    """Create or overwrite one period-scoped field value.

    Raises:
        ValidationError: unknown field name or malformed value.
        NotFoundError: project or period missing.
        LockedStateViolation: the period is locked.
        ConflictError: a concurrent writer inserted the same field first.
    """
    _require_known_field(field_name)
    value = _normalise_value(field_name, value)
    project = get_project_or_404(project_id)
    period = get_period_or_404(period_id)
    if period.is_locked:
        raise LockedStateViolation(
            "ReportingPeriod", period.id,
            "Cannot write project data to a locked reporting period",
        )

    row = ProjectData.query.filter_by(
        project_id=project.id, period_id=period.id, field_name=field_name,
    ).first()
    action = "update" if row else "create"
    old_value = row.value if row else None
    if row is None:
        row = ProjectData(project_id=project.id, period_id=period.id, field_name=field_name)
        db.session.add(row)
    row.value = value

    try:
        db.session.flush()
        write_audit(
            entity_type="project_data",
            entity_id=row.id,
            action=action,
            actor=actor,
            project_id=project.id,
            period_id=period.id,
            diff={field_name: {"old": old_value, "new": value}},
        )
        db.session.commit()
    except LockedStateViolation:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("ProjectData", "field_name", field_name) from exc

    logger.info(
        "Project data %s project_id=%s period_id=%s field=%s",
        action, project.id, period.id, field_name,
    )
    return row


def _require_known_field(field_name: str) -> None:
    if field_name not in PERIOD_SCOPED_FIELDS:
        raise ValidationError(
            f"Unknown field '{field_name}'",
            details={"fieldName": f"must be one of: {', '.join(sorted(PERIOD_SCOPED_FIELDS))}"},
        )


def _normalise_value(field_name: str, value):
    """Validate enum, date and benefits fields; other fields are stored as given."""
    if field_name in _STAGE_FIELDS:
        if value in (None, ""):
            return None
        allowed = [m.value for m in _STAGE_FIELDS[field_name]]
        if value not in allowed:
            raise ValidationError(
                f"{field_name} must be one of: {', '.join(allowed)}",
                details={field_name: "invalid value"},
            )
        return value
    if field_name in _DATE_FIELDS:
        parsed = parse_date_input(value, field_name)
        return parsed.isoformat() if parsed else None
    if field_name == "benefits" and value is not None:
        return validate_benefits(value)
    return value


def validate_benefits(value) -> dict:
    """Check the {category: {applicable, details}} shape; None gives the defaults."""
    if value is None:
        return default_benefits()
    if not isinstance(value, dict):
        raise ValidationError("benefits must be an object", details={"benefits": "expected object"})
    errors = {}
    for category, entry in value.items():
        if not isinstance(entry, dict):
            errors[category] = "expected {applicable, details}"
            continue
        if entry.get("applicable", "") not in BENEFIT_APPLICABLE_VALUES:
            errors[category] = "applicable must be yes, no or empty"
        elif not isinstance(entry.get("details", ""), str):
            errors[category] = "details must be text"
    if errors:
        raise ValidationError("Invalid benefits", details={"benefits": errors})
    return {
        category: {"applicable": entry.get("applicable", ""), "details": entry.get("details", "")}
        for category, entry in value.items()
    }
