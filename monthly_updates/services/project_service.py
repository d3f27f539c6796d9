"""Live project CRUD, listing and summary.

Input dicts use the camelCase wire keys. Validation failures raise
ValidationError with a per-field ``details`` map; the blueprint turns
that into a 400.

Rules:
  - Edits here change the live row only; period-scoped values go through
    project_data_service.set_field_value.
  - db.session.commit() happens only in service modules.
"""

from __future__ import annotations

import logging
import math

from monthly_updates.core.exceptions import ValidationError
from monthly_updates.models import db
from monthly_updates.models.audit import write_audit
from monthly_updates.models.comment import Comment
from monthly_updates.models.project import (
    AiStage,
    Project,
    ProjectStage,
    default_benefits,
)
from monthly_updates.services.next_step_service import get_status_summary
from monthly_updates.services.project_data_service import get_project_or_404, validate_benefits
from monthly_updates.utils.helpers import iso, parse_date_input

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
SORTABLE_COLUMNS = {
    "name": Project.name,
    "created_at": Project.created_at,
    "updated_at": Project.updated_at,
}

# wire key → (attribute, max length or None)
_TEXT_FIELDS = {
    "description": ("description", None),
    "businessLead": ("business_lead", 255),
    "initiator": ("initiator", 255),
    "devTeamLead": ("dev_team_lead", 255),
    "budget": ("budget", 255),
    "keyRisks": ("key_risks", None),
    "keyUpdates": ("key_updates", None),
}
_DATE_FIELDS = {
    "projectStartDate": "project_start_date",
    "targetNextStageDate": "target_next_stage_date",
    "targetCompletionDate": "target_completion_date",
}
_ENUM_FIELDS = {
    "currentProjectStage": ("current_project_stage", ProjectStage),
    "currentAiStage": ("current_ai_stage", AiStage),
}
UPDATABLE_FIELDS = frozenset(
    {"name", "benefits"} | set(_TEXT_FIELDS) | set(_DATE_FIELDS) | set(_ENUM_FIELDS)
)


# ── Validation ───────────────────────────────────────────────────────────────


def _parse_enum(enum_cls, value, field: str):
    """Empty string or None clears the stage."""
    if value in (None, ""):
        return None
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"{field} must be one of: {allowed}",
            details={field: "invalid value"},
        ) from None


def _validate_name(value) -> str:
    name = str(value or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    if len(name) > 255:
        raise ValidationError("name must be at most 255 characters", details={"name": "too long"})
    return name


def _apply_fields(project: Project, data: dict) -> dict:
    """Copy validated wire fields onto ``project``; returns the changes."""
    changes = {}

    def _set(attr, new):
        old = getattr(project, attr)
        if old != new:
            changes[attr] = {"old": _plain(old), "new": _plain(new)}
            setattr(project, attr, new)

    if "name" in data:
        _set("name", _validate_name(data["name"]))
    for key, (attr, max_len) in _TEXT_FIELDS.items():
        if key not in data:
            continue
        value = data[key]
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{key} must be text", details={key: "expected string"})
        if max_len and value and len(value) > max_len:
            raise ValidationError(
                f"{key} must be at most {max_len} characters", details={key: "too long"},
            )
        _set(attr, value)
    for key, attr in _DATE_FIELDS.items():
        if key in data:
            _set(attr, parse_date_input(data[key], key))
    for key, (attr, enum_cls) in _ENUM_FIELDS.items():
        if key in data:
            _set(attr, _parse_enum(enum_cls, data[key], key))
    if "benefits" in data:
        _set("benefits", validate_benefits(data["benefits"]))
    return changes


def _plain(value):
    if hasattr(value, "value"):
        return value.value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


# ── Queries ──────────────────────────────────────────────────────────────────


def _positive_int(raw, field: str, default: int, maximum: int | None = None) -> int:
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"}) from None
    if value < 1 or (maximum is not None and value > maximum):
        bound = f"between 1 and {maximum}" if maximum else "at least 1"
        raise ValidationError(f"{field} must be {bound}", details={field: "out of range"})
    return value


def list_projects(args) -> dict:
    """Filtered, sorted, paginated project list.

    ``args`` is a mapping of query-string values: stage, aiStage, search,
    page, limit, sort, order.
    """
    page = _positive_int(args.get("page"), "page", 1)
    limit = _positive_int(args.get("limit"), "limit", DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)

    sort = args.get("sort") or "created_at"
    if sort not in SORTABLE_COLUMNS:
        raise ValidationError(
            f"sort must be one of: {', '.join(SORTABLE_COLUMNS)}", details={"sort": "invalid"},
        )
    order = (args.get("order") or "asc").lower()
    if order not in ("asc", "desc"):
        raise ValidationError("order must be asc or desc", details={"order": "invalid"})

    stage = args.get("stage") or None
    ai_stage = args.get("aiStage") or None
    search = (args.get("search") or "").strip() or None

    query = Project.query
    if stage:
        query = query.filter(Project.current_project_stage == _parse_enum(ProjectStage, stage, "stage"))
    if ai_stage:
        query = query.filter(Project.current_ai_stage == _parse_enum(AiStage, ai_stage, "aiStage"))
    if search:
        query = query.filter(Project.name.ilike(f"%{search}%"))

    total = query.count()
    column = SORTABLE_COLUMNS[sort]
    query = query.order_by(column.desc() if order == "desc" else column.asc(), Project.id.asc())
    projects = query.offset((page - 1) * limit).limit(limit).all()

    total_pages = math.ceil(total / limit) if total else 0
    logger.info("Projects listed count=%d page=%d", total, page)
    return {
        "projects": [p.to_dict() for p in projects],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": total_pages,
            "hasNext": page < total_pages,
            "hasPrev": page > 1,
        },
        "filters": {"stage": stage, "aiStage": ai_stage, "search": search},
    }


def get_project_summary(project_id: int) -> dict:
    """Stages, last update, current period and activity counts for a project."""
    # Local import: period_service imports project_data_service, as do we.
    from monthly_updates.services.period_service import get_current_period

    project = get_project_or_404(project_id)
    current = get_current_period()
    period_id = current.id if current else None

    comments = Comment.query.filter_by(project_id=project.id)
    if period_id is not None:
        comments = comments.filter_by(period_id=period_id)
    total_comments = comments.count()
    unresolved = comments.filter(Comment.is_resolved.is_(False)).count()

    return {
        "project": {
            "id": project.id,
            "name": project.name,
            "currentProjectStage": _plain(project.current_project_stage),
            "currentAiStage": _plain(project.current_ai_stage),
            "lastUpdated": iso(project.updated_at),
        },
        "currentPeriod": (
            {"id": current.id, "name": current.period_name} if current else None
        ),
        "nextSteps": get_status_summary(project_id=project.id, period_id=period_id),
        "comments": {"totalComments": total_comments, "unresolvedComments": unresolved},
    }


# ── Writes ───────────────────────────────────────────────────────────────────


def create_project(data: dict, *, actor: str = "system") -> Project:
    """Create a live project. ``name`` is required."""
    if "name" not in data:
        raise ValidationError("name is required", details={"name": "required"})
    project = Project(benefits=default_benefits())
    _apply_fields(project, data)

    db.session.add(project)
    db.session.flush()
    write_audit(
        entity_type="project", entity_id=project.id, action="create",
        actor=actor, project_id=project.id, diff={"name": project.name},
    )
    db.session.commit()
    logger.info("Project created project_id=%s name=%s", project.id, project.name)
    return project


def update_project(project_id: int, data: dict, *, actor: str = "system") -> Project:
    """Partial update of live fields. At least one known field is required."""
    project = get_project_or_404(project_id)
    if not UPDATABLE_FIELDS.intersection(data):
        raise ValidationError(
            "At least one field must be provided for update",
            details={"fields": sorted(UPDATABLE_FIELDS)},
        )
    try:
        changes = _apply_fields(project, data)
    except ValidationError:
        db.session.rollback()
        raise

    if changes:
        write_audit(
            entity_type="project", entity_id=project.id, action="update",
            actor=actor, project_id=project.id, diff=changes,
        )
    db.session.commit()
    logger.info(
        "Project updated project_id=%s fields=%s", project.id, ",".join(sorted(changes)) or "-",
    )
    return project


def delete_project(project_id: int, *, actor: str = "system") -> None:
    """Delete a project; its period data, next steps and comments cascade."""
    project = get_project_or_404(project_id)
    name = project.name
    db.session.delete(project)
    write_audit(
        entity_type="project", entity_id=project_id, action="delete",
        actor=actor, project_id=project_id, diff={"name": name},
    )
    db.session.commit()
    logger.info("Project deleted project_id=%s name=%s", project_id, name)
