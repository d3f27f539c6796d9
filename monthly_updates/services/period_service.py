"""Reporting period lifecycle: preview, rollover, lock, rename, delete.

Rollover (``create_new_period``) is the only operation that mutates more
than one period row or writes ProjectData in bulk. It runs as a single
transaction:

  1. compute the next bounds from the active period (or today)
  2. lock every active period
  3. insert the new active period
  4. copy each project's copy-forward fields into the new period
  5. commit

Any failure rolls back all of it. The unique constraint on
(period_start, period_end) and the single-active partial index close
the race between two concurrent rollovers; the loser gets ConflictError.

Rules:
  - db.session.commit() / rollback() happen only in service modules.
  - Audit rows are flushed inside the same transaction.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from monthly_updates.core.exceptions import (
    ConflictError,
    LockedStateViolation,
    TransactionAborted,
    ValidationError,
)
from monthly_updates.models import db
from monthly_updates.models.audit import write_audit
from monthly_updates.models.comment import Comment
from monthly_updates.models.next_step import NextStep
from monthly_updates.models.period import ReportingPeriod
from monthly_updates.models.project import Project
from monthly_updates.models.project_data import (
    COPY_FORWARD_FIELDS,
    PERIOD_SCOPED_FIELDS,
    ProjectData,
)
from monthly_updates.services import period_calendar
from monthly_updates.services.period_calendar import PeriodBounds
from monthly_updates.services.project_data_service import (
    count_projects_in_period,
    get_period_or_404,
    get_projects_for_period,
)

logger = logging.getLogger(__name__)

AUTO_LOCK_ACTOR = "auto-lock-system"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Queries ───────────────────────────────────────────────────────────────────


def get_current_period() -> ReportingPeriod | None:
    """The active period; newest start first if the invariant was ever broken."""
    return (
        ReportingPeriod.query
        .filter(ReportingPeriod.is_active.is_(True))
        .order_by(ReportingPeriod.period_start.desc())
        .first()
    )


def get_all_periods() -> list[ReportingPeriod]:
    return ReportingPeriod.query.order_by(ReportingPeriod.period_start.desc()).all()


def get_period_detail(
    period_id: int,
    *,
    include_snapshot: bool = False,
    today: date | None = None,
) -> dict:
    """Period dict plus project count and calendar status flags."""
    period = get_period_or_404(period_id)
    data = period.to_dict(include_snapshot=include_snapshot)
    data["projectCount"] = count_projects_in_period(period.id)
    data["isCurrentPeriod"] = period.contains(today)
    data["shouldBeLocked"] = period.should_be_locked(today)
    return data


def find_pending_locks(today: date | None = None) -> list[ReportingPeriod]:
    """Unlocked periods whose end date has passed."""
    today = today or date.today()
    return (
        ReportingPeriod.query
        .filter(
            ReportingPeriod.is_locked.is_(False),
            ReportingPeriod.period_end <= today,
        )
        .order_by(ReportingPeriod.period_start.asc())
        .all()
    )


def _find_by_bounds(bounds: PeriodBounds) -> ReportingPeriod | None:
    return ReportingPeriod.query.filter_by(
        period_start=bounds.start, period_end=bounds.end,
    ).first()


# ── Preview ───────────────────────────────────────────────────────────────────


def calculate_next_period(today: date | None = None) -> PeriodBounds:
    """Bounds of the period a rollover would create. No side effects.

    Follows the active period's end date; with no active period, falls
    back to the period containing ``today``.
    """
    current = get_current_period()
    if current is not None:
        return period_calendar.period_after(current.period_end)
    return period_calendar.period_for_date(today or date.today())


def calculate_period_for_date(on: date | None = None) -> PeriodBounds:
    return period_calendar.period_for_date(on or date.today())


# ── Rollover ──────────────────────────────────────────────────────────────────


def create_new_period(*, actor: str = "system", today: date | None = None) -> dict:
    """Lock the active period, open the next one and copy project data forward.

    Returns:
        {"newPeriod", "copiedProjectsCount", "copiedDataRecordsCount",
         "lockedPreviousPeriodsCount"}

    Raises:
        ConflictError: the target period already exists (including a
            concurrent rollover that committed first).
        TransactionAborted: anything else failed; nothing was written.
    """
    bounds = calculate_next_period(today)
    logger.info("Creating new period %s (%s → %s)", bounds.name, bounds.start, bounds.end)

    if _find_by_bounds(bounds) is not None:
        raise ConflictError(
            "ReportingPeriod", "period_start,period_end",
            f"{bounds.start.isoformat()},{bounds.end.isoformat()}",
        )

    try:
        # Row lock serialises concurrent rollovers on PostgreSQL; SQLite ignores it.
        locked_ids = list(db.session.execute(
            select(ReportingPeriod.id)
            .where(ReportingPeriod.is_active.is_(True))
            .with_for_update()
        ).scalars())
        locked_at = _utcnow()
        if locked_ids:
            db.session.execute(
                update(ReportingPeriod)
                .where(ReportingPeriod.id.in_(locked_ids))
                .values(is_active=False, is_locked=True),
                execution_options={"synchronize_session": "fetch"},
            )
            # Keep the original timestamp of a period locked explicitly earlier.
            db.session.execute(
                update(ReportingPeriod)
                .where(
                    ReportingPeriod.id.in_(locked_ids),
                    ReportingPeriod.locked_at.is_(None),
                )
                .values(locked_at=locked_at),
                execution_options={"synchronize_session": "fetch"},
            )

        new_period = ReportingPeriod(
            period_start=bounds.start,
            period_end=bounds.end,
            period_name=bounds.name,
            is_active=True,
            is_locked=False,
        )
        db.session.add(new_period)
        db.session.flush()

        projects = Project.query.order_by(Project.id.asc()).all()
        copied = 0
        for project in projects:
            copied += _copy_forward(project, new_period)

        for old_id in locked_ids:
            write_audit(
                entity_type="reporting_period", entity_id=old_id,
                action="period.lock", actor=actor, period_id=old_id,
            )
        write_audit(
            entity_type="reporting_period", entity_id=new_period.id,
            action="period.rollover", actor=actor, period_id=new_period.id,
            diff={
                "name": bounds.name,
                "startDate": bounds.start.isoformat(),
                "endDate": bounds.end.isoformat(),
                "lockedPeriodIds": locked_ids,
                "copiedProjects": len(projects),
                "copiedDataRecords": copied,
            },
        )
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Period %s already exists (concurrent rollover): %s", bounds.name, exc.orig)
        raise ConflictError(
            "ReportingPeriod", "period_start,period_end",
            f"{bounds.start.isoformat()},{bounds.end.isoformat()}",
        ) from exc
    except (ConflictError, LockedStateViolation, ValidationError):
        db.session.rollback()
        raise
    except Exception as exc:
        db.session.rollback()
        logger.exception("Period rollover to %s failed; rolled back", bounds.name)
        raise TransactionAborted("create_new_period") from exc

    result = {
        "newPeriod": {
            "id": new_period.id,
            "name": new_period.period_name,
            "startDate": new_period.period_start.isoformat(),
            "endDate": new_period.period_end.isoformat(),
            "isActive": new_period.is_active,
        },
        "copiedProjectsCount": len(projects),
        "copiedDataRecordsCount": copied,
        "lockedPreviousPeriodsCount": len(locked_ids),
    }
    logger.info(
        "Period rollover complete: %s locked=%d projects=%d records=%d",
        new_period.period_name, len(locked_ids), len(projects), copied,
        extra={"event_type": "period.rollover", "period_id": new_period.id},
    )
    return result


def _copy_forward(project: Project, period: ReportingPeriod) -> int:
    """Insert the project's copy-forward field values into ``period``.

    The live row is read, not modified. Returns the number of rows added.
    """
    written = 0
    for field_name in COPY_FORWARD_FIELDS:
        attr = PERIOD_SCOPED_FIELDS[field_name][0]
        value = getattr(project, attr)
        if value is None:
            value = {} if field_name == "benefits" else ""
        row = ProjectData(project_id=project.id, period_id=period.id, field_name=field_name)
        row.value = value
        db.session.add(row)
        written += 1
    db.session.flush()
    return written


# ── Bootstrap ─────────────────────────────────────────────────────────────────


def initialize_first_period(*, today: date | None = None, actor: str = "system") -> ReportingPeriod:
    """Create the period containing ``today`` when no period exists yet.

    Seeds copy-forward data for existing projects. Idempotent: returns the
    current (or newest) period when one already exists.
    """
    existing = get_current_period() or ReportingPeriod.query.order_by(
        ReportingPeriod.period_start.desc()
    ).first()
    if existing is not None:
        return existing

    bounds = period_calendar.period_for_date(today or date.today())
    try:
        period = ReportingPeriod(
            period_start=bounds.start,
            period_end=bounds.end,
            period_name=bounds.name,
            is_active=True,
            is_locked=False,
        )
        db.session.add(period)
        db.session.flush()
        for project in Project.query.order_by(Project.id.asc()).all():
            _copy_forward(project, period)
        write_audit(
            entity_type="reporting_period", entity_id=period.id,
            action="create", actor=actor, period_id=period.id,
            diff={"name": bounds.name, "bootstrap": True},
        )
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(
            "ReportingPeriod", "period_start,period_end",
            f"{bounds.start.isoformat()},{bounds.end.isoformat()}",
        ) from exc

    logger.info("Initialized first reporting period %s", period.period_name)
    return period


# ── Single-period administration ─────────────────────────────────────────────


def lock_period(
    period_id: int,
    *,
    include_project_data: bool = True,
    include_next_steps: bool = True,
    include_comments: bool = True,
    actor: str = "system",
) -> ReportingPeriod:
    """Lock one period and store a point-in-time snapshot of its data.

    Raises:
        NotFoundError: unknown period.
        LockedStateViolation: already locked.
    """
    period = get_period_or_404(period_id)
    if period.is_locked:
        raise LockedStateViolation(
            "ReportingPeriod", period.id, "Reporting period is already locked",
        )

    snapshot: dict = {}
    if include_project_data:
        snapshot["projects"] = get_projects_for_period(period.id)
    if include_next_steps:
        snapshot["nextSteps"] = [
            s.to_dict() for s in
            NextStep.query.filter_by(period_id=period.id).order_by(NextStep.id.asc()).all()
        ]
    if include_comments:
        snapshot["comments"] = [
            c.to_dict() for c in
            Comment.query.filter_by(period_id=period.id).order_by(Comment.id.asc()).all()
        ]
    snapshot["lockedAt"] = _utcnow().isoformat()
    snapshot["lockedBy"] = actor

    period.lock(snapshot)
    write_audit(
        entity_type="reporting_period", entity_id=period.id,
        action="period.lock", actor=actor, period_id=period.id,
        diff={"components": [k for k in snapshot if k not in ("lockedAt", "lockedBy")]},
    )
    db.session.commit()
    logger.info(
        "Reporting period locked period_id=%s name=%s", period.id, period.period_name,
        extra={"event_type": "period.lock", "period_id": period.id},
    )
    return period


def auto_lock_pending(*, actor: str = AUTO_LOCK_ACTOR, today: date | None = None) -> dict:
    """Lock every period whose end date has passed.

    One failure does not stop the run; each period is reported under
    ``successful`` or ``failed``.
    """
    results: dict = {"successful": [], "failed": []}
    for period in find_pending_locks(today):
        entry = {"periodId": period.id, "periodName": period.period_name}
        try:
            lock_period(period.id, actor=actor)
        except Exception as exc:
            db.session.rollback()
            logger.exception("Auto-lock failed period_id=%s", entry["periodId"])
            results["failed"].append({**entry, "error": str(exc)})
            continue
        results["successful"].append(entry)

    logger.info(
        "Auto-lock run complete locked=%d failed=%d",
        len(results["successful"]), len(results["failed"]),
        extra={"event_type": "period.auto_lock"},
    )
    return results


def update_period(
    period_id: int,
    data: dict,
    *,
    force: bool = False,
    actor: str = "system",
) -> ReportingPeriod:
    """Rename a period. Locked periods need ``force``."""
    period = get_period_or_404(period_id)
    name = str(data.get("name", "") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    if len(name) > 50:
        raise ValidationError("name must be at most 50 characters", details={"name": "too long"})
    if period.is_locked and not force:
        raise LockedStateViolation(
            "ReportingPeriod", period.id, "Cannot modify locked reporting period",
        )

    old_name = period.period_name
    period.admin_override = force
    period.period_name = name
    try:
        db.session.flush()
        write_audit(
            entity_type="reporting_period", entity_id=period.id,
            action="update", actor=actor, period_id=period.id,
            diff={"name": {"old": old_name, "new": name}, "forced": force},
        )
        db.session.commit()
    except LockedStateViolation:
        db.session.rollback()
        raise
    finally:
        period.admin_override = False
    return period


def delete_period(period_id: int, *, force: bool = False, actor: str = "system") -> None:
    """Delete a period and its period-scoped rows. Locked periods need ``force``."""
    period = get_period_or_404(period_id)
    if period.is_locked and not force:
        raise LockedStateViolation(
            "ReportingPeriod", period.id,
            "Cannot delete locked reporting period without force=true",
        )

    name = period.period_name
    period.admin_override = force
    try:
        db.session.delete(period)
        write_audit(
            entity_type="reporting_period", entity_id=period_id,
            action="delete", actor=actor, period_id=period_id,
            diff={"name": name, "forced": force},
        )
        db.session.commit()
    except LockedStateViolation:
        db.session.rollback()
        raise
    logger.info("Reporting period deleted period_id=%s name=%s forced=%s", period_id, name, force)
