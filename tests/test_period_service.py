"""Tests for the reporting period lifecycle service.

Coverage:
  1. calculate_next_period is side-effect free and stable across calls
  2. Rollover leaves exactly one active period and locks the previous one
  3. Copy-forward carries the four fields through JSON; live rows untouched
  4. A failure part-way through the copy rolls back every write
  5. A second rollover to the same bounds loses with ConflictError
  6. Explicit lock (snapshot), rename and delete of locked periods
  7. Pending locks and first-period bootstrap
"""

from __future__ import annotations

from datetime import date

import pytest

from monthly_updates.core.exceptions import (
    ConflictError,
    LockedStateViolation,
    NotFoundError,
    TransactionAborted,
    ValidationError,
)
from monthly_updates.models import db
from monthly_updates.models.audit import AuditLog
from monthly_updates.models.comment import Comment
from monthly_updates.models.next_step import NextStep
from monthly_updates.models.period import ReportingPeriod
from monthly_updates.models.project_data import ProjectData
from monthly_updates.services import period_service
from monthly_updates.services.period_calendar import PeriodBounds
from monthly_updates.services.project_data_service import set_field_value


def _active_periods():
    return ReportingPeriod.query.filter(ReportingPeriod.is_active.is_(True)).all()


def _rows_for(period_id: int) -> dict:
    rows = ProjectData.query.filter_by(period_id=period_id).all()
    return {(r.project_id, r.field_name): r.value for r in rows}


# ── Preview ──────────────────────────────────────────────────────────────


def test_calculate_next_period_is_idempotent(active_period):
    before = ReportingPeriod.query.count()

    previews = [period_service.calculate_next_period() for _ in range(5)]

    assert len(set(previews)) == 1
    assert previews[0] == PeriodBounds(date(2025, 8, 15), date(2025, 9, 15), "September 2025")
    assert ReportingPeriod.query.count() == before
    assert AuditLog.query.count() == 0


def test_calculate_next_period_without_active_period_uses_today():
    bounds = period_service.calculate_next_period(today=date(2025, 8, 14))

    assert bounds == PeriodBounds(date(2025, 7, 15), date(2025, 8, 15), "August 2025")


def test_calculate_next_period_follows_current_period(make_period, monkeypatch):
    current = make_period(date(2025, 9, 15), date(2025, 10, 15))
    monkeypatch.setattr(period_service, "get_current_period", lambda: current)

    bounds = period_service.calculate_next_period()

    assert bounds == PeriodBounds(date(2025, 10, 15), date(2025, 11, 15), "November 2025")


def test_calculate_period_for_date():
    bounds = period_service.calculate_period_for_date(date(2025, 8, 15))

    assert bounds.name == "September 2025"


# ── Rollover ─────────────────────────────────────────────────────────────


def test_rollover_locks_previous_and_activates_new(active_period, make_project):
    make_project("Fraud Signals")
    make_project("Call Summaries")
    old_id = active_period.id

    result = period_service.create_new_period(actor="pmo")

    assert result["lockedPreviousPeriodsCount"] == 1
    assert result["copiedProjectsCount"] == 2
    assert result["copiedDataRecordsCount"] == 8
    assert result["newPeriod"]["name"] == "September 2025"
    assert result["newPeriod"]["startDate"] == "2025-08-15"
    assert result["newPeriod"]["endDate"] == "2025-09-15"

    active = _active_periods()
    assert [p.id for p in active] == [result["newPeriod"]["id"]]
    assert active[0].is_locked is False

    old = db.session.get(ReportingPeriod, old_id)
    assert old.is_active is False
    assert old.is_locked is True
    assert old.locked_at is not None

    actions = {a.action for a in AuditLog.query.all()}
    assert {"period.lock", "period.rollover"} <= actions


def test_rollover_without_any_period_opens_period_for_today(make_project):
    make_project()

    result = period_service.create_new_period(today=date(2025, 8, 20))

    assert result["lockedPreviousPeriodsCount"] == 0
    assert result["newPeriod"]["name"] == "September 2025"
    assert len(_active_periods()) == 1


def test_consecutive_rollovers_chain_periods(active_period):
    first = period_service.create_new_period()
    second = period_service.create_new_period()

    assert first["newPeriod"]["endDate"] == second["newPeriod"]["startDate"]
    assert second["newPeriod"]["name"] == "October 2025"
    assert len(_active_periods()) == 1
    assert ReportingPeriod.query.filter_by(is_locked=True).count() == 2


def test_copy_forward_preserves_values_and_leaves_live_row(active_period, make_project):
    benefits = {
        "fteSavings": {"applicable": "yes", "details": "2.5 FTE in the intake team"},
        "costSavings": {"applicable": "no", "details": ""},
        "customCategory": {"applicable": "yes", "details": "Line one\nLine \"two\""},
    }
    project = make_project(
        "Document Extraction",
        benefits=benefits,
        key_risks="Vendor lock-in; model drift 📉",
        key_updates=None,
        description="",
        budget="TBD",
    )
    live_before = project.to_dict()

    result = period_service.create_new_period()

    rows = _rows_for(result["newPeriod"]["id"])
    assert rows == {
        (project.id, "benefits"): benefits,
        (project.id, "key_risks"): "Vendor lock-in; model drift 📉",
        (project.id, "key_updates"): "",
        (project.id, "description"): "",
    }
    db.session.expire_all()
    assert db.session.get(type(project), project.id).to_dict() == live_before


def test_rollover_failure_mid_copy_rolls_back_everything(active_period, make_project, monkeypatch):
    for i in range(5):
        make_project(f"Project {i}")
    periods_before = ReportingPeriod.query.count()
    data_before = ProjectData.query.count()
    audit_before = AuditLog.query.count()

    original = period_service._copy_forward
    calls = {"n": 0}

    def _fail_on_third(project, period):
        calls["n"] += 1
        if calls["n"] == 3:
            raise RuntimeError("storage went away")
        return original(project, period)

    monkeypatch.setattr(period_service, "_copy_forward", _fail_on_third)

    with pytest.raises(TransactionAborted):
        period_service.create_new_period()

    assert calls["n"] == 3
    assert ReportingPeriod.query.count() == periods_before
    assert ProjectData.query.count() == data_before
    assert AuditLog.query.count() == audit_before

    previous = db.session.get(ReportingPeriod, active_period.id)
    assert previous.is_active is True
    assert previous.is_locked is False
    assert previous.locked_at is None


def test_concurrent_rollover_loser_gets_conflict(active_period, monkeypatch):
    winner = period_service.create_new_period()
    bounds = PeriodBounds(
        date.fromisoformat(winner["newPeriod"]["startDate"]),
        date.fromisoformat(winner["newPeriod"]["endDate"]),
        winner["newPeriod"]["name"],
    )

    # The loser computed the same target before the winner committed.
    monkeypatch.setattr(period_service, "calculate_next_period", lambda today=None: bounds)
    monkeypatch.setattr(period_service, "_find_by_bounds", lambda b: None)

    with pytest.raises(ConflictError):
        period_service.create_new_period()

    same_bounds = ReportingPeriod.query.filter_by(
        period_start=bounds.start, period_end=bounds.end,
    ).all()
    assert len(same_bounds) == 1
    assert same_bounds[0].is_active is True
    assert same_bounds[0].is_locked is False
    assert len(_active_periods()) == 1


def test_rollover_into_existing_period_is_conflict(active_period, make_period):
    make_period(date(2025, 8, 15), date(2025, 9, 15))

    with pytest.raises(ConflictError):
        period_service.create_new_period()

    db.session.expire_all()
    assert db.session.get(ReportingPeriod, active_period.id).is_locked is False


def test_rollover_keeps_locked_at_of_explicitly_locked_period(active_period):
    period_service.lock_period(active_period.id)
    db.session.expire_all()
    locked_at = db.session.get(ReportingPeriod, active_period.id).locked_at

    period_service.create_new_period()

    db.session.expire_all()
    previous = db.session.get(ReportingPeriod, active_period.id)
    assert previous.is_active is False
    assert previous.locked_at == locked_at


# ── Queries ──────────────────────────────────────────────────────────────


def test_get_all_periods_newest_first(make_period):
    make_period(date(2025, 6, 15), date(2025, 7, 15), locked=True)
    make_period(date(2025, 8, 15), date(2025, 9, 15), active=True)
    make_period(date(2025, 7, 15), date(2025, 8, 15), locked=True)

    names = [p.period_name for p in period_service.get_all_periods()]

    assert names == ["September 2025", "August 2025", "July 2025"]
    assert period_service.get_current_period().period_name == "September 2025"


def test_get_period_detail_counts_projects_with_data(active_period, make_project):
    a = make_project("A")
    make_project("B")
    set_field_value(a.id, active_period.id, "key_risks", "none")
    set_field_value(a.id, active_period.id, "budget", "10k")

    detail = period_service.get_period_detail(active_period.id, today=date(2025, 8, 1))

    assert detail["projectCount"] == 1
    assert detail["isCurrentPeriod"] is True
    assert detail["shouldBeLocked"] is False
    assert "dataSnapshot" not in detail


def test_get_period_detail_unknown_id():
    with pytest.raises(NotFoundError):
        period_service.get_period_detail(999)


def test_find_pending_locks(make_period):
    make_period(date(2025, 6, 15), date(2025, 7, 15))
    make_period(date(2025, 5, 15), date(2025, 6, 15), locked=True)
    make_period(date(2025, 7, 15), date(2025, 8, 15), active=True)

    pending = period_service.find_pending_locks(today=date(2025, 8, 1))

    assert [p.period_name for p in pending] == ["July 2025"]


def test_auto_lock_pending_locks_every_ended_period(make_period):
    make_period(date(2025, 5, 15), date(2025, 6, 15))
    make_period(date(2025, 6, 15), date(2025, 7, 15))
    make_period(date(2025, 4, 15), date(2025, 5, 15), locked=True)
    make_period(date(2025, 7, 15), date(2025, 8, 15), active=True)

    results = period_service.auto_lock_pending(today=date(2025, 8, 1))

    assert [r["periodName"] for r in results["successful"]] == ["June 2025", "July 2025"]
    assert results["failed"] == []
    assert period_service.find_pending_locks(today=date(2025, 8, 1)) == []
    locked = ReportingPeriod.query.filter_by(period_name="June 2025").one()
    assert locked.data_snapshot["lockedBy"] == "auto-lock-system"


def test_auto_lock_pending_reports_failures_and_continues(make_period, monkeypatch):
    first = make_period(date(2025, 5, 15), date(2025, 6, 15))
    second = make_period(date(2025, 6, 15), date(2025, 7, 15))
    real_lock = period_service.lock_period

    def _lock(period_id, **kwargs):
        if period_id == first.id:
            raise LockedStateViolation("ReportingPeriod", period_id, "Reporting period is already locked")
        return real_lock(period_id, **kwargs)

    monkeypatch.setattr(period_service, "lock_period", _lock)

    results = period_service.auto_lock_pending(today=date(2025, 8, 1))

    assert results["failed"] == [{
        "periodId": first.id,
        "periodName": "June 2025",
        "error": "Reporting period is already locked",
    }]
    assert [r["periodId"] for r in results["successful"]] == [second.id]
    assert db.session.get(ReportingPeriod, first.id).is_locked is False


# ── Explicit lock / rename / delete ──────────────────────────────────────


def test_lock_period_stores_snapshot(active_period, make_project):
    project = make_project("Snapshot Me", key_updates="Pilot live")
    set_field_value(project.id, active_period.id, "key_updates", "Pilot extended")
    db.session.add(NextStep(
        project_id=project.id, period_id=active_period.id,
        description="Train ops team", owner="Dana",
    ))
    db.session.add(Comment(
        project_id=project.id, period_id=active_period.id,
        field_reference="keyUpdates", author_name="Lee", content="Dates?",
    ))
    db.session.commit()

    period = period_service.lock_period(active_period.id, actor="pmo")

    assert period.is_locked is True
    assert period.is_active is True
    snapshot = period.data_snapshot
    assert snapshot["projects"][0]["keyUpdates"] == "Pilot extended"
    assert snapshot["nextSteps"][0]["description"] == "Train ops team"
    assert snapshot["comments"][0]["content"] == "Dates?"
    assert snapshot["lockedBy"] == "pmo"

    detail = period_service.get_period_detail(active_period.id, include_snapshot=True)
    assert detail["dataSnapshot"]["projects"][0]["name"] == "Snapshot Me"


def test_lock_period_respects_component_flags(active_period):
    period = period_service.lock_period(
        active_period.id, include_next_steps=False, include_comments=False,
    )

    assert "projects" in period.data_snapshot
    assert "nextSteps" not in period.data_snapshot
    assert "comments" not in period.data_snapshot


def test_lock_period_twice_is_rejected(active_period):
    period_service.lock_period(active_period.id)

    with pytest.raises(LockedStateViolation):
        period_service.lock_period(active_period.id)


def test_update_period_renames_open_period(active_period):
    period = period_service.update_period(active_period.id, {"name": "  Aug '25  "})

    assert period.period_name == "Aug '25"


def test_update_period_requires_name(active_period):
    with pytest.raises(ValidationError):
        period_service.update_period(active_period.id, {"name": "   "})


def test_update_locked_period_needs_force(make_period):
    period = make_period(date(2025, 6, 15), date(2025, 7, 15), locked=True)

    with pytest.raises(LockedStateViolation):
        period_service.update_period(period.id, {"name": "Renamed"})

    renamed = period_service.update_period(period.id, {"name": "Renamed"}, force=True)
    assert renamed.period_name == "Renamed"
    assert renamed.admin_override is False


def test_locked_period_core_fields_guarded_at_flush(make_period):
    period = make_period(date(2025, 6, 15), date(2025, 7, 15), locked=True)

    period.period_name = "Sneaky"
    with pytest.raises(LockedStateViolation):
        db.session.flush()
    db.session.rollback()

    period.is_locked = False
    with pytest.raises(LockedStateViolation):
        db.session.flush()
    db.session.rollback()


def test_delete_locked_period_needs_force(make_period, make_project):
    period = make_period(date(2025, 6, 15), date(2025, 7, 15))
    project = make_project()
    db.session.add(NextStep(
        project_id=project.id, period_id=period.id, description="x", owner="y",
    ))
    db.session.add(ProjectData(
        project_id=project.id, period_id=period.id, field_name="budget", field_value='"5k"',
    ))
    db.session.commit()
    period_service.lock_period(period.id)

    with pytest.raises(LockedStateViolation):
        period_service.delete_period(period.id)

    period_service.delete_period(period.id, force=True)

    assert db.session.get(ReportingPeriod, period.id) is None
    assert ProjectData.query.filter_by(period_id=period.id).count() == 0
    assert NextStep.query.filter_by(period_id=period.id).count() == 0


def test_delete_open_period(make_period):
    period = make_period(date(2025, 9, 15), date(2025, 10, 15))

    period_service.delete_period(period.id)

    assert ReportingPeriod.query.count() == 0


# ── Bootstrap ────────────────────────────────────────────────────────────


def test_initialize_first_period_is_idempotent(make_project):
    project = make_project(key_risks="Data access")

    first = period_service.initialize_first_period(today=date(2025, 8, 14))
    second = period_service.initialize_first_period(today=date(2025, 8, 14))

    assert first.id == second.id
    assert first.period_name == "August 2025"
    assert first.is_active is True
    assert ReportingPeriod.query.count() == 1
    assert _rows_for(first.id)[(project.id, "key_risks")] == "Data access"
    assert ProjectData.query.count() == 4
