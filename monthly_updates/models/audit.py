"""
Monthly Updates
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for create/update/lock events.
"""

import json
from datetime import UTC, datetime

from monthly_updates.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {
    "reporting_period", "project", "project_data",
    "next_step", "comment",
}

AUDIT_ACTIONS = {
    "create",
    "update",
    "delete",
    "period.lock",
    "period.rollover",
}


class AuditLog(db.Model):
    """
    Immutable audit trail.

    One row per action.  ``diff_json`` carries the changed fields (or the
    rollover summary).  ``project_id``/``period_id`` are plain integers,
    not foreign keys, so history outlives the rows it describes.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_project", "project_id"),
        db.Index("idx_audit_period", "period_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, nullable=True)
    period_id = db.Column(db.Integer, nullable=True)

    # Polymorphic entity reference
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="reporting_period | project | project_data | next_step | comment",
    )
    entity_id = db.Column(db.String(36), nullable=False)

    # What happened
    action = db.Column(
        db.String(60), nullable=False,
        comment="create | update | delete | period.lock | period.rollover",
    )
    actor = db.Column(db.String(150), nullable=False, default="system")
    request_id = db.Column(db.String(64), nullable=True)

    # Change payload
    diff_json = db.Column(db.Text, default="{}")

    # Timestamp (immutable)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "periodId": self.period_id,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "requestId": self.request_id,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor: str = "system",
    project_id: int | None = None,
    period_id: int | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control: a rolled-back operation leaves no audit row.

    Returns the (flushed) AuditLog instance.
    """
    from flask import g, has_request_context

    request_id = getattr(g, "request_id", None) if has_request_context() else None

    log = AuditLog(
        project_id=project_id,
        period_id=period_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor or "system",
        request_id=request_id,
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
