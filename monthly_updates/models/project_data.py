"""
Period-scoped project field values.

One row per (project, period, field). Values are JSON-encoded text so any
field on the allow-list can be snapshotted without a schema change.
"""

import json
from datetime import datetime, timezone

from monthly_updates.models import db
from monthly_updates.models.period import guard_period_scoped_writes
from monthly_updates.utils.helpers import iso

# field_name → (Project attribute, wire key)
PERIOD_SCOPED_FIELDS = {
    "benefits": ("benefits", "benefits"),
    "key_risks": ("key_risks", "keyRisks"),
    "key_updates": ("key_updates", "keyUpdates"),
    "description": ("description", "description"),
    "business_lead": ("business_lead", "businessLead"),
    "initiator": ("initiator", "initiator"),
    "dev_team_lead": ("dev_team_lead", "devTeamLead"),
    "current_project_stage": ("current_project_stage", "currentProjectStage"),
    "current_ai_stage": ("current_ai_stage", "currentAiStage"),
    "target_next_stage_date": ("target_next_stage_date", "targetNextStageDate"),
    "target_completion_date": ("target_completion_date", "targetCompletionDate"),
    "budget": ("budget", "budget"),
}

# Copied into a new period on rollover. Everything else stays live-only.
COPY_FORWARD_FIELDS = ("benefits", "key_risks", "key_updates", "description")


def encode_field_value(value) -> str:
    return json.dumps(value, ensure_ascii=False)


def decode_field_value(raw):
    """Decode a stored value; legacy raw text that is not JSON comes back as-is."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


class ProjectData(db.Model):
    """A single field value of a project, as of one reporting period."""

    __tablename__ = "project_data"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    period_id = db.Column(
        db.Integer,
        db.ForeignKey("reporting_periods.id", ondelete="CASCADE"),
        nullable=False,
    )
    field_name = db.Column(db.String(100), nullable=False)
    field_value = db.Column(db.Text, nullable=True, comment="JSON-encoded value")

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint(
            "project_id", "period_id", "field_name",
            name="uq_project_data_project_period_field",
        ),
        db.Index("ix_project_data_period_project", "period_id", "project_id"),
    )

    @property
    def value(self):
        return decode_field_value(self.field_value)

    @value.setter
    def value(self, new_value):
        self.field_value = encode_field_value(new_value)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "periodId": self.period_id,
            "fieldName": self.field_name,
            "fieldValue": self.value,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<ProjectData {self.project_id}/{self.period_id}: {self.field_name}>"


guard_period_scoped_writes(ProjectData)
