"""Next steps recorded against a project for one reporting period."""

from datetime import datetime, timezone

from monthly_updates.models import db
from monthly_updates.models.period import guard_period_scoped_writes
from monthly_updates.utils.helpers import iso

NEXT_STEP_STATUSES = ("not-started", "in-progress", "ongoing", "blocked", "completed")


class NextStep(db.Model):
    __tablename__ = "next_steps"

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
    description = db.Column(db.Text, nullable=False)
    owner = db.Column(db.String(255), nullable=False)
    due_date = db.Column(db.Date, nullable=True, index=True)
    status = db.Column(
        db.String(20), nullable=False, default="not-started",
        comment="not-started | in-progress | ongoing | blocked | completed",
    )

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
        db.Index("ix_next_steps_project_period", "project_id", "period_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "periodId": self.period_id,
            "description": self.description,
            "owner": self.owner,
            "dueDate": iso(self.due_date),
            "status": self.status,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<NextStep {self.id}: {self.status}>"


guard_period_scoped_writes(NextStep)
