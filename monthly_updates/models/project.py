"""Project domain model: the "live" (period-independent) project row."""

import copy
import enum
from datetime import datetime, timezone

from monthly_updates.models import db
from monthly_updates.utils.helpers import iso


class ProjectStage(enum.Enum):
    PROTOTYPE = "prototype"
    POC = "poc"
    PILOT = "pilot"


class AiStage(enum.Enum):
    PLANNING_DESIGN = "planning-design"
    DATA_COLLECTION = "data-collection"
    MODEL_BUILDING = "model-building"
    TESTING_VALIDATION = "testing-validation"
    DEPLOYMENT = "deployment"
    MONITORING = "monitoring"


BENEFIT_APPLICABLE_VALUES = ("", "yes", "no")

STANDARD_BENEFIT_CATEGORIES = (
    "fteSavings",
    "costSavings",
    "programIntegrity",
    "clientService",
    "other",
)


def default_benefits() -> dict:
    """Fresh benefits map with every standard category unset."""
    return {key: {"applicable": "", "details": ""} for key in STANDARD_BENEFIT_CATEGORIES}


class Project(db.Model):
    """An AI/automation project tracked across reporting periods."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    business_lead = db.Column(db.String(255), nullable=True)
    initiator = db.Column(db.String(255), nullable=True)
    dev_team_lead = db.Column(db.String(255), nullable=True)
    project_start_date = db.Column(db.Date, nullable=True)
    current_project_stage = db.Column(
        db.Enum(ProjectStage, name="project_stage",
                values_callable=lambda e: [m.value for m in e]),
        nullable=True,
        index=True,
    )
    current_ai_stage = db.Column(
        db.Enum(AiStage, name="ai_stage",
                values_callable=lambda e: [m.value for m in e]),
        nullable=True,
        index=True,
    )
    target_next_stage_date = db.Column(db.Date, nullable=True)
    target_completion_date = db.Column(db.Date, nullable=True)
    budget = db.Column(db.String(255), nullable=True, comment="Free text, e.g. TBD")
    benefits = db.Column(db.JSON, nullable=False, default=default_benefits)
    key_risks = db.Column(db.Text, nullable=True)
    key_updates = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    project_data = db.relationship(
        "ProjectData", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    next_steps = db.relationship(
        "NextStep", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    comments = db.relationship(
        "Comment", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        db.Index("ix_projects_name", "name"),
    )

    def to_dict(self) -> dict:
        """Serialize live project fields (camelCase wire format)."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "businessLead": self.business_lead,
            "initiator": self.initiator,
            "devTeamLead": self.dev_team_lead,
            "projectStartDate": iso(self.project_start_date),
            "currentProjectStage": (
                self.current_project_stage.value if self.current_project_stage else None
            ),
            "currentAiStage": self.current_ai_stage.value if self.current_ai_stage else None,
            "targetNextStageDate": iso(self.target_next_stage_date),
            "targetCompletionDate": iso(self.target_completion_date),
            "budget": self.budget,
            "benefits": copy.deepcopy(self.benefits) if self.benefits is not None else default_benefits(),
            "keyRisks": self.key_risks,
            "keyUpdates": self.key_updates,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name}>"
