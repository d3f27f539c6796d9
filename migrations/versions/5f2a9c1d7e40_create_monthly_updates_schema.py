"""create_monthly_updates_schema

Create reporting periods, projects, period-scoped project data, next
steps, comments and the audit log.

Revision ID: 5f2a9c1d7e40
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5f2a9c1d7e40"
down_revision = None
branch_labels = None
depends_on = None

PROJECT_STAGES = ("prototype", "poc", "pilot")
PERIOD_SCOPED_TABLES = ("project_data", "next_steps", "comments")
LOCKED_PERIOD_DB_ERROR = "reporting_period_locked"

AI_STAGES = (
    "planning-design", "data-collection", "model-building",
    "testing-validation", "deployment", "monitoring",
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "reporting_periods" not in existing_tables:
        op.create_table(
            "reporting_periods",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("period_start", sa.Date(), nullable=False),
            sa.Column("period_end", sa.Date(), nullable=False),
            sa.Column("period_name", sa.String(length=50), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("data_snapshot", sa.JSON(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("period_start", "period_end", name="uq_reporting_periods_bounds"),
            sa.CheckConstraint("period_start < period_end", name="ck_reporting_periods_start_before_end"),
        )
        op.create_index("ix_reporting_periods_is_locked", "reporting_periods", ["is_locked"])
        op.create_index(
            "uq_reporting_periods_single_active",
            "reporting_periods",
            ["is_active"],
            unique=True,
            postgresql_where=sa.text("is_active IS TRUE"),
            sqlite_where=sa.text("is_active = 1"),
        )

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("business_lead", sa.String(length=255), nullable=True),
            sa.Column("initiator", sa.String(length=255), nullable=True),
            sa.Column("dev_team_lead", sa.String(length=255), nullable=True),
            sa.Column("project_start_date", sa.Date(), nullable=True),
            sa.Column("current_project_stage", sa.Enum(*PROJECT_STAGES, name="project_stage"), nullable=True),
            sa.Column("current_ai_stage", sa.Enum(*AI_STAGES, name="ai_stage"), nullable=True),
            sa.Column("target_next_stage_date", sa.Date(), nullable=True),
            sa.Column("target_completion_date", sa.Date(), nullable=True),
            sa.Column("budget", sa.String(length=255), nullable=True),
            sa.Column("benefits", sa.JSON(), nullable=False),
            sa.Column("key_risks", sa.Text(), nullable=True),
            sa.Column("key_updates", sa.Text(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_name", "projects", ["name"])
        op.create_index("ix_projects_current_project_stage", "projects", ["current_project_stage"])
        op.create_index("ix_projects_current_ai_stage", "projects", ["current_ai_stage"])
        op.create_index("ix_projects_created_at", "projects", ["created_at"])

    if "project_data" not in existing_tables:
        op.create_table(
            "project_data",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("period_id", sa.Integer(), nullable=False),
            sa.Column("field_name", sa.String(length=100), nullable=False),
            sa.Column("field_value", sa.Text(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["period_id"], ["reporting_periods.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "project_id", "period_id", "field_name",
                name="uq_project_data_project_period_field",
            ),
        )
        op.create_index("ix_project_data_period_project", "project_data", ["period_id", "project_id"])

    if "next_steps" not in existing_tables:
        op.create_table(
            "next_steps",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("period_id", sa.Integer(), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("owner", sa.String(length=255), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="not-started"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["period_id"], ["reporting_periods.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_next_steps_project_period", "next_steps", ["project_id", "period_id"])
        op.create_index("ix_next_steps_due_date", "next_steps", ["due_date"])

    if "comments" not in existing_tables:
        op.create_table(
            "comments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("period_id", sa.Integer(), nullable=False),
            sa.Column("field_reference", sa.String(length=100), nullable=False),
            sa.Column("parent_comment_id", sa.Integer(), nullable=True),
            sa.Column("author_name", sa.String(length=255), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("resolved_by", sa.String(length=255), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["period_id"], ["reporting_periods.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["parent_comment_id"], ["comments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_comments_project_period_field", "comments",
            ["project_id", "period_id", "field_reference"],
        )
        op.create_index("ix_comments_parent_comment_id", "comments", ["parent_comment_id"])

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("period_id", sa.Integer(), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("diff_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_project", "audit_logs", ["project_id"])
        op.create_index("idx_audit_period", "audit_logs", ["period_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])

    # Storage-level lock guard: no INSERT/UPDATE of period-scoped rows in a
    # locked period, whatever path the write takes.
    for table in PERIOD_SCOPED_TABLES:
        for statement in _locked_period_trigger_sql(table, bind.dialect.name):
            op.execute(statement)


def _locked_period_trigger_sql(table, dialect):
    if dialect == "sqlite":
        locked = "(SELECT is_locked FROM reporting_periods WHERE id = {row}.period_id) = 1"
        return [
            f"CREATE TRIGGER IF NOT EXISTS trg_{table}_locked_insert BEFORE INSERT ON {table} "
            f"WHEN {locked.format(row='NEW')} "
            f"BEGIN SELECT RAISE(ABORT, '{LOCKED_PERIOD_DB_ERROR}'); END",
            f"CREATE TRIGGER IF NOT EXISTS trg_{table}_locked_update BEFORE UPDATE ON {table} "
            f"WHEN {locked.format(row='NEW')} OR {locked.format(row='OLD')} "
            f"BEGIN SELECT RAISE(ABORT, '{LOCKED_PERIOD_DB_ERROR}'); END",
        ]
    if dialect == "postgresql":
        return [
            "CREATE OR REPLACE FUNCTION reject_locked_period_write() RETURNS trigger AS $$\n"
            "BEGIN\n"
            "    IF EXISTS (SELECT 1 FROM reporting_periods WHERE id = NEW.period_id AND is_locked) THEN\n"
            f"        RAISE EXCEPTION '{LOCKED_PERIOD_DB_ERROR}';\n"
            "    END IF;\n"
            "    IF TG_OP = 'UPDATE' AND EXISTS (\n"
            "        SELECT 1 FROM reporting_periods WHERE id = OLD.period_id AND is_locked\n"
            "    ) THEN\n"
            f"        RAISE EXCEPTION '{LOCKED_PERIOD_DB_ERROR}';\n"
            "    END IF;\n"
            "    RETURN NEW;\n"
            "END;\n"
            "$$ LANGUAGE plpgsql",
            f"DROP TRIGGER IF EXISTS trg_{table}_locked_period ON {table}",
            f"CREATE TRIGGER trg_{table}_locked_period BEFORE INSERT OR UPDATE ON {table} "
            "FOR EACH ROW EXECUTE FUNCTION reject_locked_period_write()",
        ]
    return []


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in ("audit_logs", "comments", "next_steps", "project_data", "projects", "reporting_periods"):
        if table in existing_tables:
            op.drop_table(table)

    if bind.dialect.name == "postgresql":
        sa.Enum(name="ai_stage").drop(bind, checkfirst=True)
        sa.Enum(name="project_stage").drop(bind, checkfirst=True)
        op.execute("DROP FUNCTION IF EXISTS reject_locked_period_write()")
