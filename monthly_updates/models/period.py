"""
Monthly Updates
Reporting period domain model.

Models:
    - ReportingPeriod: one 15th-to-15th reporting window.

Locking rules are enforced at flush time (mapper events below), so a write
that bypasses the service layer is rejected the same way as one that goes
through it. Period-scoped tables also carry storage triggers that catch Core
and raw SQL writes.
"""

from datetime import date, datetime, timezone

from sqlalchemy import DDL, event, inspect, select
from sqlalchemy.engine import Engine

from monthly_updates.core.exceptions import LockedStateViolation
from monthly_updates.models import db
from monthly_updates.utils.helpers import iso

# Columns that are frozen once a period is locked.
LOCKED_CORE_FIELDS = ("period_start", "period_end", "period_name")


class ReportingPeriod(db.Model):
    """A half-open ``[period_start, period_end)`` reporting window."""

    __tablename__ = "reporting_periods"

    id = db.Column(db.Integer, primary_key=True)
    period_start = db.Column(db.Date, nullable=False, comment="15th of the start month")
    period_end = db.Column(db.Date, nullable=False, comment="15th of the following month (exclusive)")
    period_name = db.Column(db.String(50), nullable=False, comment='e.g. "August 2025"')
    is_active = db.Column(
        db.Boolean, nullable=False, default=False,
        comment="Current period; at most one row may be active",
    )
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    data_snapshot = db.Column(
        db.JSON, nullable=True,
        comment="Point-in-time copy written by an explicit lock",
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

    project_data = db.relationship(
        "ProjectData", backref="period", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    next_steps = db.relationship(
        "NextStep", backref="period", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    comments = db.relationship(
        "Comment", backref="period", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        db.UniqueConstraint("period_start", "period_end", name="uq_reporting_periods_bounds"),
        db.CheckConstraint("period_start < period_end", name="ck_reporting_periods_start_before_end"),
        db.Index("ix_reporting_periods_is_locked", "is_locked"),
        db.Index(
            "uq_reporting_periods_single_active",
            "is_active",
            unique=True,
            postgresql_where=db.text("is_active IS TRUE"),
            sqlite_where=db.text("is_active = 1"),
        ),
    )

    # Set on an instance to let an administrative path edit or delete a
    # locked period. Not a column.
    admin_override = False

    # ── Calendar helpers ─────────────────────────────────────────────────

    def contains(self, on: date | None = None) -> bool:
        """True when ``on`` (default today) falls inside ``[start, end)``."""
        on = on or date.today()
        return self.period_start <= on < self.period_end

    def should_be_locked(self, today: date | None = None) -> bool:
        """True once the end date has passed and the period is still open."""
        today = today or date.today()
        return today >= self.period_end and not self.is_locked

    # ── State transitions ────────────────────────────────────────────────

    def lock(self, snapshot: dict | None = None) -> "ReportingPeriod":
        """Lock this period, optionally storing a data snapshot.

        Raises:
            LockedStateViolation: the period is already locked.
        """
        if self.is_locked:
            raise LockedStateViolation(
                "ReportingPeriod", self.id, "Reporting period is already locked",
            )
        self.is_locked = True
        self.locked_at = datetime.now(timezone.utc)
        self.data_snapshot = snapshot
        return self

    def to_dict(self, include_snapshot: bool = False) -> dict:
        """Serialize for API responses (camelCase wire format)."""
        data = {
            "id": self.id,
            "name": self.period_name,
            "startDate": iso(self.period_start),
            "endDate": iso(self.period_end),
            "isActive": bool(self.is_active),
            "isLocked": bool(self.is_locked),
            "lockedAt": iso(self.locked_at),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }
        if include_snapshot and self.is_locked and self.data_snapshot is not None:
            data["dataSnapshot"] = self.data_snapshot
        return data

    def __repr__(self) -> str:
        return f"<ReportingPeriod {self.id}: {self.period_name}>"


# ── Flush-time guards ────────────────────────────────────────────────────


def _was_locked(target: ReportingPeriod) -> bool:
    hist = inspect(target).attrs.is_locked.history
    if hist.deleted:
        return bool(hist.deleted[0])
    return bool(target.is_locked)


@event.listens_for(ReportingPeriod, "before_update")
def _guard_locked_period_update(mapper, connection, target):
    if target.admin_override or not _was_locked(target):
        return
    state = inspect(target)
    changed = [f for f in LOCKED_CORE_FIELDS if state.attrs[f].history.has_changes()]
    if changed or not target.is_locked:
        raise LockedStateViolation(
            "ReportingPeriod", target.id, "Cannot modify locked reporting period",
        )


@event.listens_for(ReportingPeriod, "before_delete")
def _guard_locked_period_delete(mapper, connection, target):
    if target.is_locked and not target.admin_override:
        raise LockedStateViolation(
            "ReportingPeriod", target.id, "Cannot delete locked reporting period",
        )


# Raised by the storage triggers; translated back to LockedStateViolation.
LOCKED_PERIOD_DB_ERROR = "reporting_period_locked"


def locked_period_trigger_ddl(table: str, dialect: str) -> list[str]:
    """Trigger statements rejecting INSERT/UPDATE of ``table`` rows in a locked period.

    Covers Core ``insert()``/``update()`` and raw SQL, which never reach the
    mapper events. On UPDATE both the old and the new period are checked.
    """
    if dialect == "sqlite":
        locked = "(SELECT is_locked FROM reporting_periods WHERE id = {row}.period_id) = 1"
        return [
            f"CREATE TRIGGER IF NOT EXISTS trg_{table}_locked_insert "
            f"BEFORE INSERT ON {table} "
            f"WHEN {locked.format(row='NEW')} "
            f"BEGIN SELECT RAISE(ABORT, '{LOCKED_PERIOD_DB_ERROR}'); END",
            f"CREATE TRIGGER IF NOT EXISTS trg_{table}_locked_update "
            f"BEFORE UPDATE ON {table} "
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
            f"CREATE TRIGGER trg_{table}_locked_period "
            f"BEFORE INSERT OR UPDATE ON {table} "
            "FOR EACH ROW EXECUTE FUNCTION reject_locked_period_write()",
        ]
    return []


@event.listens_for(Engine, "handle_error")
def _translate_locked_period_error(context):
    if LOCKED_PERIOD_DB_ERROR in str(context.original_exception):
        raise LockedStateViolation(
            "ReportingPeriod", None, "Cannot write to a locked reporting period",
        ) from context.original_exception


def guard_period_scoped_writes(model) -> None:
    """Reject INSERT/UPDATE of ``model`` rows whose period is locked.

    ``model`` must have a ``period_id`` column. ORM flushes are checked by
    mapper events; the table also gets storage triggers on create. Moving
    a row out of a locked period counts as a write to it. Deletes are not
    guarded: cascades from a project or a forced period delete must pass.
    """

    table = model.__table__

    def _check(mapper, connection, target):
        period_ids = {target.period_id}
        history = inspect(target).attrs.period_id.history
        if history.deleted:
            period_ids.update(history.deleted)
        elif history.added and target.id is not None:
            # Old value was expired before the change; read what is stored.
            period_ids.add(connection.execute(
                select(table.c.period_id).where(table.c.id == target.id)
            ).scalar())
        locked_id = connection.execute(
            select(ReportingPeriod.id).where(
                ReportingPeriod.id.in_([p for p in period_ids if p is not None]),
                ReportingPeriod.is_locked.is_(True),
            )
        ).scalars().first()
        if locked_id is not None:
            raise LockedStateViolation(
                "ReportingPeriod",
                locked_id,
                f"Cannot write {mapper.class_.__name__} to a locked reporting period",
            )

    event.listen(model, "before_insert", _check)
    event.listen(model, "before_update", _check)

    for dialect in ("sqlite", "postgresql"):
        for statement in locked_period_trigger_ddl(table.name, dialect):
            event.listen(table, "after_create", DDL(statement).execute_if(dialect=dialect))
