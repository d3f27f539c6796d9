"""
Shared pytest fixtures for the Monthly Updates test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_project / make_period: factories that commit, so API calls
      made through the client see the rows
    - active_period: the August 2025 period, active and unlocked
"""

from datetime import date, datetime, timezone

import pytest

from monthly_updates import create_app
from monthly_updates.models import db as _db
from monthly_updates.models.period import ReportingPeriod
from monthly_updates.models.project import Project, default_benefits
from monthly_updates.services.period_calendar import period_name


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_project():
    """Create and commit a Project; keyword arguments override defaults."""

    def _make(name: str = "Claims Triage Assistant", **fields) -> Project:
        fields.setdefault("benefits", default_benefits())
        project = Project(name=name, **fields)
        _db.session.add(project)
        _db.session.commit()
        return project

    return _make


@pytest.fixture()
def make_period():
    """Create and commit a ReportingPeriod from its bounds."""

    def _make(start: date, end: date, *, active: bool = False, locked: bool = False) -> ReportingPeriod:
        period = ReportingPeriod(
            period_start=start,
            period_end=end,
            period_name=period_name(end),
            is_active=active,
            is_locked=locked,
            locked_at=datetime.now(timezone.utc) if locked else None,
        )
        _db.session.add(period)
        _db.session.commit()
        return period

    return _make


@pytest.fixture()
def active_period(make_period) -> ReportingPeriod:
    """[2025-07-15, 2025-08-15) "August 2025", active and open."""
    return make_period(date(2025, 7, 15), date(2025, 8, 15), active=True)
