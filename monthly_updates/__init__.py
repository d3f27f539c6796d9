"""
Monthly Updates
Flask Application Factory.

Usage:
    from monthly_updates import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os
from datetime import date

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from monthly_updates.config import config
from monthly_updates.middleware.logging_config import configure_logging
from monthly_updates.middleware.rate_limiter import init_rate_limits
from monthly_updates.middleware.security_headers import init_security_headers
from monthly_updates.middleware.timing import init_request_timing
from monthly_updates.models import db

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
# ON DELETE CASCADE from projects/periods to their child rows relies on it.
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit — apply per-blueprint
    storage_uri=os.getenv("REDIS_URL") or "memory://",  # Redis in production, memory for dev
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    # ProductionConfig validates its environment on instantiation
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Security headers and request timing ──────────────────────────────
    init_security_headers(app)
    init_request_timing(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            return {"error": "Request body too large", "code": "HTTP_413"}, 413
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.content_length and "json" not in ct:
                return {"error": "Content-Type must be application/json", "code": "HTTP_415"}, 415
        return None

    # ── Import all models so Alembic and create_all can see them ─────────
    from monthly_updates.models import audit as _audit_models             # noqa: F401
    from monthly_updates.models import comment as _comment_models         # noqa: F401
    from monthly_updates.models import next_step as _next_step_models     # noqa: F401
    from monthly_updates.models import period as _period_models           # noqa: F401
    from monthly_updates.models import project as _project_models         # noqa: F401
    from monthly_updates.models import project_data as _project_data_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if db_uri.startswith("sqlite:///") and ":memory:" not in db_uri:
        os.makedirs(os.path.dirname(db_uri[len("sqlite:///"):]), exist_ok=True)
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from monthly_updates.blueprints.comment_bp import comment_bp
    from monthly_updates.blueprints.health_bp import health_bp
    from monthly_updates.blueprints.next_step_bp import next_step_bp
    from monthly_updates.blueprints.period_bp import period_bp
    from monthly_updates.blueprints.project_bp import project_bp

    app.register_blueprint(period_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(next_step_bp)
    app.register_blueprint(comment_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("init-period")
    @click.option("--date", "on", default=None, help="Reference date (YYYY-MM-DD), default today.")
    def init_period_cmd(on):
        """Create the first reporting period if none exists yet."""
        from monthly_updates.services.period_service import initialize_first_period
        today = date.fromisoformat(on) if on else None
        period = initialize_first_period(today=today, actor="cli")
        click.echo(f"Current reporting period: {period.period_name} "
                   f"({period.period_start.isoformat()} → {period.period_end.isoformat()})")

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed", "code": "HTTP_405"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "code": "HTTP_429", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        original = getattr(e, "original_exception", None) or e
        logger.error("500 error: %s", original, exc_info=not isinstance(original, HTTPException))
        body = {"error": "Internal server error", "code": "ERR_INTERNAL"}
        if app.debug:
            body["detail"] = str(original)
        return body, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
