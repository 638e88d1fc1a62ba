"""
CaseVault
Flask Application Factory.

Usage:
    from casevault import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from casevault.config import config
from casevault.core.exceptions import (
    ConcurrentModificationError,
    InvalidOrderError,
    InvalidVersionFormatError,
    NotFoundError,
    ValidationError,
)
from casevault.middleware.logging_config import configure_logging
from casevault.middleware.rate_limiter import init_rate_limits
from casevault.middleware.timing import init_request_timing
from casevault.models import db
from casevault.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
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
    default_limits=[],                     # no global limit - apply per-blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def _ensure_sqlite_dir(uri):
    """Create the parent directory of a file-backed SQLite database."""
    if not uri or not uri.startswith("sqlite:///") or ":memory:" in uri:
        return
    folder = os.path.dirname(uri[len("sqlite:///"):])
    if folder:
        os.makedirs(folder, exist_ok=True)


def _register_error_handlers(app):
    @app.errorhandler(NotFoundError)
    def _not_found_error(e):
        return api_error(E.NOT_FOUND, str(e))

    @app.errorhandler(InvalidOrderError)
    def _invalid_order(e):
        return api_error(E.INVALID_ORDER, str(e), details=e.details)

    @app.errorhandler(ValidationError)
    def _validation_error(e):
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)

    @app.errorhandler(ConcurrentModificationError)
    def _concurrent_modification(e):
        return api_error(E.CONFLICT_CONCURRENT, str(e))

    @app.errorhandler(InvalidVersionFormatError)
    def _invalid_version(e):
        logger.error("Stored version is malformed: %s", e)
        return api_error(E.INVALID_VERSION, str(e))

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": E.NOT_FOUND, "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": E.INTERNAL}, 500


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
    app.config.from_object(config[config_name])
    validate = getattr(config[config_name], "validate", None)
    if validate is not None:
        validate(app.config)

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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from casevault.models import project as _project_models        # noqa: F401
    from casevault.models import testing as _testing_models        # noqa: F401
    from casevault.models import versioning as _versioning_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        _ensure_sqlite_dir(app.config["SQLALCHEMY_DATABASE_URI"])
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from casevault.blueprints.composite_bp import composite_bp
    from casevault.blueprints.health_bp import health_bp
    from casevault.blueprints.project_bp import project_bp

    app.register_blueprint(project_bp)
    app.register_blueprint(composite_bp)
    app.register_blueprint(health_bp)

    # ── Health check (simple - detailed version at /health/live) ────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "CaseVault"}

    _register_error_handlers(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
