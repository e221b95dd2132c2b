"""
Lot workflow service
Flask Application Factory.

Usage:
    from lotflow import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine, event as _sa_event

from lotflow.config import config
from lotflow.middleware.jwt_auth import init_jwt_middleware
from lotflow.middleware.logging_config import configure_logging
from lotflow.middleware.rate_limiter import init_rate_limits
from lotflow.middleware.security_headers import init_security_headers
from lotflow.middleware.timing import init_request_timing
from lotflow.models import db
from lotflow.services import code_renderer, identity
from lotflow.utils.errors import E, api_error

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
    # ProductionConfig checks its required env vars in __init__
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Collaborators (explicit config, no module globals) ───────────────
    app.extensions[identity.EXTENSION_KEY] = identity.IdentityResolver.from_config(app.config)
    app.extensions[code_renderer.EXTENSION_KEY] = code_renderer.QrCodeRenderer.from_config(app.config)

    # ── Middleware ───────────────────────────────────────────────────────
    init_security_headers(app)
    init_request_timing(app)
    init_jwt_middleware(app)
    # Registered after identity resolution: limits key on g.identity.
    limiter.init_app(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            return api_error(E.VALIDATION_INVALID, "Request body too large", status=413)
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                return api_error(E.VALIDATION_INVALID, "Content-Type must be application/json", status=415)
        return None

    # ── Import all models so Alembic can detect them ─────────────────────
    from lotflow.models import audit as _audit_models             # noqa: F401
    from lotflow.models import lot as _lot_models                 # noqa: F401
    from lotflow.models import replacement as _replacement_models  # noqa: F401
    from lotflow.models import user as _user_models               # noqa: F401

    # ── Auto-create tables (dev/test convenience; migrations own prod) ───
    if app.config.get("DEBUG") or app.config.get("TESTING"):
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from lotflow.blueprints.health_bp import health_bp
    from lotflow.blueprints.lot_bp import lot_bp
    from lotflow.blueprints.replacement_bp import replacement_bp
    from lotflow.blueprints.user_bp import user_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(lot_bp)
    app.register_blueprint(replacement_bp)
    app.register_blueprint(user_bp)

    init_rate_limits(app, limiter)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("sweep-access-tokens")
    def sweep_access_tokens_cmd():
        """Delete lot access tokens whose validity window has closed."""
        from lotflow.services.access_token_service import prune_expired_access_tokens
        count = prune_expired_access_tokens()
        click.echo(f"Pruned {count} expired access token(s).")

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, f"Not found: {request.path}", kind="NotFound")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.VALIDATION_INVALID, "Request body too large", status=413)

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    return app
