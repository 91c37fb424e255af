"""
Approval Workflow Engine application factory.

    from app import create_app
    app = create_app()           # APP_ENV or "development"
    app = create_app("testing")
"""

import logging
import os

import click
from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine

from app.config import config
from app.models import db
from app.middleware.jwt_auth import init_jwt_middleware
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.timing import init_request_timing
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

migrate = Migrate()
# Limits are attached per blueprint in init_rate_limits
limiter = Limiter(key_func=get_remote_address, default_limits=[])


@event.listens_for(Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """SQLite ignores ON DELETE RESTRICT / CASCADE unless this is on."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_app(config_name=None):
    """Build the Flask app for "development", "testing" or "production"."""
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse a missing DATABASE_URL / SECRET_KEY
    app.config.from_object(config[config_name]())
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)

    configure_logging(app)
    _init_extensions(app)

    init_request_timing(app)
    init_jwt_middleware(app)
    app.before_request(_require_json_body)

    from app.models import approval, audit, organization  # noqa: F401  register tables
    if not app.config.get("TESTING"):
        _create_schema(app)

    from app.blueprints.approval_bp import approval_bp
    from app.blueprints.health_bp import health_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(approval_bp)

    _register_cli(app)
    _register_error_handlers(app)
    init_rate_limits(app, limiter)
    return app


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)


def _require_json_body():
    if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
        if request.data and "json" not in (request.content_type or ""):
            abort(415, description="Content-Type must be application/json")


def _create_schema(app):
    """Create missing tables; Flask-Migrate takes over once migrations exist."""
    with app.app_context():
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///"):
            os.makedirs(app.instance_path, exist_ok=True)
        db.create_all()
        logger.info("Schema ready on %s", db.engine.url.render_as_string(hide_password=True))


def _register_cli(app):
    @app.cli.command("seed-demo")
    def seed_demo_cmd():
        """Create a demo group with one member per role, a route and a template."""
        from app.services.demo_seed import seed_demo

        summary = seed_demo()
        click.echo(f"Seeded group id={summary['group_id']}")
        for member in summary["members"]:
            click.echo(f"  member id={member['id']} role={member['role']}")

    @app.cli.command("issue-token")
    @click.argument("member_id", type=int)
    def issue_token_cmd(member_id):
        """Mint an access token for MEMBER_ID (development only)."""
        from app.models.organization import Member
        from app.services.jwt_service import generate_access_token

        member = db.session.get(Member, member_id)
        if member is None:
            raise click.ClickException(f"Member id={member_id} not found")
        click.echo(generate_access_token(member.id, member.group_id, member.role))


def _register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(415)
    def unsupported_media(e):
        return api_error(E.VALIDATION_INVALID, e.description, status=415)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"limit": e.description})
