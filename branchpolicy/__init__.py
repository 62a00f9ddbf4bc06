"""
Branch Policy Engine
Flask Application Factory.

Usage:
    from branchpolicy import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine, event as _sa_event

from branchpolicy.blueprints import register_blueprints
from branchpolicy.config import config
from branchpolicy.middleware.jwt_auth import init_jwt_middleware
from branchpolicy.middleware.logging_config import configure_logging
from branchpolicy.models import db
from branchpolicy.services.notification_router import NotificationRouter
from branchpolicy.services.policy_evaluator import PolicyEvaluator
from branchpolicy.services.policy_rules import build_rule_table
from branchpolicy.services.role_hierarchy import build_hierarchy
from branchpolicy.utils.errors import register_error_handlers

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


def init_policy(app):
    """Build the rank table, rule table and router from config and attach them.

    Services reach them through ``get_policy_evaluator()`` and
    ``get_notification_router()``; both fall back to the defaults outside an
    app context.
    """
    hierarchy = build_hierarchy(app.config.get("POLICY_EXTRA_ROLES"))
    rules = build_rule_table(
        developer_manages_branches=app.config.get("POLICY_DEVELOPER_MANAGES_BRANCHES", True),
    )
    app.extensions["policy_evaluator"] = PolicyEvaluator(hierarchy, rules)
    app.extensions["notification_router"] = NotificationRouter(hierarchy)
    app.logger.debug("Policy loaded: %d roles, %d rules", len(hierarchy.ordered()), len(rules))


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
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)
    os.makedirs(app.instance_path, exist_ok=True)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Policy engine ────────────────────────────────────────────────────
    init_policy(app)

    # ── JWT auth middleware (sets g.principal) ───────────────────────────
    init_jwt_middleware(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from branchpolicy.models import org as _org_models                    # noqa: F401
    from branchpolicy.models import goal as _goal_models                  # noqa: F401
    from branchpolicy.models import report as _report_models              # noqa: F401
    from branchpolicy.models import notification as _notification_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if not app.config.get("TESTING"):
        with app.app_context():
            db.create_all()
            app.logger.info("db.create_all() completed successfully")

    # ── Blueprints & error handlers ──────────────────────────────────────
    register_blueprints(app)
    register_error_handlers(app)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Branch Policy Engine"}

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-branch")
    @click.option("--name", required=True, help="Branch name.")
    @click.option("--code", default=None, help="Unique branch code.")
    @click.option("--email", required=True, help="Email of the first account.")
    @click.option("--full-name", default="", help="Display name of the first account.")
    @click.option("--role", default="SUPER_ADMIN", type=click.Choice(["SUPER_ADMIN", "DEVELOPER"]))
    def seed_branch_cmd(name, code, email, full_name, role):
        """Create a root branch with one active top-rank account and print its token."""
        from branchpolicy.models.org import User
        from branchpolicy.services.branch_service import create_root_branch
        from branchpolicy.services.jwt_service import generate_token_for

        branch = create_root_branch(name=name, code=code)
        user = User(branch_id=branch.id, email=email.strip().lower(), full_name=full_name,
                    role=role, status="ACTIVE")
        db.session.add(user)
        db.session.commit()
        logger.info("Seeded branch %s with %s account %s", branch.id, role, user.id)
        click.echo(f"branch_id={branch.id} user_id={user.id}")
        click.echo(f"token={generate_token_for(user)}")

    return app
