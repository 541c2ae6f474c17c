import os

import click
from flask import Flask, jsonify, request, g
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from rizqdaan.config import Config
from rizqdaan.extensions import db, migrate, cors
from rizqdaan.services import build_services
from rizqdaan.services.errors import NotFoundError, TransitionError, ValidationError
from rizqdaan.segments.segment_auth import auth_bp
from rizqdaan.segments.segment_wallet import wallet_bp
from rizqdaan.segments.segment_admin_finance import admin_finance_bp
from rizqdaan.segments.segment_campaigns import campaigns_bp, admin_campaigns_bp
from rizqdaan.segments.segment_notifications import notifications_bp
from rizqdaan.segments.segment_listings import listings_bp
from rizqdaan.segments.segment_referral import referral_bp
from rizqdaan.segments.segment_reconciliation_admin import recon_bp
from rizqdaan.utils.observability import init_sentry, install_request_observers


def _error_payload(code: str, message: str, status: int):
    payload = {"ok": False, "error": code, "message": message, "status": status}
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return jsonify(payload), status


def _engine_options(config: Config, database_url: str) -> dict:
    options = {
        "pool_pre_ping": True,
        "pool_recycle": config.DB_POOL_RECYCLE_SECONDS,
    }
    if not database_url.startswith("sqlite://"):
        options.update(
            {
                "pool_size": config.DB_POOL_SIZE,
                "max_overflow": config.DB_MAX_OVERFLOW,
            }
        )
    return options


def create_app(overrides: dict | None = None):
    app = Flask(__name__)
    init_sentry(app)

    config = Config()
    config.validate()
    app.config.update(config.as_flask_config())
    app.config.update(overrides or {})

    database_url = app.config["SQLALCHEMY_DATABASE_URI"]
    if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
        os.makedirs(config.INSTANCE_DIR, exist_ok=True)
    app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", _engine_options(config, database_url))

    cors_origins = (app.config.get("CORS_ORIGINS") or "").strip()
    origins = [o.strip() for o in cors_origins.split(",") if o.strip()] or ["*"]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    db.init_app(app)
    migrate.init_app(app, db)
    install_request_observers(app)

    app.extensions["rizqdaan"] = build_services(app)

    @app.errorhandler(ValidationError)
    def _validation_error(error: ValidationError):
        return _error_payload(error.code, error.message, 400)

    @app.errorhandler(TransitionError)
    def _transition_error(error: TransitionError):
        return _error_payload(error.code, error.message, 409)

    @app.errorhandler(NotFoundError)
    def _not_found_error(error: NotFoundError):
        return _error_payload(error.code, error.message, 404)

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        if not request.path.startswith("/api/"):
            return error
        return _error_payload(error.name, error.description or error.name, int(error.code or 500))

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        return _error_payload("InternalServerError", "Internal server error", 500)

    app.register_blueprint(auth_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(admin_finance_bp)
    app.register_blueprint(campaigns_bp)
    app.register_blueprint(admin_campaigns_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(listings_bp)
    app.register_blueprint(referral_bp)
    app.register_blueprint(recon_bp)

    @app.get("/api/health")
    def health():
        db_state = "ok"
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            db_state = "fail"
            app.logger.warning("health_db_probe_failed err=%s", e)
        services = app.extensions["rizqdaan"]
        return jsonify(
            {
                "ok": True,
                "service": "rizqdaan-backend",
                "env": app.config.get("ENV"),
                "db": db_state,
                "mirror_backend": type(services.mirror.backend).__name__,
                "ledger_fallback_policy": services.ledger.fallback_policy,
            }
        )

    @app.get("/")
    def root():
        return jsonify({"ok": True, "service": "rizqdaan-backend", "env": app.config.get("ENV")})

    @app.cli.command("init-db")
    def init_db_command():
        """Create tables directly (development databases only)."""
        db.create_all()
        click.echo("tables created")

    @app.cli.command("create-admin")
    @click.argument("email")
    @click.argument("password")
    @click.option("--name", default="Admin")
    def create_admin_command(email, password, name):
        from rizqdaan.models import User

        user = User.query.filter_by(email=email.strip().lower()).first()
        if user is None:
            user = User(email=email.strip().lower(), name=name)
            db.session.add(user)
        user.role = "admin"
        user.set_password(password)
        db.session.commit()
        click.echo(f"admin ready id={user.id}")

    @app.cli.command("reconcile-mirror")
    @click.option("--push", is_flag=True, help="Write divergent mirror state back to canonical records.")
    def reconcile_mirror_command(push):
        from rizqdaan.services.reconciliation_service import mirror_drift_report, push_mirror_to_canonical

        services = app.extensions["rizqdaan"]
        report = mirror_drift_report(services.store, services.mirror)
        click.echo(f"mirror drift_count={report['drift_count']} users={report['user_count']}")
        if push and report["drift_count"]:
            summary = push_mirror_to_canonical(services.store, services.mirror)
            click.echo(f"pushed={len(summary['pushed'])} failed={len(summary['failed'])}")

    return app
