"""Application factory and entry point for the tracking SaaS backend."""

from __future__ import annotations

import logging
import os
from datetime import timedelta
from logging.handlers import RotatingFileHandler

from dotenv import load_dotenv
from flask import Flask, jsonify
from sqlalchemy import event
from werkzeug.exceptions import HTTPException

from commands import register_commands
from config import enable_sqlite_fks, load_config
from config_models import LoggingConfig
from errors import ApiError
from extensions import db, jwt, limiter
from routes import register_blueprints
from services.auth import ensure_admin_user
from services.plans import seed_default_plans
from telebirr_client import TelebirrGateway
from traccar_client import TraccarClient

load_dotenv()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

# Dedicated channels, each mirrored to its own file when a log directory is set
_LOG_FILES = {
    None: "app.log",
    "payments": "payment.log",
    "cron": "cron.log",
}


def configure_logging(cfg: LoggingConfig) -> None:
    logging.getLogger().setLevel(getattr(logging, cfg.level, logging.INFO))
    if not cfg.directory:
        return
    os.makedirs(cfg.directory, exist_ok=True)
    for channel, filename in _LOG_FILES.items():
        target = logging.getLogger(channel)
        path = os.path.abspath(os.path.join(cfg.directory, filename))
        if any(getattr(h, "baseFilename", None) == path for h in target.handlers):
            continue
        handler = RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        target.addHandler(handler)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def _error(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def api_error(error: ApiError):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(429)
    def ratelimit_handler(_error):
        return _error("Too many requests, please try again later", 429)

    @app.errorhandler(500)
    def server_error(_error):
        logger.exception("Unhandled error")
        return _error("Internal server error", 500)

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        return _error(error.description or error.name, error.code or 500)

    @jwt.unauthorized_loader
    def missing_token(_reason):
        return _error("Access token required", 401)

    @jwt.invalid_token_loader
    def invalid_token(_reason):
        return _error("Invalid or expired token", 403)

    @jwt.expired_token_loader
    def expired_token(_header, _payload):
        return _error("Invalid or expired token", 403)


def create_app(overrides: dict | None = None):
    """Create and configure the Flask application."""
    app_cfg, jwt_cfg, telebirr_cfg, traccar_cfg, scheduler_cfg, logging_cfg, db_uri = load_config()
    configure_logging(logging_cfg)

    app = Flask(__name__)
    app.config["SQLALCHEMY_DATABASE_URI"] = db_uri
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.secret_key = app_cfg.secret_key
    app.config["APP_CONFIG"] = app_cfg
    app.config["JWT_CONFIG"] = jwt_cfg
    app.config["TELEBIRR_CONFIG"] = telebirr_cfg
    app.config["TRACCAR_CONFIG"] = traccar_cfg
    app.config["SCHEDULER_CONFIG"] = scheduler_cfg

    app.config["JWT_SECRET_KEY"] = jwt_cfg.secret_key
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(days=jwt_cfg.access_token_days)
    app.config["JWT_TOKEN_LOCATION"] = ["headers"]
    if overrides:
        app.config.update(overrides)

    # Initialize extensions
    limiter.init_app(app)
    jwt.init_app(app)
    db.init_app(app)
    app.extensions["telebirr"] = TelebirrGateway(telebirr_cfg)
    app.extensions["traccar"] = TraccarClient(traccar_cfg)

    # SQLite foreign key enforcement
    if "sqlite" in app.config["SQLALCHEMY_DATABASE_URI"]:
        with app.app_context():
            event.listen(db.engine, "connect", enable_sqlite_fks)

    with app.app_context():
        db.create_all()
        seed_default_plans(db.session)
        ensure_admin_user()

    if not telebirr_cfg.enabled:
        logger.warning("Telebirr gateway disabled, paid plans cannot be purchased")
    if not traccar_cfg.enabled:
        logger.warning("Traccar integration disabled, devices will not be linked")

    register_blueprints(app)
    register_commands(app)
    _register_error_handlers(app)

    # ------------------------------------------------------------------
    # Security headers
    # ------------------------------------------------------------------

    @app.after_request
    def set_security_headers(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"
        if os.environ.get("FLASK_ENV") == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    return app


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "false").lower() in (
        "true",
        "1",
        "yes",
    )
    host = os.environ.get("FLASK_HOST", "127.0.0.1")
    port = int(os.environ.get("FLASK_PORT", 5000))
    logger.info("Starting application on %s:%s (debug=%s)", host, port, debug_mode)
    app.run(host=host, port=port, debug=debug_mode)
