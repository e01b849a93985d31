import logging
import os

from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
cache = Cache()


def get_real_ip():
    """
    Get the real client IP address, accounting for reverse proxies.
    Checks X-Forwarded-For, X-Real-IP, and falls back to remote_addr.
    """
    # X-Forwarded-For: client, proxy1, proxy2, ...
    if request.headers.get("X-Forwarded-For"):
        return request.headers.get("X-Forwarded-For").split(",")[0].strip()
    if request.headers.get("X-Real-IP"):
        return request.headers.get("X-Real-IP")
    return get_remote_address()


limiter = Limiter(key_func=get_real_ip, default_limits=["10000 per day", "1000 per hour"])


def create_app(config_name=None):
    app = Flask(__name__)

    # Determine configuration
    if config_name is None:
        config_name = os.environ.get("FLASK_CONFIG", "default")

    app.config.from_object(config[config_name]())

    # Initialize extensions
    db.init_app(app)
    cache.init_app(app)
    limiter.init_app(app)

    from pigskin.routes.api import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    # Register error handlers
    register_error_handlers(app)

    # Setup logging
    from pigskin.utils.logging_config import setup_logging

    setup_logging(app)

    show_config_warnings(app, config_name)

    # Create database tables
    with app.app_context():
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
            enable_sqlite_savepoints(db.engine)
        db.create_all()

    # Initialize and start background scheduler
    if not app.config.get("TESTING", False):
        from pigskin.services.scheduler_service import scheduler_service

        scheduler_service.init_app(app)

    return app


def enable_sqlite_savepoints(engine):
    """Let SQLAlchemy emit BEGIN itself so per-pick savepoints work on pysqlite"""

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def show_config_warnings(app, config_name):
    """Log configuration warnings and status"""
    logger.info(f"Pigskin engine starting with '{config_name}' configuration")

    if config_name == "production" and app.config.get("DEBUG"):
        logger.warning("DEBUG mode is enabled in production!")

    if not app.config.get("SCORE_FEED_API_KEY") and not app.config.get("TESTING"):
        logger.warning("SCORE_FEED_API_KEY not set - live score polling will fail")

    db_url = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if "sqlite" in db_url:
        logger.info(
            "Using SQLite database (%s)", "in-memory" if "memory" in db_url else "file"
        )
    elif "postgresql" in db_url:
        logger.info("Using PostgreSQL database")
    else:
        logger.info(
            f"Using database: {db_url.split('://')[0] if '://' in db_url else 'Unknown'}"
        )


def register_error_handlers(app):
    """Register global error handlers"""
    from pigskin.exceptions import (
        PickLockedError,
        PickemError,
        TransientUpstreamError,
        ValidationError,
    )

    @app.after_request
    def after_request(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        return jsonify({"error": str(error), "details": error.details}), 400

    @app.errorhandler(PickLockedError)
    def handle_locked_error(error):
        return jsonify({"error": str(error)}), 409

    @app.errorhandler(TransientUpstreamError)
    def handle_upstream_error(error):
        app.logger.warning(f"Upstream unavailable: {error}")
        return jsonify({"error": "Score feed unavailable"}), 503

    @app.errorhandler(PickemError)
    def handle_pickem_error(error):
        app.logger.warning(f"Unhandled engine error: {error} - Path: {request.path}")
        return jsonify({"error": str(error)}), 422

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"error": "Resource not found"}), 404

    @app.errorhandler(429)
    def too_many_requests_error(error):
        return jsonify({"error": "Too many requests"}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


from pigskin import models  # noqa: F401, E402 - imported for model registration
