"""
Flask application entry point for the BeatWatch backend.

Registers the beat, violation and duty blueprints and, when enabled, the
in-process scheduled-end ticker.
"""

import logging

from flask import Flask

from beatwatch.config import config
from beatwatch.api import beats_bp, violations_bp, duty_bp, register_error_handlers
from beatwatch.db.postgres import close_db_session, rollback_session
from beatwatch.services import DutyTicker


def create_app(init_database: bool = False, start_ticker: bool = None):
    """Create and configure Flask app."""
    app = Flask(__name__)

    # Load config
    app.config["SECRET_KEY"] = config.SECRET_KEY
    app.config["DEBUG"] = config.DEBUG

    # Enable CORS for the dispatcher dashboard
    @app.after_request
    def after_request(response):
        response.headers.add("Access-Control-Allow-Origin", "*")
        response.headers.add("Access-Control-Allow-Headers", "Content-Type,X-User-Id")
        response.headers.add("Access-Control-Allow-Methods", "GET,PUT,POST,DELETE,OPTIONS")
        return response

    # Ensure clean session state at the start of each request
    @app.before_request
    def ensure_clean_session():
        rollback_session()

    # Clean up database session at the end of each request
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        close_db_session(exception)

    app.register_blueprint(beats_bp)       # /api/v1/beats/*
    app.register_blueprint(violations_bp)  # /api/v1/violations/*
    app.register_blueprint(duty_bp)        # /api/v1/duty/*
    register_error_handlers(app)

    # Health check endpoint
    @app.route("/health")
    def health():
        return {
            "status": "ok",
            "firestore_enabled": config.ENABLE_FIRESTORE,
            "duty_ticker": app.extensions.get("duty_ticker") is not None,
        }

    # Initialize database tables if requested (development only)
    if init_database:
        with app.app_context():
            from beatwatch.db.postgres import init_db
            init_db()
            print("[BeatWatch] Database tables initialized")

    if start_ticker is None:
        start_ticker = config.ENABLE_DUTY_TICKER
    if start_ticker:
        ticker = DutyTicker()
        ticker.start()
        app.extensions["duty_ticker"] = ticker

    return app


if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    app = create_app(init_database=False)
    print(f"[BeatWatch] Starting server on port 5001...")
    print(f"[BeatWatch] Firestore enabled: {config.ENABLE_FIRESTORE}")
    print(f"[BeatWatch] Duty ticker: {'every %ss' % config.DUTY_TICK_SECONDS if config.ENABLE_DUTY_TICKER else 'off'}")
    print(f"[BeatWatch] Duty timezone: {config.DUTY_TIMEZONE}")
    print(f"[BeatWatch] Routes:")
    print(f"  - /api/v1/beats/* (Beats, acceptance, fixes, replacements)")
    print(f"  - /api/v1/violations/* (Violation review)")
    print(f"  - /api/v1/duty/tick (Scheduled-end check)")
    print(f"  - /health (Health check)")
    # No reloader: it would start a second ticker thread
    app.run(debug=config.DEBUG, port=5001, use_reloader=False)
