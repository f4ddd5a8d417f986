"""Flask application configuration and blueprint registration."""

from __future__ import annotations

from flask import Flask, jsonify

from langsync import __version__
from langsync.logger import get_logger
from langsync.translation.manager import TranslationManager

from .routes.jobs import jobs_bp

logger = get_logger(__name__)


def build_app(manager: TranslationManager) -> Flask:
    """Create and configure the Flask application around a translation manager."""
    app = Flask(__name__)

    # Ensure JSON responses keep Unicode data (native language names).
    app.json.ensure_ascii = False
    app.config["LANGSYNC_MANAGER"] = manager

    register_blueprints(app)
    register_default_routes(app)

    return app


def register_blueprints(app: Flask) -> None:
    """Register Flask blueprints."""
    app.register_blueprint(jobs_bp, url_prefix="/api/jobs")


def register_default_routes(app: Flask) -> None:
    """Register default health and language routes."""

    @app.get("/health")
    def health_check():
        logger.debug("Health check requested")
        return jsonify({"status": "ok", "version": __version__})

    @app.get("/api/languages")
    def list_languages():
        manager: TranslationManager = app.config["LANGSYNC_MANAGER"]
        processor = manager.language_processor
        return jsonify([
            {
                "code": code,
                "name": formal_name,
                "folder": processor.get_target_language_path(formal_name).name,
            }
            for code, formal_name in manager.languages.items()
        ])

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(e):
        logger.exception("Internal server error: %s", e)
        return jsonify({"error": "Internal server error"}), 500
