"""Flask application factory."""

from __future__ import annotations

import logging

from flask import Flask, jsonify, request
from flask_cors import CORS

from api.routes import api_bp
from config import Config, settings
from services.sku_service import SkuService


def create_app(
    sku_service: SkuService | None = None,
    config: Config = settings,
) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.flask_secret_key

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    CORS(app, origins=config.cors_origins)

    app.extensions["sku_service"] = sku_service or SkuService.from_config(config)
    app.register_blueprint(api_bp)

    # Health check
    @app.route("/api/health")
    def health() -> dict[str, str | int]:
        service: SkuService = app.extensions["sku_service"]
        cache_status = "ok" if service.cache.ping() else "unavailable"
        return {
            "status": "ok",
            "cache": cache_status,
            "degraded_allocations": service.allocator.degraded_allocations,
        }

    # --- Error handlers ---

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found", "path": request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    return app
