"""
Production billing service - Flask Application Entry Point.

This is a slim app factory that:
1. Loads configuration (.env + config classes)
2. Configures logging
3. Creates the shared store and services
4. Registers route blueprints
5. Sets up JSON error handlers

ARCHITECTURE:
    Flask request threads
    ├── RunService      (configure runs through the calculators)
    ├── BillingService  (order snapshots, billing groups, finalize)
    └── BillingStore    (one lock-guarded store shared by both)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask
from werkzeug.exceptions import HTTPException

from logging_config import setup_logging, get_logger
from core.exceptions import ProductionBillingError
from services import BillingService, BillingStore, RunService
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def create_app(config_object: str = "config.Config") -> Flask:
    """
    Application factory - creates and configures Flask app.

    Args:
        config_object: Import path of the config class to load

    Returns:
        Configured Flask application
    """
    # Use override=True so .env file always takes precedence over shell environment
    env_file = Path(__file__).parent / '.env'
    if env_file.exists():
        load_dotenv(env_file, override=True)
    else:
        load_dotenv(override=True)

    app = Flask(__name__)
    app.config.from_object(config_object)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production"

    root_logger = setup_logging(
        log_level=log_level,
        log_dir=Path(app.config["LOG_DIR"]) if app.config.get("LOG_DIR") else None,
        enable_file_logging=enable_file_logging
    )

    # Set Flask's logger to use our configured logger
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting production billing in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    store = BillingStore()
    app.config["BILLING_STORE"] = store

    app.config["RUN_SERVICE"] = RunService(
        store,
        max_images=app.config.get("MAX_RUN_IMAGES", 2),
    )
    app.config["BILLING_SERVICE"] = BillingService(
        store,
        currency=app.config.get("BILLING_CURRENCY", "INR"),
        allow_refinalize=app.config.get("BILLING_ALLOW_REFINALIZE", True),
    )
    logger.info("Billing services initialized")

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(ProductionBillingError)
    def handle_billing_error(e: ProductionBillingError):
        if e.status_code >= 500:
            logger.error(f"{type(e).__name__}: {e}", exc_info=True)
        else:
            logger.warning(f"{type(e).__name__}: {e}")
        return e.to_dict(), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return {"success": False, "error": e.description, "details": {}}, e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        logger.error(f"500 error: {e}", exc_info=True)
        return {
            "success": False,
            "error": "An unexpected error occurred. Please try again.",
            "details": {},
        }, 500

    logger.info("Application initialized successfully")
    return app


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(debug=debug_mode)
