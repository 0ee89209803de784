"""
API routes.

Handles:
- /health - Health check endpoint
"""

from flask import Blueprint, current_app

from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

api_bp = Blueprint("api", __name__)


@api_bp.route("/health", methods=["GET"])
def health():
    """Health check endpoint with service status."""
    health_status = {
        "status": "ok",
        "environment": current_app.config.get("ENVIRONMENT", "unknown"),
        "currency": current_app.config.get("BILLING_CURRENCY"),
        "checks": {}
    }

    for key, name in (
        ("BILLING_STORE", "store"),
        ("RUN_SERVICE", "run_service"),
        ("BILLING_SERVICE", "billing_service"),
    ):
        if current_app.config.get(key) is not None:
            health_status["checks"][name] = "ok"
        else:
            health_status["checks"][name] = "not_available"
            health_status["status"] = "degraded"

    if health_status["status"] != "ok":
        logger.warning(f"Health check degraded: {health_status['checks']}")

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code
