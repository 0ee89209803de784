"""
Flask route blueprints for the production billing service.

This module contains all route handlers organized by functionality:
- orders: Order creation and detail
- runs: Run add/delete/configure and live totals preview
- billing: Billing groups, finalize and snapshots
- api: Health check

Each blueprint is registered with the Flask app in create_app().
"""

from .orders import orders_bp
from .runs import runs_bp
from .billing import billing_bp
from .api import api_bp

__all__ = [
    "orders_bp",
    "runs_bp",
    "billing_bp",
    "api_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(orders_bp)
    app.register_blueprint(runs_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(api_bp)
