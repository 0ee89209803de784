"""
Order routes.

Handles:
- POST /orders - Create an order with its processes
- GET /orders/<order_id> - Order detail with processes and runs
"""

from flask import Blueprint, current_app, request

from core.exceptions import BillingInputError
from routes.sanitize import sanitize_text
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

orders_bp = Blueprint("orders", __name__)


@orders_bp.route("/orders", methods=["POST"])
def create_order():
    """Create an order: {"quantity": int, "code": str, "processes": [name, ...]}."""
    payload = request.get_json(silent=True) or {}
    max_length = current_app.config.get("MAX_TEXT_LENGTH", 255)

    try:
        quantity = int(payload.get("quantity"))
    except (TypeError, ValueError):
        raise BillingInputError(
            "Order quantity must be a whole number",
            details={"quantity": payload.get("quantity")},
        )

    process_names = payload.get("processes") or []
    if not isinstance(process_names, list):
        raise BillingInputError("processes must be a list of process names")

    run_service = current_app.config["RUN_SERVICE"]
    order = run_service.create_order(
        quantity=quantity,
        code=sanitize_text(payload.get("code"), max_length),
        process_names=[sanitize_text(name, max_length) for name in process_names if name],
    )
    logger.info(f"Order {order.id[:8]} created ({order.code or 'no code'})")
    return order.to_dict(), 201


@orders_bp.route("/orders/<order_id>", methods=["GET"])
def get_order(order_id: str):
    order = current_app.config["RUN_SERVICE"].get_order(order_id)
    return order.to_dict()
