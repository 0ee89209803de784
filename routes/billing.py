"""
Billing routes.

Handles:
- /billing/contexts - Create and list billing groups
- /billing/contexts/<id> - Group detail, membership changes, display preview
- /billing/finalize/order - Save one order's run rates
- /billing/finalize/group - Finalize a billing group
- /billing/snapshots/latest - Latest snapshot of a context or order
"""

from flask import Blueprint, current_app, request

from core.exceptions import BillingInputError
from core.numbers import to_number
from models.billing import BillingDraft
from routes.sanitize import optional_int, sanitize_text
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

billing_bp = Blueprint("billing", __name__, url_prefix="/billing")


def _billing_service():
    return current_app.config["BILLING_SERVICE"]


def _order_ids(payload) -> list:
    order_ids = payload.get("orderIds") or []
    if not isinstance(order_ids, list):
        raise BillingInputError("orderIds must be a list")
    return [str(order_id) for order_id in order_ids]


def _current_user():
    return request.headers.get("X-User-Id") or None


@billing_bp.route("/contexts", methods=["POST"])
def create_context():
    """Create a billing group: {"orderIds": [...], "description"?: str}."""
    payload = request.get_json(silent=True) or {}
    context = _billing_service().create_group_context(
        _order_ids(payload),
        description=sanitize_text(
            payload.get("description"), current_app.config.get("MAX_TEXT_LENGTH", 255)
        ),
        created_by=_current_user(),
    )
    return context, 201


@billing_bp.route("/contexts", methods=["GET"])
def list_contexts():
    default_limit = current_app.config.get("BILLING_CONTEXTS_PAGE_SIZE", 12)
    return _billing_service().list_contexts(
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", default_limit, type=int),
        search=sanitize_text(request.args.get("search", "")),
    )


@billing_bp.route("/contexts/<context_id>", methods=["GET"])
def get_context(context_id: str):
    return _billing_service().get_context(context_id)


@billing_bp.route("/contexts/<context_id>/orders", methods=["POST"])
def add_orders(context_id: str):
    payload = request.get_json(silent=True) or {}
    return _billing_service().add_orders(context_id, _order_ids(payload))


@billing_bp.route("/contexts/<context_id>/orders/<order_id>", methods=["DELETE"])
def remove_order(context_id: str, order_id: str):
    return _billing_service().remove_order(context_id, order_id)


@billing_bp.route("/contexts/<context_id>/preview", methods=["POST"])
def preview_context(context_id: str):
    """
    Display total with unsaved overrides: {"inputs": orderId -> runId -> {new_rate}}.

    Lenient: unparseable rates count as 0, nothing is written.
    """
    payload = request.get_json(silent=True) or {}
    inputs = payload.get("inputs") or {}
    if not isinstance(inputs, dict):
        raise BillingInputError("inputs must map order IDs to run rates")

    draft = BillingDraft()
    for order_id, runs in inputs.items():
        if runs is None:
            continue
        if not isinstance(runs, dict):
            raise BillingInputError(
                f"Order {order_id}: expected runId -> {{new_rate}}",
                details={"order_id": order_id},
            )
        for run_id, value in runs.items():
            rate = value.get("new_rate") if isinstance(value, dict) else value
            draft = draft.with_rate(order_id, run_id, to_number(rate))
    return _billing_service().preview_context_total(context_id, draft)


@billing_bp.route("/finalize/order", methods=["POST"])
def finalize_order():
    """
    Save one order's rates.

    Body: {"orderId", "inputs": runId -> {new_rate, quantity?}, "reason"?,
           "expectedVersion"?: int}
    """
    payload = request.get_json(silent=True) or {}
    order_id = payload.get("orderId")
    if not order_id:
        raise BillingInputError("orderId is required")

    snapshot = _billing_service().save_order_billing(
        order_id,
        payload.get("inputs") or {},
        reason=sanitize_text(payload.get("reason")) or None,
        created_by=_current_user(),
        expected_version=optional_int(payload, "expectedVersion"),
    )
    return {"success": True, "snapshot": snapshot.to_dict()}


@billing_bp.route("/finalize/group", methods=["POST"])
def finalize_group():
    """
    Finalize a billing group.

    Body: {"billingContextId", "inputs": orderId -> runId -> {new_rate},
           "expectedVersion"?: int}
    """
    payload = request.get_json(silent=True) or {}
    context_id = payload.get("billingContextId")
    if not context_id:
        raise BillingInputError("billingContextId is required")

    expected_version = optional_int(payload, "expectedVersion")

    context = _billing_service().finalize_group(
        context_id,
        payload.get("inputs") or {},
        created_by=_current_user(),
        expected_version=expected_version,
    )
    logger.info(f"Finalized billing group {context['name']}")
    return {"success": True, "context": context}


@billing_bp.route("/snapshots/latest", methods=["POST"])
def latest_snapshot():
    """Latest snapshot for {"billingContextId"} or {"orderId"}; null when none exists."""
    payload = request.get_json(silent=True) or {}
    snapshot = _billing_service().get_latest_snapshot(
        billing_context_id=payload.get("billingContextId"),
        order_id=payload.get("orderId"),
    )
    return {"snapshot": snapshot.to_dict() if snapshot else None}
