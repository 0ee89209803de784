"""
Run routes.

Handles:
- POST   /orders/<order_id>/processes/<process_id>/runs - Add a run
- DELETE /orders/<order_id>/processes/<process_id>/runs/<run_id> - Delete a run
- POST   /orders/<order_id>/processes/<process_id>/runs/<run_id>/configure - Save a run
- GET    /runs/<run_id> - Run detail
- POST   /runs/preview - Live totals for unsaved fields
"""

from flask import Blueprint, current_app, request

from core.exceptions import BillingInputError
from models.run import ProcessKind
from modules.calculators import get_calculator, preview_run
from routes.sanitize import optional_int, sanitize_fields
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

runs_bp = Blueprint("runs", __name__)

RUN_PATH = "/orders/<order_id>/processes/<process_id>/runs"


def _fields_from(payload) -> dict:
    fields = payload.get("fields")
    if fields is None:
        return {}
    if not isinstance(fields, dict):
        raise BillingInputError("fields must be an object")
    return sanitize_fields(fields, current_app.config.get("MAX_TEXT_LENGTH", 255))


@runs_bp.route(RUN_PATH, methods=["POST"])
def add_run(order_id: str, process_id: str):
    run = current_app.config["RUN_SERVICE"].add_run(order_id, process_id)
    return run.to_dict(), 201


@runs_bp.route(f"{RUN_PATH}/<run_id>", methods=["DELETE"])
def delete_run(order_id: str, process_id: str, run_id: str):
    current_app.config["RUN_SERVICE"].delete_run(order_id, process_id, run_id)
    return {"success": True}


@runs_bp.route(f"{RUN_PATH}/<run_id>/configure", methods=["POST"])
def configure_run(order_id: str, process_id: str, run_id: str):
    """
    Save a run's configuration.

    Body: {fields, images?, executorId?, reviewerId?, locationId?,
           expectedRevision?: int}
    """
    payload = request.get_json(silent=True) or {}
    images = payload.get("images") or []
    if not isinstance(images, list):
        raise BillingInputError("images must be a list of URLs")

    return current_app.config["RUN_SERVICE"].configure_run(
        order_id,
        process_id,
        run_id,
        _fields_from(payload),
        images=[str(url) for url in images],
        executor_id=payload.get("executorId"),
        reviewer_id=payload.get("reviewerId"),
        location_id=payload.get("locationId"),
        expected_revision=optional_int(payload, "expectedRevision"),
    )


@runs_bp.route("/runs/<run_id>", methods=["GET"])
def get_run(run_id: str):
    return current_app.config["RUN_SERVICE"].get_run(run_id)


@runs_bp.route("/runs/preview", methods=["POST"])
def preview():
    """Compute totals for {processName, fields} without saving anything."""
    payload = request.get_json(silent=True) or {}
    process_name = payload.get("processName") or payload.get("processKind")
    kind = get_calculator(ProcessKind.from_process_name(process_name), process_name).kind
    logger.debug(f"Previewing {kind.value} run totals")
    return {"processKind": kind.value, "values": preview_run(kind, _fields_from(payload))}
