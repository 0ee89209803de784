"""
Custom exceptions for the production billing service.

Exception Hierarchy:
    ProductionBillingError (base)
    ├── RunValidationError          - Run configuration rejected before save (400)
    ├── BillingInputError           - Malformed rate-override map (400)
    ├── UnsupportedProcessKindError - Process has no costing calculator (400)
    ├── NotFoundError               - Referenced record does not exist (404)
    │   ├── OrderNotFoundError
    │   ├── RunNotFoundError
    │   └── BillingContextNotFoundError
    └── BillingStateError           - Operation not allowed in current state (409)
        ├── ContextFinalizedError   - Context is FINAL and edits are refused
        ├── StaleSnapshotError      - Caller worked from an outdated snapshot
        └── StaleRunError           - Run save based on an outdated revision

Usage:
    Services raise these; app.py maps each branch to an HTTP status code.
    Nothing here is fatal to the process - every failure is per-operation
    and recoverable by correcting the input or retrying.
"""

from typing import Optional, Dict, Any, List


class ProductionBillingError(Exception):
    """
    Base exception for all production billing errors.

    All custom exceptions inherit from this class, allowing callers to catch
    all application-specific errors with a single except clause if needed.
    """

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-safe response body."""
        return {
            "success": False,
            "error": self.message,
            "details": self.details,
        }


# =============================================================================
# INPUT ERRORS - caught before anything is written
# =============================================================================

class RunValidationError(ProductionBillingError):
    """
    A run configuration failed validation.

    Raised before any write, so no partial save occurs. The caller keeps
    its working draft and can correct the listed fields and retry.
    """

    status_code = 400

    def __init__(
        self,
        errors: List[str],
        run_id: Optional[str] = None,
        process_kind: Optional[str] = None,
    ):
        message = "; ".join(errors) if errors else "Run configuration is invalid"
        details: Dict[str, Any] = {"errors": list(errors)}
        if run_id:
            details["run_id"] = run_id
        if process_kind:
            details["process_kind"] = process_kind
        super().__init__(message, details)
        self.errors = list(errors)
        self.run_id = run_id


class BillingInputError(ProductionBillingError):
    """Rate override map is malformed or targets records outside the context."""

    status_code = 400


class UnsupportedProcessKindError(ProductionBillingError):
    """
    The run's process has no costing calculator.

    Only Allover Sublimation, DTF and Sublimation runs are costed here;
    other techniques are configured elsewhere.
    """

    status_code = 400

    def __init__(self, process_name: Optional[str]):
        message = f"No costing calculator for process '{process_name}'"
        details = {
            "process_name": process_name,
            "resolution": "Use one of: Allover Sublimation, DTF, Sublimation",
        }
        super().__init__(message, details)
        self.process_name = process_name


# =============================================================================
# LOOKUP ERRORS
# =============================================================================

class NotFoundError(ProductionBillingError):
    """Base class for missing records."""

    status_code = 404
    record_type = "Record"

    def __init__(self, record_id: str):
        super().__init__(
            f"{self.record_type} not found: {record_id}",
            {"id": record_id},
        )
        self.record_id = record_id


class OrderNotFoundError(NotFoundError):
    record_type = "Order"


class RunNotFoundError(NotFoundError):
    record_type = "Run"


class BillingContextNotFoundError(NotFoundError):
    record_type = "Billing context"


# =============================================================================
# STATE ERRORS
# =============================================================================

class BillingStateError(ProductionBillingError):
    """The requested billing operation conflicts with the current state."""

    status_code = 409


class ContextFinalizedError(BillingStateError):
    """
    The billing context is FINAL and the operation would modify it.

    Raised for order membership changes on a final context, and for
    re-finalizing when BILLING_ALLOW_REFINALIZE is disabled.
    """

    def __init__(self, context_id: str, operation: str):
        message = f"Billing context {context_id} is final; cannot {operation}"
        details = {
            "billing_context_id": context_id,
            "operation": operation,
        }
        super().__init__(message, details)
        self.context_id = context_id


class StaleSnapshotError(BillingStateError):
    """
    The caller's view of the context is older than the latest snapshot.

    Another operator (or a superseded request) has written a newer
    snapshot. The caller should reload the context and reapply its edits.
    """

    def __init__(self, context_id: str, expected_version: int, actual_version: int):
        message = (
            f"Billing context {context_id} is at version {actual_version}, "
            f"request was based on version {expected_version}"
        )
        details = {
            "billing_context_id": context_id,
            "expected_version": expected_version,
            "actual_version": actual_version,
            "resolution": "Reload the billing context and retry",
        }
        super().__init__(message, details)
        self.expected_version = expected_version
        self.actual_version = actual_version


class StaleRunError(BillingStateError):
    """A run save was based on an older revision than the stored run."""

    def __init__(self, run_id: str, expected_revision: int, actual_revision: int):
        message = (
            f"Run {run_id} is at revision {actual_revision}, "
            f"request was based on revision {expected_revision}"
        )
        details = {
            "run_id": run_id,
            "expected_revision": expected_revision,
            "actual_revision": actual_revision,
            "resolution": "Reload the run and retry",
        }
        super().__init__(message, details)
        self.run_id = run_id
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision
