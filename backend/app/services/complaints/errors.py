"""
Complaint workflow errors.

Every rejection raised by the workflow core derives from
ComplaintWorkflowError and carries the HTTP status the API layer maps it to.
A rejected action never leaves partial writes behind.
"""
from typing import Any, Dict, Optional


class ComplaintWorkflowError(Exception):
    """Base class for all workflow rejections."""

    status_code = 500
    error_code = "WORKFLOW_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error_code": self.error_code, "detail": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ComplaintWorkflowError):
    """Malformed or missing required input."""
    status_code = 422
    error_code = "VALIDATION_ERROR"


class NotFoundError(ComplaintWorkflowError):
    """Unknown complaint, tracking id or user reference."""
    status_code = 404
    error_code = "NOT_FOUND"


class PermissionDeniedError(ComplaintWorkflowError):
    """Actor is not authorized for the action in the complaint's current state."""
    status_code = 403
    error_code = "PERMISSION_DENIED"


class InvalidTransitionError(ComplaintWorkflowError):
    """Action is not legal from the complaint's current status."""
    status_code = 409
    error_code = "INVALID_TRANSITION"


class ConflictError(ComplaintWorkflowError):
    """A concurrent writer won the race; re-read and retry."""
    status_code = 409
    error_code = "CONFLICT"


class InternalError(ComplaintWorkflowError):
    """Storage failure."""
    status_code = 500
    error_code = "INTERNAL_ERROR"


class AllocationConflict(Exception):
    """
    Tracking id collided with a concurrent intake at commit time.
    Internal to intake; retried with a fresh sequence and never surfaced.
    """

    def __init__(self, tracking_id: str):
        super().__init__(f"Tracking id {tracking_id} already allocated")
        self.tracking_id = tracking_id
