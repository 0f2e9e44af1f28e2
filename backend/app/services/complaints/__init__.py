"""
Complaint Workflow Services

Lifecycle engine for public complaints:
- ComplaintWorkflowService: orchestrator and sole writer
- TrackingIdIssuer: year-scoped PEN-YYYY-NNN identifiers
- AssignmentResolver: service-type routing to supervisors and agents
- Permission evaluator: role and ownership checks per action
- HistoryLedger: append-only per-complaint audit trail
- ComplaintRepository: scoped reads, versioned writes
"""

from .errors import (
    ComplaintWorkflowError, ValidationError, NotFoundError, PermissionDeniedError,
    InvalidTransitionError, ConflictError, InternalError,
)
from .permissions import ComplaintAction, can_transition, allowed_actions
from .tracking_id import TrackingIdIssuer
from .assignment import AssignmentResolver
from .history_ledger import HistoryLedger
from .repository import ComplaintRepository
from .attachments import LocalAttachmentStore
from .workflow import ComplaintWorkflowService, available_actions

__all__ = [
    'ComplaintWorkflowService',
    'TrackingIdIssuer',
    'AssignmentResolver',
    'HistoryLedger',
    'ComplaintRepository',
    'LocalAttachmentStore',
    # Permissions
    'ComplaintAction',
    'can_transition',
    'allowed_actions',
    'available_actions',
    # Errors
    'ComplaintWorkflowError',
    'ValidationError',
    'NotFoundError',
    'PermissionDeniedError',
    'InvalidTransitionError',
    'ConflictError',
    'InternalError',
]
