"""
Complaint Lifecycle State Machine

Fixed transition table for complaints:

    NEW -> UNDER_VERIFICATION -> IN_PROGRESS -> AWAITING_SUPERVISOR_APPROVAL -> {RESOLVED | REJECTED}

REJECTED is also reachable straight from triage. Rejecting an agent's
closure *request* sends the complaint back to IN_PROGRESS. RESOLVED and
REJECTED are terminal. Administrative edits may force any status and are
not governed by this table.
"""
from typing import Any, Dict, FrozenSet, Optional, Tuple

from ...models.db_models import ComplaintStatus
from .permissions import ComplaintAction


# =============================================================================
# STATE CONFIGURATION
# =============================================================================
#
# For each status:
# - actions: workflow actions legal from this status, and the status each
#   one leads to (None = status unchanged, "requested" = the pending target)
#
# =============================================================================

REQUESTED_TARGET = "requested"

STATE_CONFIG: Dict[ComplaintStatus, Dict[str, Any]] = {
    ComplaintStatus.NEW: {
        "description": "Submitted, not yet triaged",
        "actions": {
            ComplaintAction.BEGIN_VERIFICATION: ComplaintStatus.UNDER_VERIFICATION,
            ComplaintAction.ASSIGN: ComplaintStatus.IN_PROGRESS,
            ComplaintAction.DIRECT_REJECT: ComplaintStatus.REJECTED,
            ComplaintAction.ADD_NOTE: None,
        },
    },
    ComplaintStatus.UNDER_VERIFICATION: {
        "description": "Being verified by a supervisor or administrator",
        "actions": {
            ComplaintAction.ASSIGN: ComplaintStatus.IN_PROGRESS,
            ComplaintAction.DIRECT_REJECT: ComplaintStatus.REJECTED,
            ComplaintAction.ADD_NOTE: None,
        },
    },
    ComplaintStatus.IN_PROGRESS: {
        "description": "Assigned to an agent and being worked",
        "actions": {
            ComplaintAction.ASSIGN: ComplaintStatus.IN_PROGRESS,  # Reassignment
            ComplaintAction.ADD_NOTE: None,
            ComplaintAction.REQUEST_STATUS_CHANGE: ComplaintStatus.AWAITING_SUPERVISOR_APPROVAL,
        },
    },
    ComplaintStatus.AWAITING_SUPERVISOR_APPROVAL: {
        "description": "Agent proposed a closure, awaiting supervisor sign-off",
        "actions": {
            # Approve -> requested target, reject -> IN_PROGRESS
            ComplaintAction.REVIEW_REQUEST: REQUESTED_TARGET,
            ComplaintAction.ADD_NOTE: None,
        },
    },
    ComplaintStatus.RESOLVED: {
        "description": "Closed - resolved",
        "actions": {},
    },
    ComplaintStatus.REJECTED: {
        "description": "Closed - rejected",
        "actions": {},
    },
}

# Actions outside the table; legal from any status when permitted
UNGOVERNED_ACTIONS: FrozenSet[ComplaintAction] = frozenset({
    ComplaintAction.VIEW,
    ComplaintAction.TRACK,
    ComplaintAction.ADMIN_EDIT,
    ComplaintAction.DELETE,
})


def get_state_config(status: ComplaintStatus) -> Dict[str, Any]:
    """Get configuration for a status."""
    return STATE_CONFIG.get(ComplaintStatus(status), {})


def can_apply(status: ComplaintStatus, action: ComplaintAction) -> Tuple[bool, str]:
    """
    Check whether an action is legal from a status.

    Returns (allowed, reason)
    """
    action = ComplaintAction(action)
    if action in UNGOVERNED_ACTIONS:
        return True, "Action not governed by the lifecycle"

    actions = get_state_config(status).get("actions", {})
    if action in actions:
        return True, "Transition allowed"

    return False, f"Cannot {action.value} a complaint in {ComplaintStatus(status).value}"


def target_status(
    status: ComplaintStatus,
    action: ComplaintAction,
    requested: Optional[ComplaintStatus] = None,
    approve: bool = True,
) -> ComplaintStatus:
    """Status a legal action leads to."""
    target = get_state_config(status)["actions"][ComplaintAction(action)]
    if target is None:
        return ComplaintStatus(status)
    if target == REQUESTED_TARGET:
        return requested if approve else ComplaintStatus.IN_PROGRESS
    return target

