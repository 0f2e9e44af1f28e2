"""
Permission Evaluator

Pure function of (actor, complaint, action) -> allowed. No I/O.

AUTHORITY MODEL:
- ADMIN: every action, unconditionally
- SUPERVISOR: supervisor actions on complaints bound to them, or on any
  triage complaint (NEW / UNDER_VERIFICATION) in a service type they handle,
  whoever it is bound to
- AGENT: agent actions on complaints assigned to them
- MANAGEMENT: read-only; may not submit complaints either
- PUBLIC / SYSTEM: intake and tracking lookup only
"""
from enum import Enum
from typing import FrozenSet

from ...models.db_models import ComplaintStatus, UserRole
from ...models.workflow_models import Actor


class ComplaintAction(str, Enum):
    """Everything an actor can ask of the workflow core."""
    CREATE = "CREATE"
    TRACK = "TRACK"
    VIEW = "VIEW"
    BEGIN_VERIFICATION = "BEGIN_VERIFICATION"
    ASSIGN = "ASSIGN"
    ADD_NOTE = "ADD_NOTE"
    REQUEST_STATUS_CHANGE = "REQUEST_STATUS_CHANGE"
    REVIEW_REQUEST = "REVIEW_REQUEST"
    DIRECT_REJECT = "DIRECT_REJECT"
    ADMIN_EDIT = "ADMIN_EDIT"
    DELETE = "DELETE"


# Open to anyone, authenticated or not, except management for CREATE
OPEN_ACTIONS: FrozenSet[ComplaintAction] = frozenset({
    ComplaintAction.CREATE,
    ComplaintAction.TRACK,
})

SUPERVISOR_ACTIONS: FrozenSet[ComplaintAction] = frozenset({
    ComplaintAction.VIEW,
    ComplaintAction.BEGIN_VERIFICATION,
    ComplaintAction.ASSIGN,
    ComplaintAction.ADD_NOTE,
    ComplaintAction.REVIEW_REQUEST,
    ComplaintAction.DIRECT_REJECT,
})

AGENT_ACTIONS: FrozenSet[ComplaintAction] = frozenset({
    ComplaintAction.VIEW,
    ComplaintAction.ADD_NOTE,
    ComplaintAction.REQUEST_STATUS_CHANGE,
})

TRIAGE_STATUSES: FrozenSet[ComplaintStatus] = frozenset({
    ComplaintStatus.NEW,
    ComplaintStatus.UNDER_VERIFICATION,
})


def supervisor_owns(actor: Actor, complaint) -> bool:
    """
    Bound supervisor, or any supervisor handling the service type while the
    complaint is in triage, even if it is bound to someone else.
    """
    if complaint.supervisor_id is not None and complaint.supervisor_id == actor.id:
        return True
    return complaint.status in TRIAGE_STATUSES and actor.handles(complaint.service_type)


def can_transition(actor: Actor, complaint, action: ComplaintAction) -> bool:
    """
    Decide whether the actor may perform the action on the complaint.

    `complaint` may be None for CREATE, which has no target yet.
    """
    action = ComplaintAction(action)

    if action == ComplaintAction.CREATE and actor.role == UserRole.MANAGEMENT:
        return False

    if action in OPEN_ACTIONS:
        return True

    if not actor.is_user or complaint is None:
        return False

    if actor.role == UserRole.ADMIN:
        return True

    if actor.role == UserRole.MANAGEMENT:
        return action == ComplaintAction.VIEW

    if actor.role == UserRole.SUPERVISOR:
        return action in SUPERVISOR_ACTIONS and supervisor_owns(actor, complaint)

    if actor.role == UserRole.AGENT:
        return (
            action in AGENT_ACTIONS
            and complaint.assigned_agent_id is not None
            and complaint.assigned_agent_id == actor.id
        )

    return False


def allowed_actions(actor: Actor, complaint) -> FrozenSet[ComplaintAction]:
    """Every action the actor may currently take on the complaint."""
    return frozenset(a for a in ComplaintAction if can_transition(actor, complaint, a))
