"""
Complaint Tracker - Workflow Domain Models

Typed values passed between the workflow engine and its collaborators.
The ORM rows in db_models stay flat; these types carry the shapes that
the engine reasons about (who is acting, what is pending, what is visible).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Union
from uuid import uuid4

from .db_models import ActorKind, ComplaintStatus, ServiceType, UserRole


# =============================================================================
# ACTOR
# =============================================================================

PUBLIC_ACTOR_NAME = "Anonymous Reporter"
SYSTEM_ACTOR_NAME = "System"


@dataclass(frozen=True)
class Actor:
    """
    Whoever is performing an action.

    Exactly one of three shapes:
    - Actor.public(...)  - an unauthenticated reporter
    - Actor.system()     - an unattributed system action
    - Actor.user(...)    - an internal user with id, name and role
    """
    kind: ActorKind
    name: str
    id: Optional[str] = None
    role: Optional[UserRole] = None
    service_types_handled: FrozenSet[ServiceType] = frozenset()

    def __post_init__(self):
        if self.kind == ActorKind.USER:
            if not self.id or self.role is None:
                raise ValueError("User actors require an id and a role")
            if self.role == UserRole.PUBLIC:
                raise ValueError("PUBLIC is not an internal user role")
        elif self.id is not None or self.role is not None:
            raise ValueError(f"{self.kind.value} actors carry no id or role")

    @classmethod
    def public(cls, display_name: Optional[str] = None) -> "Actor":
        return cls(kind=ActorKind.PUBLIC, name=display_name or PUBLIC_ACTOR_NAME)

    @classmethod
    def system(cls) -> "Actor":
        return cls(kind=ActorKind.SYSTEM, name=SYSTEM_ACTOR_NAME)

    @classmethod
    def user(
        cls,
        user_id: str,
        name: str,
        role: UserRole,
        service_types_handled=(),
    ) -> "Actor":
        return cls(
            kind=ActorKind.USER,
            name=name,
            id=user_id,
            role=UserRole(role),
            service_types_handled=frozenset(ServiceType(s) for s in service_types_handled),
        )

    @classmethod
    def from_user(cls, user) -> "Actor":
        """Build a user actor from a UserDB row (or anything shaped like one)."""
        return cls.user(
            user_id=user.id,
            name=user.name,
            role=user.role,
            service_types_handled=user.service_types_handled or [],
        )

    @property
    def is_user(self) -> bool:
        return self.kind == ActorKind.USER

    def has_role(self, *roles: UserRole) -> bool:
        return self.is_user and self.role in roles

    def handles(self, service_type: ServiceType) -> bool:
        return ServiceType(service_type) in self.service_types_handled


# =============================================================================
# ATTACHMENTS
# =============================================================================

@dataclass(frozen=True)
class AttachmentRef:
    """Opaque reference to stored attachment bytes."""
    id: str
    file_name: str
    content_type: str
    size: int = 0
    sha256: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "file_name": self.file_name,
            "content_type": self.content_type,
            "size": self.size,
            "sha256": self.sha256,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttachmentRef":
        return cls(
            id=data["id"],
            file_name=data["file_name"],
            content_type=data["content_type"],
            size=data.get("size", 0),
            sha256=data.get("sha256"),
        )


# =============================================================================
# WORKFLOW STATE (sum type over the flat status columns)
# =============================================================================

CLOSURE_STATUSES = frozenset({ComplaintStatus.RESOLVED, ComplaintStatus.REJECTED})


@dataclass(frozen=True)
class PendingApproval:
    """An agent's proposed closure awaiting supervisor sign-off."""
    target_status: ComplaintStatus
    notes: str
    attachment: Optional[AttachmentRef] = None

    def __post_init__(self):
        if self.target_status not in CLOSURE_STATUSES:
            raise ValueError(
                f"Closure requests may only target RESOLVED or REJECTED, got {self.target_status.value}"
            )


@dataclass(frozen=True)
class SettledState:
    """Any status other than AWAITING_SUPERVISOR_APPROVAL."""
    status: ComplaintStatus

    def __post_init__(self):
        if self.status == ComplaintStatus.AWAITING_SUPERVISOR_APPROVAL:
            raise ValueError("AWAITING_SUPERVISOR_APPROVAL requires a PendingApproval payload")


@dataclass(frozen=True)
class AwaitingApprovalState:
    """AWAITING_SUPERVISOR_APPROVAL together with its request payload."""
    pending: PendingApproval
    status: ComplaintStatus = field(default=ComplaintStatus.AWAITING_SUPERVISOR_APPROVAL, init=False)


WorkflowState = Union[SettledState, AwaitingApprovalState]


def workflow_state_of(complaint) -> WorkflowState:
    """Read the typed workflow state off a ComplaintDB row."""
    if complaint.status == ComplaintStatus.AWAITING_SUPERVISOR_APPROVAL:
        attachment = complaint.pending_attachment
        return AwaitingApprovalState(
            pending=PendingApproval(
                target_status=complaint.requested_status_change,
                notes=complaint.status_change_request_notes or "",
                attachment=AttachmentRef.from_dict(attachment) if attachment else None,
            )
        )
    return SettledState(status=complaint.status)


def workflow_state_columns(state: WorkflowState) -> Dict[str, Any]:
    """
    Column values for a workflow state.
    The request fields are always written together so they cannot drift
    from the status.
    """
    if isinstance(state, AwaitingApprovalState):
        pending = state.pending
        return {
            "status": ComplaintStatus.AWAITING_SUPERVISOR_APPROVAL,
            "requested_status_change": pending.target_status,
            "status_change_request_notes": pending.notes,
            "pending_attachment": pending.attachment.to_dict() if pending.attachment else None,
        }
    return {
        "status": state.status,
        "requested_status_change": None,
        "status_change_request_notes": None,
        "pending_attachment": None,
    }


# =============================================================================
# LEDGER ENTRY
# =============================================================================

@dataclass
class LedgerEntry:
    """One action to be appended to a complaint's history."""
    actor: Actor
    action: str
    notes: Optional[str] = None
    old_status: Optional[ComplaintStatus] = None
    new_status: Optional[ComplaintStatus] = None
    assigned_agent_id: Optional[str] = None
    assigned_agent_name: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        # Creation records only new_status; every other change records both
        if self.old_status is not None and self.new_status is None:
            raise ValueError("old_status requires new_status")


# =============================================================================
# INTAKE
# =============================================================================

@dataclass
class ComplaintIntake:
    """What a reporter submits. Reporter fields are ignored when anonymous."""
    service_type: ServiceType
    incident_time: datetime
    description: str
    is_anonymous: bool = False
    reporter_name: Optional[str] = None
    reporter_email: Optional[str] = None
    reporter_whatsapp: Optional[str] = None
    custom_field_data: Dict[str, Any] = field(default_factory=dict)
    attachments: List[AttachmentRef] = field(default_factory=list)


# =============================================================================
# LISTING
# =============================================================================

@dataclass
class ComplaintFilter:
    """Listing filter. None means 'any'."""
    status: Optional[ComplaintStatus] = None
    service_type: Optional[ServiceType] = None
    assigned_agent_id: Optional[str] = None
    search: Optional[str] = None


@dataclass(frozen=True)
class VisibilityScope:
    """
    Which complaints an actor may read.

    unrestricted: admin / management see everything
    agent_id: only complaints assigned to this agent
    supervisor_id + service_types: bound complaints plus any triage
        complaint in a handled service type, whoever it is bound to
    """
    unrestricted: bool = False
    agent_id: Optional[str] = None
    supervisor_id: Optional[str] = None
    service_types: FrozenSet[ServiceType] = frozenset()

    @classmethod
    def for_actor(cls, actor: Actor) -> "VisibilityScope":
        if actor.has_role(UserRole.ADMIN, UserRole.MANAGEMENT):
            return cls(unrestricted=True)
        if actor.has_role(UserRole.SUPERVISOR):
            return cls(supervisor_id=actor.id, service_types=actor.service_types_handled)
        if actor.has_role(UserRole.AGENT):
            return cls(agent_id=actor.id)
        # Public / system actors see nothing through listing
        return cls()


@dataclass
class ComplaintPage:
    """One page of a listing."""
    items: List[Any]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size


# =============================================================================
# PUBLIC TRACKING VIEW
# =============================================================================

@dataclass
class PublicHistoryEntry:
    """Ledger entry with user ids stripped."""
    timestamp: datetime
    actor_name: str
    actor_role: Optional[UserRole]
    action: str
    notes: Optional[str] = None
    old_status: Optional[ComplaintStatus] = None
    new_status: Optional[ComplaintStatus] = None


@dataclass
class PublicComplaintView:
    """What an unauthenticated reporter may see about a complaint."""
    tracking_id: str
    service_type: ServiceType
    status: ComplaintStatus
    created_at: datetime
    updated_at: datetime
    history: List[PublicHistoryEntry] = field(default_factory=list)


def new_id() -> str:
    return str(uuid4())
