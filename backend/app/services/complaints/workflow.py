"""
Complaint Workflow Service

Main orchestration service for the complaint lifecycle.
Coordinates the permission evaluator, the state machine, the repository,
the history ledger, the tracking id issuer and the assignment resolver.

AUTHORITY MODEL:
- PUBLIC: create_complaint, get_public_view
- SUPERVISOR / ADMIN: begin_verification, assign_agent, direct_reject,
  approve_or_reject_request
- AGENT: add_note, request_status_change
- ADMIN ONLY: update_complaint, delete_complaint

TRANSITION PROTOCOL (every mutating operation):
1. Validate input                  -> ValidationError
2. Read the current row            -> NotFoundError
3. Permission evaluator            -> PermissionDeniedError
4. State machine                   -> InvalidTransitionError
5. Compare-and-swap update on version + one ledger row, one commit
                                   -> ConflictError / InternalError
Steps 1-4 never write. Step 5 is all-or-nothing.
"""
import logging
import os
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import (
    ComplaintDB, ComplaintHistoryDB, ComplaintStatus, ServiceType, UserDB, UserRole,
)
from ...models.workflow_models import (
    CLOSURE_STATUSES, Actor, AttachmentRef, AwaitingApprovalState, ComplaintFilter,
    ComplaintIntake, ComplaintPage, LedgerEntry, PendingApproval, PublicComplaintView,
    SettledState, VisibilityScope, new_id, workflow_state_columns, workflow_state_of,
)
from . import state_machine
from .assignment import AssignmentResolver
from .errors import (
    AllocationConflict, ConflictError, InternalError, InvalidTransitionError,
    NotFoundError, PermissionDeniedError, ValidationError,
)
from .history_ledger import HistoryLedger
from .permissions import OPEN_ACTIONS, ComplaintAction, allowed_actions, can_transition
from .repository import DEFAULT_PAGE_SIZE, ComplaintRepository
from .tracking_id import TrackingIdIssuer

logger = logging.getLogger(__name__)

TRACKING_ID_MAX_ATTEMPTS = int(os.getenv("TRACKING_ID_MAX_ATTEMPTS", "3"))

REPORTER_FIELDS = ("reporter_name", "reporter_email", "reporter_whatsapp")

# Free-text columns an administrator may set or clear
TEXT_FIELDS = REPORTER_FIELDS + ("agent_follow_up_notes", "supervisor_review_notes")

# Fields an administrator may patch through update_complaint
ADMIN_EDITABLE_FIELDS = frozenset({
    "is_anonymous",
    "reporter_name",
    "reporter_email",
    "reporter_whatsapp",
    "service_type",
    "incident_time",
    "description",
    "custom_field_data",
    "status",
    "assigned_agent_id",
    "supervisor_id",
    "agent_follow_up_notes",
    "supervisor_review_notes",
})


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{field_name} must be text", details={"field": field_name})
    if value is None or not value.strip():
        raise ValidationError(f"{field_name} is required", details={"field": field_name})
    return value.strip()


def available_actions(actor: Actor, complaint: ComplaintDB) -> List[ComplaintAction]:
    """
    Actions the actor could take on this complaint right now: permitted,
    legal from the current status, and not intake or tracking.
    """
    actions = []
    for action in allowed_actions(actor, complaint):
        if action in OPEN_ACTIONS:
            continue
        if not state_machine.can_apply(complaint.status, action)[0]:
            continue
        # Agent follow-ups are only taken while IN_PROGRESS
        if (action == ComplaintAction.ADD_NOTE and actor.has_role(UserRole.AGENT)
                and complaint.status != ComplaintStatus.IN_PROGRESS):
            continue
        actions.append(action)
    return sorted(actions, key=lambda a: a.value)


# =============================================================================
# WORKFLOW SERVICE
# =============================================================================

class ComplaintWorkflowService:
    """
    Sole writer of complaints and their history.

    One instance per database session / request.
    """

    def __init__(
        self,
        db_session: Session,
        issuer: Optional[TrackingIdIssuer] = None,
        resolver: Optional[AssignmentResolver] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_allocation_attempts: int = TRACKING_ID_MAX_ATTEMPTS,
    ):
        """Initialize with database session."""
        self.db = db_session
        self.clock = clock or datetime.utcnow
        self.repository = ComplaintRepository(db_session)
        self.ledger = HistoryLedger(db_session)
        self.issuer = issuer or TrackingIdIssuer(db_session, clock=self.clock)
        self.resolver = resolver or AssignmentResolver(db_session)
        self.max_allocation_attempts = max_allocation_attempts

    # =========================================================================
    # GUARDS
    # =========================================================================

    def _load(self, complaint_id: str) -> ComplaintDB:
        """Read the current row, bypassing any stale copy in the session."""
        complaint = self.repository.get_by_id(complaint_id, fresh=True)
        if complaint is None:
            raise NotFoundError(f"Complaint {complaint_id} not found", details={"complaint_id": complaint_id})
        return complaint

    def _authorize(self, actor: Actor, complaint: Optional[ComplaintDB], action: ComplaintAction) -> None:
        if not can_transition(actor, complaint, action):
            logger.warning(
                f"Permission denied: {actor.kind.value}:{actor.id or actor.name} "
                f"attempted {action.value} on {complaint.id if complaint else 'new complaint'}"
            )
            raise PermissionDeniedError(
                f"Not permitted to {action.value} this complaint",
                details={"action": action.value},
            )

    def _check_transition(self, complaint: ComplaintDB, action: ComplaintAction) -> None:
        allowed, reason = state_machine.can_apply(complaint.status, action)
        if not allowed:
            logger.warning(f"Rejected {action.value} on {complaint.tracking_id}: {reason}")
            raise InvalidTransitionError(
                reason,
                details={"action": action.value, "status": complaint.status.value},
            )

    def _guard(self, complaint_id: str, actor: Actor, action: ComplaintAction) -> ComplaintDB:
        complaint = self._load(complaint_id)
        self._authorize(actor, complaint, action)
        self._check_transition(complaint, action)
        return complaint

    # =========================================================================
    # ATOMIC WRITE
    # =========================================================================

    def _commit_transition(
        self,
        complaint: ComplaintDB,
        values: Dict[str, Any],
        entry: LedgerEntry,
    ) -> ComplaintDB:
        """
        Apply the mutation and its ledger row as one unit.

        The update only lands if the row is still at the version we read,
        so a concurrent writer turns this into ConflictError.
        """
        now = self.clock()
        entry.timestamp = now
        complaint_id = complaint.id
        seen_version = complaint.version
        try:
            self.repository.update(complaint_id, seen_version, values, now=now)
            self.ledger.append(complaint_id, entry)
            self.db.commit()
        except ConflictError:
            self.db.rollback()
            logger.warning(f"Conflict on {complaint_id} during '{entry.action}'")
            raise
        except IntegrityError as e:
            self.db.rollback()
            # Only a ledger sequence clash from another writer is a conflict,
            # and every such writer bumps the version
            current = self.repository.get_by_id(complaint_id, fresh=True)
            if current is not None and current.version == seen_version:
                logger.error(f"Integrity error on {complaint_id} during '{entry.action}': {e.orig}")
                raise InternalError("Storage rejected the transition") from e
            logger.warning(f"Integrity conflict on {complaint_id} during '{entry.action}': {e.orig}")
            raise ConflictError(
                "Complaint was modified concurrently; re-read and retry",
                details={"complaint_id": complaint_id},
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Storage failure on {complaint_id} during '{entry.action}': {e}")
            raise InternalError("Storage failure while applying transition") from e

        complaint = self._load(complaint_id)
        logger.info(
            f"{complaint.tracking_id}: '{entry.action}' by {entry.actor.kind.value}:"
            f"{entry.actor.id or entry.actor.name} (status {complaint.status.value}, v{complaint.version})"
        )
        return complaint

    # =========================================================================
    # INTAKE
    # =========================================================================

    def _validate_intake(self, intake: ComplaintIntake) -> Dict[str, Optional[str]]:
        try:
            ServiceType(intake.service_type)
        except ValueError:
            raise ValidationError(
                f"Unknown service type: {intake.service_type}",
                details={"field": "service_type"},
            )
        if not isinstance(intake.incident_time, datetime):
            raise ValidationError("incident_time is required", details={"field": "incident_time"})
        _require_text(intake.description, "description")

        if intake.is_anonymous:
            return {name: None for name in REPORTER_FIELDS}

        reporter = {name: (getattr(intake, name) or None) for name in REPORTER_FIELDS}
        reporter["reporter_name"] = _require_text(intake.reporter_name, "reporter_name")
        return reporter

    def _insert_new_complaint(
        self,
        intake: ComplaintIntake,
        reporter: Dict[str, Optional[str]],
        supervisor_id: Optional[str],
        actor: Actor,
    ) -> ComplaintDB:
        """One allocation attempt. Raises AllocationConflict on a tracking id collision."""
        now = self.clock()
        tracking_id = self.issuer.issue()
        complaint = ComplaintDB(
            id=new_id(),
            tracking_id=tracking_id,
            is_anonymous=bool(intake.is_anonymous),
            service_type=ServiceType(intake.service_type),
            incident_time=intake.incident_time,
            description=intake.description.strip(),
            custom_field_data=dict(intake.custom_field_data or {}),
            attachments=[a.to_dict() for a in intake.attachments or []],
            status=ComplaintStatus.NEW,
            supervisor_id=supervisor_id,
            version=1,
            created_at=now,
            updated_at=now,
            **reporter,
        )
        notes = "New complaint submitted"
        if supervisor_id is None:
            notes += "; no supervisor handles this service type, awaiting administrator routing"

        try:
            self.repository.create(complaint)
            self.ledger.append(complaint.id, LedgerEntry(
                actor=actor,
                action="Complaint created",
                notes=notes,
                new_status=ComplaintStatus.NEW,
                metadata={"supervisor_id": supervisor_id, "routed": supervisor_id is not None},
                timestamp=now,
            ))
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if self.repository.get_by_tracking_id(tracking_id) is not None:
                raise AllocationConflict(tracking_id) from e
            logger.error(f"Intake failed with integrity error: {e.orig}")
            raise InternalError("Storage failure while creating complaint") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Intake failed: {e}")
            raise InternalError("Storage failure while creating complaint") from e
        return complaint

    def create_complaint(self, intake: ComplaintIntake, actor: Optional[Actor] = None) -> ComplaintDB:
        """
        Accept a new complaint from the public.

        Allocates a tracking id, routes to the supervisor handling the
        service type (if any) and writes the 'created' ledger entry.
        Tracking id collisions are retried with a fresh sequence up to
        max_allocation_attempts times, then surface as ConflictError.
        """
        reporter = self._validate_intake(intake)
        if actor is None:
            actor = Actor.public(None if intake.is_anonymous else reporter["reporter_name"])
        self._authorize(actor, None, ComplaintAction.CREATE)

        supervisor_id = self.resolver.resolve_supervisor(intake.service_type)

        for attempt in range(1, self.max_allocation_attempts + 1):
            try:
                complaint = self._insert_new_complaint(intake, reporter, supervisor_id, actor)
            except AllocationConflict as e:
                logger.warning(
                    f"Tracking id {e.tracking_id} collided "
                    f"(attempt {attempt}/{self.max_allocation_attempts}); recomputing"
                )
                continue
            logger.info(
                f"Complaint {complaint.tracking_id} created "
                f"({complaint.service_type.value}, supervisor={supervisor_id or 'unrouted'})"
            )
            return self._load(complaint.id)

        raise ConflictError(
            "Could not allocate a unique tracking id; please retry",
            details={"attempts": self.max_allocation_attempts},
        )

    # =========================================================================
    # READS
    # =========================================================================

    def get_complaint(self, complaint_id: str, actor: Actor) -> ComplaintDB:
        """A complaint the actor is allowed to see."""
        complaint = self._load(complaint_id)
        self._authorize(actor, complaint, ComplaintAction.VIEW)
        return complaint

    def get_history(self, complaint_id: str, newest_first: bool = True) -> List[ComplaintHistoryDB]:
        entries = self.ledger.list_for(complaint_id)
        return list(reversed(entries)) if newest_first else entries

    def get_public_view(self, tracking_id: str) -> PublicComplaintView:
        """
        Public tracking lookup.

        Only status, service type, timestamps and a de-identified ledger;
        never reporter contact details.
        """
        tracking_id = (tracking_id or "").strip().upper()
        if not self.issuer.is_valid(tracking_id):
            raise ValidationError(
                f"Malformed tracking id: {tracking_id}",
                details={"field": "tracking_id"},
            )
        complaint = self.repository.get_by_tracking_id(tracking_id)
        if complaint is None:
            raise NotFoundError(f"No complaint with tracking id {tracking_id}")

        history = [HistoryLedger.to_public(row) for row in self.get_history(complaint.id)]
        return PublicComplaintView(
            tracking_id=complaint.tracking_id,
            service_type=complaint.service_type,
            status=complaint.status,
            created_at=complaint.created_at,
            updated_at=complaint.updated_at,
            history=history,
        )

    def list_complaints(
        self,
        actor: Actor,
        complaint_filter: Optional[ComplaintFilter] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> ComplaintPage:
        """Listing scoped to what the actor may read."""
        if not actor.is_user:
            raise PermissionDeniedError("Listing complaints requires an internal user")
        scope = VisibilityScope.for_actor(actor)
        return self.repository.list(complaint_filter, scope, page=page, page_size=page_size)

    def get_attachment(self, complaint_id: str, attachment_id: str, actor: Actor) -> AttachmentRef:
        """
        Reference to one of the complaint's attachments, including an
        agent's attachment still waiting on supervisor approval.
        """
        complaint = self.get_complaint(complaint_id, actor)
        refs = [AttachmentRef.from_dict(a) for a in complaint.attachments or []]
        state = workflow_state_of(complaint)
        if isinstance(state, AwaitingApprovalState) and state.pending.attachment is not None:
            refs.append(state.pending.attachment)

        for ref in refs:
            if ref.id == attachment_id:
                return ref
        raise NotFoundError(
            f"Attachment {attachment_id} is not part of complaint {complaint.tracking_id}",
            details={"attachment_id": attachment_id},
        )

    def eligible_agents(self, complaint_id: str, actor: Actor) -> List[UserDB]:
        """Agents that could be assigned to the complaint."""
        complaint = self._load(complaint_id)
        self._authorize(actor, complaint, ComplaintAction.ASSIGN)
        return self.resolver.eligible_agent_users(complaint.service_type)

    # =========================================================================
    # TRIAGE
    # =========================================================================

    def begin_verification(self, complaint_id: str, actor: Actor, notes: Optional[str] = None) -> ComplaintDB:
        """NEW -> UNDER_VERIFICATION."""
        complaint = self._guard(complaint_id, actor, ComplaintAction.BEGIN_VERIFICATION)
        new_status = state_machine.target_status(complaint.status, ComplaintAction.BEGIN_VERIFICATION)

        values = workflow_state_columns(SettledState(new_status))
        if complaint.supervisor_id is None and actor.has_role(UserRole.SUPERVISOR):
            values["supervisor_id"] = actor.id

        return self._commit_transition(complaint, values, LedgerEntry(
            actor=actor,
            action="Verification started",
            notes=notes,
            old_status=complaint.status,
            new_status=new_status,
        ))

    def assign_agent(
        self,
        complaint_id: str,
        agent_id: str,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> ComplaintDB:
        """
        Assign (or reassign) an agent; status becomes IN_PROGRESS.

        Binds the supervisor if the complaint has none yet: the acting
        supervisor, or the routed supervisor when an administrator assigns.
        """
        agent_id = _require_text(agent_id, "agent_id")
        complaint = self._guard(complaint_id, actor, ComplaintAction.ASSIGN)

        agent = self.resolver.get_user(agent_id)
        if agent is None:
            raise NotFoundError(f"User {agent_id} not found", details={"agent_id": agent_id})
        if agent.role != UserRole.AGENT or not agent.is_active:
            raise ValidationError(f"User {agent_id} is not an active agent", details={"agent_id": agent_id})
        if not actor.has_role(UserRole.ADMIN) and not agent.handles(complaint.service_type):
            raise ValidationError(
                f"Agent {agent.name} does not handle {complaint.service_type.value}",
                details={"agent_id": agent_id},
            )
        if complaint.assigned_agent_id == agent_id:
            raise ValidationError(f"Complaint is already assigned to {agent.name}")

        new_status = state_machine.target_status(complaint.status, ComplaintAction.ASSIGN)
        values = workflow_state_columns(SettledState(new_status))
        values["assigned_agent_id"] = agent.id

        if complaint.supervisor_id is None:
            if actor.has_role(UserRole.SUPERVISOR):
                values["supervisor_id"] = actor.id
            else:
                values["supervisor_id"] = self.resolver.resolve_supervisor(complaint.service_type)

        reassigned = complaint.assigned_agent_id is not None
        entry = LedgerEntry(
            actor=actor,
            action=f"{'Reassigned' if reassigned else 'Assigned'} to {agent.name}",
            notes=notes,
            assigned_agent_id=agent.id,
            assigned_agent_name=agent.name,
            metadata={"previous_agent_id": complaint.assigned_agent_id} if reassigned else None,
        )
        if new_status != complaint.status:
            entry.old_status, entry.new_status = complaint.status, new_status

        return self._commit_transition(complaint, values, entry)

    def direct_reject(self, complaint_id: str, actor: Actor, notes: str) -> ComplaintDB:
        """Summary rejection during triage; review notes are mandatory."""
        notes = _require_text(notes, "notes")
        complaint = self._guard(complaint_id, actor, ComplaintAction.DIRECT_REJECT)
        new_status = state_machine.target_status(complaint.status, ComplaintAction.DIRECT_REJECT)

        values = workflow_state_columns(SettledState(new_status))
        values["supervisor_review_notes"] = notes
        if complaint.supervisor_id is None and actor.has_role(UserRole.SUPERVISOR):
            values["supervisor_id"] = actor.id

        return self._commit_transition(complaint, values, LedgerEntry(
            actor=actor,
            action="Complaint rejected",
            notes=notes,
            old_status=complaint.status,
            new_status=new_status,
        ))

    # =========================================================================
    # AGENT WORK
    # =========================================================================

    def add_note(
        self,
        complaint_id: str,
        actor: Actor,
        note: str,
        action_label: Optional[str] = None,
    ) -> ComplaintDB:
        """
        Record a note without changing status.

        Agent notes are follow-ups and are only taken while IN_PROGRESS;
        they are also appended to agent_follow_up_notes.
        """
        note = _require_text(note, "note")
        complaint = self._guard(complaint_id, actor, ComplaintAction.ADD_NOTE)

        values: Dict[str, Any] = {}
        is_agent = actor.has_role(UserRole.AGENT)
        if is_agent:
            if complaint.status != ComplaintStatus.IN_PROGRESS:
                raise InvalidTransitionError(
                    f"Follow-up notes are only accepted while IN_PROGRESS, not {complaint.status.value}",
                    details={"action": ComplaintAction.ADD_NOTE.value, "status": complaint.status.value},
                )
            existing = complaint.agent_follow_up_notes
            values["agent_follow_up_notes"] = f"{existing}\n\n{note}" if existing else note

        default_label = "Follow-up note added" if is_agent else "Note added"
        return self._commit_transition(complaint, values, LedgerEntry(
            actor=actor,
            action=(action_label or default_label).strip()[:200],
            notes=note,
        ))

    def request_status_change(
        self,
        complaint_id: str,
        actor: Actor,
        target_status: ComplaintStatus,
        notes: str,
        attachment: Optional[AttachmentRef] = None,
    ) -> ComplaintDB:
        """Agent proposes RESOLVED or REJECTED; supervisor must approve."""
        try:
            target_status = ComplaintStatus(target_status)
        except ValueError:
            raise ValidationError(f"Unknown status: {target_status}", details={"field": "target_status"})
        if target_status not in CLOSURE_STATUSES:
            raise ValidationError(
                "Closure requests may only target RESOLVED or REJECTED",
                details={"field": "target_status"},
            )
        notes = _require_text(notes, "notes")

        complaint = self._guard(complaint_id, actor, ComplaintAction.REQUEST_STATUS_CHANGE)
        new_status = state_machine.target_status(complaint.status, ComplaintAction.REQUEST_STATUS_CHANGE)

        pending = PendingApproval(target_status=target_status, notes=notes, attachment=attachment)
        values = workflow_state_columns(AwaitingApprovalState(pending=pending))

        return self._commit_transition(complaint, values, LedgerEntry(
            actor=actor,
            action=f"Status change to {target_status.value} requested",
            notes=notes,
            old_status=complaint.status,
            new_status=new_status,
            metadata={
                "requested_status": target_status.value,
                "attachment_id": attachment.id if attachment else None,
            },
        ))

    # =========================================================================
    # SUPERVISOR REVIEW
    # =========================================================================

    def approve_or_reject_request(
        self,
        complaint_id: str,
        actor: Actor,
        approve: bool,
        notes: Optional[str] = None,
    ) -> ComplaintDB:
        """
        Decide a pending closure request.

        Approve: status becomes the requested terminal status and the
        agent's attachment joins the complaint. Reject: back to
        IN_PROGRESS, the reason is mandatory and the attachment is dropped.
        Either way the request fields are cleared.
        """
        if approve:
            notes = notes.strip() if notes and notes.strip() else None
        else:
            notes = _require_text(notes, "notes")

        complaint = self._guard(complaint_id, actor, ComplaintAction.REVIEW_REQUEST)
        state = workflow_state_of(complaint)
        pending = state.pending

        new_status = state_machine.target_status(
            complaint.status,
            ComplaintAction.REVIEW_REQUEST,
            requested=pending.target_status,
            approve=approve,
        )
        values = workflow_state_columns(SettledState(new_status))
        values["supervisor_review_notes"] = notes if notes is not None else pending.notes

        if approve and pending.attachment is not None:
            values["attachments"] = list(complaint.attachments or []) + [pending.attachment.to_dict()]

        return self._commit_transition(complaint, values, LedgerEntry(
            actor=actor,
            action="Closure request approved" if approve else "Closure request rejected",
            notes=notes,
            old_status=complaint.status,
            new_status=new_status,
            metadata={"requested_status": pending.target_status.value, "approved": bool(approve)},
        ))

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    def _normalize_patch(self, complaint: ComplaintDB, partial: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(partial) - ADMIN_EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {sorted(unknown)}", details={"fields": sorted(unknown)})

        patch = dict(partial)
        try:
            if "status" in patch:
                patch["status"] = ComplaintStatus(patch["status"])
            if "service_type" in patch:
                patch["service_type"] = ServiceType(patch["service_type"])
        except ValueError as e:
            raise ValidationError(str(e))

        if "is_anonymous" in patch and not isinstance(patch["is_anonymous"], bool):
            raise ValidationError("is_anonymous must be true or false", details={"field": "is_anonymous"})
        for name in TEXT_FIELDS + ("assigned_agent_id", "supervisor_id"):
            if patch.get(name) is not None and not isinstance(patch[name], str):
                raise ValidationError(f"{name} must be text or null", details={"field": name})
        if "description" in patch:
            patch["description"] = _require_text(patch["description"], "description")
        if "incident_time" in patch and not isinstance(patch["incident_time"], datetime):
            raise ValidationError("incident_time must be a datetime", details={"field": "incident_time"})
        if "custom_field_data" in patch and not isinstance(patch["custom_field_data"], dict):
            raise ValidationError("custom_field_data must be a mapping", details={"field": "custom_field_data"})

        if patch.get("status") == ComplaintStatus.AWAITING_SUPERVISOR_APPROVAL:
            raise ValidationError(
                "AWAITING_SUPERVISOR_APPROVAL can only be entered through a closure request",
                details={"field": "status"},
            )

        for field_name, role in (("assigned_agent_id", UserRole.AGENT), ("supervisor_id", UserRole.SUPERVISOR)):
            if patch.get(field_name):
                user = self.resolver.get_user(patch[field_name])
                if user is None:
                    raise NotFoundError(f"User {patch[field_name]} not found", details={"field": field_name})
                if user.role != role:
                    raise ValidationError(
                        f"{field_name} must reference a {role.value.lower()}",
                        details={"field": field_name},
                    )

        anonymous = patch.get("is_anonymous", complaint.is_anonymous)
        if anonymous:
            for name in REPORTER_FIELDS:
                if patch.get(name):
                    raise ValidationError("Anonymous complaints carry no reporter details", details={"field": name})
                patch[name] = None
        elif not (patch.get("reporter_name", complaint.reporter_name) or "").strip():
            raise ValidationError("Named complaints require reporter_name", details={"field": "reporter_name"})

        final_status = patch.get("status", complaint.status)
        final_agent = patch.get("assigned_agent_id", complaint.assigned_agent_id)
        if final_agent and final_status in (ComplaintStatus.NEW, ComplaintStatus.UNDER_VERIFICATION):
            raise ValidationError(
                "An assigned agent requires status IN_PROGRESS or later; clear assigned_agent_id first",
                details={"field": "assigned_agent_id"},
            )
        return patch

    def update_complaint(
        self,
        complaint_id: str,
        partial: Dict[str, Any],
        actor: Actor,
        action_description: str,
        note_for_history: Optional[str] = None,
    ) -> ComplaintDB:
        """
        Administrative catch-all edit, including forced status overrides.

        Leaving AWAITING_SUPERVISOR_APPROVAL by override discards the
        pending request.
        """
        action_description = _require_text(action_description, "action_description")
        if not partial:
            raise ValidationError("Nothing to update")

        complaint = self._guard(complaint_id, actor, ComplaintAction.ADMIN_EDIT)
        values = self._normalize_patch(complaint, partial)

        entry = LedgerEntry(
            actor=actor,
            action=action_description[:200],
            notes=note_for_history,
            metadata={"changed_fields": sorted(partial)},
        )

        new_status = values.pop("status", None)
        if new_status is not None and new_status != complaint.status:
            values.update(workflow_state_columns(SettledState(new_status)))
            entry.old_status, entry.new_status = complaint.status, new_status

        new_agent = values.get("assigned_agent_id")
        if new_agent and new_agent != complaint.assigned_agent_id:
            entry.assigned_agent_id = new_agent
            entry.assigned_agent_name = self.resolver.get_user(new_agent).name

        return self._commit_transition(complaint, values, entry)

    def delete_complaint(self, complaint_id: str, actor: Actor) -> None:
        """Remove a complaint together with its entire ledger."""
        complaint = self._guard(complaint_id, actor, ComplaintAction.DELETE)
        tracking_id = complaint.tracking_id
        try:
            self.repository.delete(complaint.id, complaint.version)
            self.db.commit()
        except ConflictError:
            self.db.rollback()
            logger.warning(f"Conflict deleting {tracking_id}")
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Storage failure deleting {tracking_id}: {e}")
            raise InternalError("Storage failure while deleting complaint") from e
        logger.info(f"{tracking_id}: deleted by {actor.kind.value}:{actor.id or actor.name}")
