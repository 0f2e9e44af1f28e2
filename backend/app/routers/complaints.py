"""
Complaint API Routes

Endpoints for the complaint lifecycle.
Public intake and tracking lookup; authenticated triage, assignment,
follow-up, closure approval and administration.

All workflow rejections raise ComplaintWorkflowError subclasses, which
the application maps to HTTP responses in one place (see main.py).
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.orm import Session

from ..auth import get_current_actor, get_optional_user
from ..database import get_db
from ..models.db_models import ComplaintDB, ComplaintHistoryDB, ComplaintStatus, ServiceType, UserDB
from ..models.workflow_models import (
    Actor, AttachmentRef, ComplaintFilter, ComplaintIntake, workflow_state_of, AwaitingApprovalState,
)
from ..services.complaints import (
    ComplaintWorkflowService, LocalAttachmentStore, ValidationError, available_actions,
)


router = APIRouter(prefix="/complaints", tags=["complaints"])


def get_attachment_store() -> LocalAttachmentStore:
    """Dependency - attachment storage collaborator."""
    return LocalAttachmentStore()


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class AttachmentModel(BaseModel):
    """Reference to an uploaded attachment."""
    id: str
    file_name: str
    content_type: str
    size: int = 0
    sha256: Optional[str] = None

    def to_ref(self) -> AttachmentRef:
        return AttachmentRef(
            id=self.id,
            file_name=self.file_name,
            content_type=self.content_type,
            size=self.size,
            sha256=self.sha256,
        )


class CreateComplaintRequest(BaseModel):
    """Public complaint submission."""
    is_anonymous: bool = Field(default=False, description="Submit without reporter details")
    reporter_name: Optional[str] = Field(None, max_length=100)
    reporter_email: Optional[EmailStr] = None
    reporter_whatsapp: Optional[str] = Field(None, max_length=20)
    service_type: ServiceType = Field(..., description="Service category the complaint concerns")
    incident_time: datetime = Field(..., description="Estimated time of the incident")
    description: str = Field(..., min_length=1)
    custom_field_data: Dict[str, Any] = Field(default_factory=dict, description="Configured form field answers")
    attachments: List[AttachmentModel] = Field(default_factory=list)

    @field_validator('incident_time')
    @classmethod
    def normalize_incident_time(cls, v):
        return _naive_utc(v)


class AssignRequest(BaseModel):
    agent_id: str
    notes: Optional[str] = None


class VerifyRequest(BaseModel):
    notes: Optional[str] = None


class NoteRequest(BaseModel):
    note: str
    action_label: Optional[str] = Field(None, max_length=200)


class StatusChangeRequest(BaseModel):
    """Agent's proposed closure."""
    target_status: ComplaintStatus = Field(..., description="RESOLVED or REJECTED")
    notes: str
    attachment: Optional[AttachmentModel] = None


class ReviewRequest(BaseModel):
    """Supervisor decision on a pending closure."""
    approve: bool
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    notes: str


class UpdateComplaintRequest(BaseModel):
    """Administrative patch. Only fields present in `changes` are applied."""
    changes: Dict[str, Any]
    action_description: str = Field(..., max_length=200)
    note_for_history: Optional[str] = None

    @field_validator('changes')
    @classmethod
    def parse_incident_time(cls, v):
        if isinstance(v.get("incident_time"), str):
            try:
                v["incident_time"] = _naive_utc(datetime.fromisoformat(v["incident_time"]))
            except ValueError:
                raise ValueError("incident_time must be an ISO-8601 datetime")
        return v


class HistoryEntryResponse(BaseModel):
    id: str
    timestamp: str
    actor_kind: str
    actor_user_id: Optional[str] = None
    actor_name: str
    actor_role: Optional[str] = None
    action: str
    notes: Optional[str] = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    assigned_agent_id: Optional[str] = None
    assigned_agent_name: Optional[str] = None


class PendingApprovalResponse(BaseModel):
    target_status: str
    notes: str
    attachment: Optional[AttachmentModel] = None


class ComplaintResponse(BaseModel):
    """Full complaint as seen by internal users."""
    id: str
    tracking_id: str
    is_anonymous: bool
    reporter_name: Optional[str] = None
    reporter_email: Optional[str] = None
    reporter_whatsapp: Optional[str] = None
    service_type: str
    incident_time: str
    description: str
    custom_field_data: Dict[str, Any]
    attachments: List[AttachmentModel]
    status: str
    assigned_agent_id: Optional[str] = None
    assigned_agent_name: Optional[str] = None
    supervisor_id: Optional[str] = None
    supervisor_name: Optional[str] = None
    agent_follow_up_notes: Optional[str] = None
    pending_approval: Optional[PendingApprovalResponse] = None
    supervisor_review_notes: Optional[str] = None
    version: int
    created_at: str
    updated_at: str
    allowed_actions: List[str] = []
    history: Optional[List[HistoryEntryResponse]] = None


class ComplaintListResponse(BaseModel):
    complaints: List[ComplaintResponse]
    total: int
    page: int
    page_size: int
    pages: int


class PublicHistoryEntryResponse(BaseModel):
    timestamp: str
    actor_name: str
    actor_role: Optional[str] = None
    action: str
    notes: Optional[str] = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None


class PublicComplaintResponse(BaseModel):
    """Tracking lookup - never includes reporter contact details."""
    tracking_id: str
    service_type: str
    status: str
    created_at: str
    updated_at: str
    history: List[PublicHistoryEntryResponse]


class AgentResponse(BaseModel):
    id: str
    name: str
    username: str


# =============================================================================
# SERIALIZATION
# =============================================================================

def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime to ISO string."""
    if dt is None:
        return None
    return dt.isoformat()


def _enum_value(value) -> Optional[str]:
    return value.value if value is not None else None


def _history_to_response(row: ComplaintHistoryDB) -> HistoryEntryResponse:
    return HistoryEntryResponse(
        id=row.id,
        timestamp=_format_datetime(row.created_at),
        actor_kind=row.actor_kind.value,
        actor_user_id=row.actor_user_id,
        actor_name=row.actor_name,
        actor_role=_enum_value(row.actor_role),
        action=row.action,
        notes=row.notes,
        old_status=_enum_value(row.old_status),
        new_status=_enum_value(row.new_status),
        assigned_agent_id=row.assigned_agent_id,
        assigned_agent_name=row.assigned_agent_name,
    )


def _complaint_to_response(
    complaint: ComplaintDB,
    actor: Optional[Actor] = None,
    history: Optional[List[ComplaintHistoryDB]] = None,
) -> ComplaintResponse:
    pending = None
    state = workflow_state_of(complaint)
    if isinstance(state, AwaitingApprovalState):
        attachment = state.pending.attachment
        pending = PendingApprovalResponse(
            target_status=state.pending.target_status.value,
            notes=state.pending.notes,
            attachment=AttachmentModel(**attachment.to_dict()) if attachment else None,
        )

    return ComplaintResponse(
        id=complaint.id,
        tracking_id=complaint.tracking_id,
        is_anonymous=complaint.is_anonymous,
        reporter_name=complaint.reporter_name,
        reporter_email=complaint.reporter_email,
        reporter_whatsapp=complaint.reporter_whatsapp,
        service_type=complaint.service_type.value,
        incident_time=_format_datetime(complaint.incident_time),
        description=complaint.description,
        custom_field_data=complaint.custom_field_data or {},
        attachments=[AttachmentModel(**a) for a in complaint.attachments or []],
        status=complaint.status.value,
        assigned_agent_id=complaint.assigned_agent_id,
        assigned_agent_name=complaint.assigned_agent.name if complaint.assigned_agent else None,
        supervisor_id=complaint.supervisor_id,
        supervisor_name=complaint.supervisor.name if complaint.supervisor else None,
        agent_follow_up_notes=complaint.agent_follow_up_notes,
        pending_approval=pending,
        supervisor_review_notes=complaint.supervisor_review_notes,
        version=complaint.version,
        created_at=_format_datetime(complaint.created_at),
        updated_at=_format_datetime(complaint.updated_at),
        allowed_actions=[a.value for a in available_actions(actor, complaint)] if actor else [],
        history=[_history_to_response(h) for h in history] if history is not None else None,
    )


# =============================================================================
# PUBLIC ENDPOINTS
# =============================================================================

@router.post("", response_model=ComplaintResponse, status_code=status.HTTP_201_CREATED)
async def create_complaint(
    request: CreateComplaintRequest,
    db: Session = Depends(get_db),
    store: LocalAttachmentStore = Depends(get_attachment_store),
    current_user: Optional[UserDB] = Depends(get_optional_user),
):
    """
    Submit a new complaint.

    Public - no authentication required. Returns the tracking id the
    reporter uses to follow progress.
    """
    for attachment in request.attachments:
        if not store.exists(attachment.id):
            raise ValidationError(f"Unknown attachment {attachment.id}", details={"field": "attachments"})

    intake = ComplaintIntake(
        service_type=request.service_type,
        incident_time=request.incident_time,
        description=request.description,
        is_anonymous=request.is_anonymous,
        reporter_name=request.reporter_name,
        reporter_email=str(request.reporter_email) if request.reporter_email else None,
        reporter_whatsapp=request.reporter_whatsapp,
        custom_field_data=request.custom_field_data,
        attachments=[a.to_ref() for a in request.attachments],
    )
    actor = Actor.from_user(current_user) if current_user else None

    service = ComplaintWorkflowService(db)
    complaint = service.create_complaint(intake, actor=actor)
    return _complaint_to_response(complaint, history=service.get_history(complaint.id))


@router.post("/attachments", response_model=AttachmentModel, status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    file: UploadFile = File(...),
    store: LocalAttachmentStore = Depends(get_attachment_store),
):
    """Store attachment bytes and return the reference to submit with a complaint."""
    data = await file.read()
    ref = store.store(data, file.filename or "", file.content_type or "application/octet-stream")
    return AttachmentModel(**ref.to_dict())


@router.get("/track/{tracking_id}", response_model=PublicComplaintResponse)
async def track_complaint(tracking_id: str, db: Session = Depends(get_db)):
    """
    Public tracking lookup by tracking id.

    Returns status, service type, timestamps and a de-identified history.
    """
    view = ComplaintWorkflowService(db).get_public_view(tracking_id)
    return PublicComplaintResponse(
        tracking_id=view.tracking_id,
        service_type=view.service_type.value,
        status=view.status.value,
        created_at=_format_datetime(view.created_at),
        updated_at=_format_datetime(view.updated_at),
        history=[
            PublicHistoryEntryResponse(
                timestamp=_format_datetime(h.timestamp),
                actor_name=h.actor_name,
                actor_role=_enum_value(h.actor_role),
                action=h.action,
                notes=h.notes,
                old_status=_enum_value(h.old_status),
                new_status=_enum_value(h.new_status),
            )
            for h in view.history
        ],
    )


# =============================================================================
# AUTHENTICATED READS
# =============================================================================

@router.get("", response_model=ComplaintListResponse)
async def list_complaints(
    status_filter: Optional[ComplaintStatus] = Query(None, alias="status"),
    service_type: Optional[ServiceType] = Query(None),
    assigned_agent_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """List complaints visible to the caller, newest first."""
    result = ComplaintWorkflowService(db).list_complaints(
        actor,
        ComplaintFilter(
            status=status_filter,
            service_type=service_type,
            assigned_agent_id=assigned_agent_id,
            search=search,
        ),
        page=page,
        page_size=page_size,
    )
    return ComplaintListResponse(
        complaints=[_complaint_to_response(c, actor) for c in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        pages=result.pages,
    )


@router.get("/{complaint_id}", response_model=ComplaintResponse)
async def get_complaint(
    complaint_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Complaint detail with full history, newest first."""
    service = ComplaintWorkflowService(db)
    complaint = service.get_complaint(complaint_id, actor)
    return _complaint_to_response(complaint, actor, history=service.get_history(complaint.id))


@router.get("/{complaint_id}/eligible-agents", response_model=List[AgentResponse])
async def eligible_agents(
    complaint_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Agents handling the complaint's service type."""
    agents = ComplaintWorkflowService(db).eligible_agents(complaint_id, actor)
    return [AgentResponse(id=a.id, name=a.name, username=a.username) for a in agents]


@router.get("/{complaint_id}/attachments/{attachment_id}")
async def download_attachment(
    complaint_id: str,
    attachment_id: str,
    db: Session = Depends(get_db),
    store: LocalAttachmentStore = Depends(get_attachment_store),
    actor: Actor = Depends(get_current_actor),
):
    """Attachment bytes, for users who may view the complaint."""
    ref = ComplaintWorkflowService(db).get_attachment(complaint_id, attachment_id, actor)
    return Response(
        content=store.read(ref.id),
        media_type=ref.content_type,
        headers={"Content-Disposition": f'attachment; filename="{ref.file_name}"'},
    )


# =============================================================================
# WORKFLOW TRANSITIONS
# =============================================================================

@router.post("/{complaint_id}/verify", response_model=ComplaintResponse)
async def begin_verification(
    complaint_id: str,
    request: VerifyRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Supervisor/admin takes a NEW complaint into verification."""
    complaint = ComplaintWorkflowService(db).begin_verification(complaint_id, actor, notes=request.notes)
    return _complaint_to_response(complaint, actor)


@router.post("/{complaint_id}/assign", response_model=ComplaintResponse)
async def assign_agent(
    complaint_id: str,
    request: AssignRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Assign or reassign an agent; the complaint moves to IN_PROGRESS."""
    complaint = ComplaintWorkflowService(db).assign_agent(
        complaint_id, request.agent_id, actor, notes=request.notes,
    )
    return _complaint_to_response(complaint, actor)


@router.post("/{complaint_id}/notes", response_model=ComplaintResponse)
async def add_note(
    complaint_id: str,
    request: NoteRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Record a note; status is unchanged."""
    complaint = ComplaintWorkflowService(db).add_note(
        complaint_id, actor, request.note, action_label=request.action_label,
    )
    return _complaint_to_response(complaint, actor)


@router.post("/{complaint_id}/status-request", response_model=ComplaintResponse)
async def request_status_change(
    complaint_id: str,
    request: StatusChangeRequest,
    db: Session = Depends(get_db),
    store: LocalAttachmentStore = Depends(get_attachment_store),
    actor: Actor = Depends(get_current_actor),
):
    """Assigned agent proposes RESOLVED or REJECTED for supervisor approval."""
    attachment = None
    if request.attachment is not None:
        if not store.exists(request.attachment.id):
            raise ValidationError(f"Unknown attachment {request.attachment.id}", details={"field": "attachment"})
        attachment = request.attachment.to_ref()

    complaint = ComplaintWorkflowService(db).request_status_change(
        complaint_id, actor, request.target_status, request.notes, attachment=attachment,
    )
    return _complaint_to_response(complaint, actor)


@router.post("/{complaint_id}/status-request/review", response_model=ComplaintResponse)
async def review_status_request(
    complaint_id: str,
    request: ReviewRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Supervisor approves or rejects the pending closure request."""
    complaint = ComplaintWorkflowService(db).approve_or_reject_request(
        complaint_id, actor, request.approve, request.notes,
    )
    return _complaint_to_response(complaint, actor)


@router.post("/{complaint_id}/reject", response_model=ComplaintResponse)
async def direct_reject(
    complaint_id: str,
    request: RejectRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Summary rejection of a complaint still in triage."""
    complaint = ComplaintWorkflowService(db).direct_reject(complaint_id, actor, request.notes)
    return _complaint_to_response(complaint, actor)


# =============================================================================
# ADMINISTRATION
# =============================================================================

@router.patch("/{complaint_id}", response_model=ComplaintResponse)
async def update_complaint(
    complaint_id: str,
    request: UpdateComplaintRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Administrative edit, including forced status overrides."""
    complaint = ComplaintWorkflowService(db).update_complaint(
        complaint_id,
        request.changes,
        actor,
        request.action_description,
        note_for_history=request.note_for_history,
    )
    return _complaint_to_response(complaint, actor)


@router.delete("/{complaint_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_complaint(
    complaint_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Delete a complaint and its entire history. Admin only."""
    ComplaintWorkflowService(db).delete_complaint(complaint_id, actor)
