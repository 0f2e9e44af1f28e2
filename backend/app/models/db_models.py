"""
Complaint Tracker - SQLAlchemy ORM Models
PostgreSQL database models for persistent storage
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, DateTime, Text, JSON, ForeignKey, Boolean,
    Enum as SQLEnum, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from ..database import Base


# =============================================================================
# ENUMS FOR THE COMPLAINT WORKFLOW
# =============================================================================

class UserRole(str, Enum):
    """Roles of internal users. PUBLIC is never stored on a user row."""
    PUBLIC = "PUBLIC"
    ADMIN = "ADMIN"
    SUPERVISOR = "SUPERVISOR"
    AGENT = "AGENT"
    MANAGEMENT = "MANAGEMENT"


class ServiceType(str, Enum):
    """Service categories used for routing complaints."""
    IMMIGRATION = "IMMIGRATION"
    CONSULAR = "CONSULAR"
    SOCIO_CULTURAL = "SOCIO_CULTURAL"
    ECONOMIC = "ECONOMIC"
    OTHER = "OTHER"


class ComplaintStatus(str, Enum):
    """States in the complaint lifecycle state machine."""
    NEW = "NEW"
    UNDER_VERIFICATION = "UNDER_VERIFICATION"
    IN_PROGRESS = "IN_PROGRESS"
    AWAITING_SUPERVISOR_APPROVAL = "AWAITING_SUPERVISOR_APPROVAL"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"


class ActorKind(str, Enum):
    """Who performed a ledger action."""
    PUBLIC = "PUBLIC"
    SYSTEM = "SYSTEM"
    USER = "USER"


class UserDB(Base):
    """
    Internal user account (admin, supervisor, agent, management).
    The workflow core only reads users; it never creates or edits them.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    username = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, index=True)

    # Routing - list of ServiceType values, meaningful for supervisors and agents
    service_types_handled = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def handles(self, service_type: ServiceType) -> bool:
        """True if this user's routing list includes the service type."""
        handled = self.service_types_handled or []
        return ServiceType(service_type).value in handled


# =============================================================================
# COMPLAINT MODELS
# =============================================================================

class ComplaintDB(Base):
    """
    A public grievance and its workflow state.
    Mutated only through the workflow engine.
    """
    __tablename__ = "complaints"

    id = Column(String(36), primary_key=True)  # UUID
    tracking_id = Column(String(20), nullable=False, unique=True, index=True)  # PEN-2025-001

    # Reporter - all null when anonymous
    is_anonymous = Column(Boolean, nullable=False, default=False)
    reporter_name = Column(String(100), nullable=True)
    reporter_email = Column(String(255), nullable=True)
    reporter_whatsapp = Column(String(20), nullable=True)

    # Narrative
    service_type = Column(SQLEnum(ServiceType), nullable=False, index=True)
    incident_time = Column(DateTime, nullable=False)
    description = Column(Text, nullable=False)
    custom_field_data = Column(JSON, nullable=False, default=dict)  # Opaque {field_id: value}
    attachments = Column(JSON, nullable=False, default=list)  # List of AttachmentRef dicts

    # State Machine
    status = Column(SQLEnum(ComplaintStatus), nullable=False, default=ComplaintStatus.NEW, index=True)
    assigned_agent_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    supervisor_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # Workflow-transient fields
    agent_follow_up_notes = Column(Text, nullable=True)
    requested_status_change = Column(SQLEnum(ComplaintStatus), nullable=True)  # Set only while awaiting approval
    status_change_request_notes = Column(Text, nullable=True)
    pending_attachment = Column(JSON, nullable=True)  # Agent attachment awaiting approval
    supervisor_review_notes = Column(Text, nullable=True)

    # Compare-and-swap guard, bumped by every accepted transition
    version = Column(Integer, nullable=False, default=1)

    # Timestamps - updated_at is set explicitly by the workflow engine
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    assigned_agent = relationship("UserDB", foreign_keys=[assigned_agent_id])
    supervisor = relationship("UserDB", foreign_keys=[supervisor_id])
    history = relationship(
        "ComplaintHistoryDB",
        back_populates="complaint",
        cascade="all, delete-orphan",
        order_by="ComplaintHistoryDB.sequence",
    )


class ComplaintHistoryDB(Base):
    """
    Immutable ledger of actions taken against a complaint.
    Append-only - rows are removed only with their complaint.
    """
    __tablename__ = "complaint_history"
    __table_args__ = (
        UniqueConstraint("complaint_id", "sequence", name="uq_complaint_history_sequence"),
        Index("ix_complaint_history_complaint_created", "complaint_id", "created_at"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    complaint_id = Column(String(36), ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # 1-based position within the complaint's ledger

    # Actor (tagged)
    actor_kind = Column(SQLEnum(ActorKind), nullable=False)
    actor_user_id = Column(String(36), nullable=True, index=True)  # No FK - ledger outlives users
    actor_name = Column(String(100), nullable=False)
    actor_role = Column(SQLEnum(UserRole), nullable=True)

    # What happened
    action = Column(String(200), nullable=False)
    notes = Column(Text, nullable=True)
    old_status = Column(SQLEnum(ComplaintStatus), nullable=True)
    new_status = Column(SQLEnum(ComplaintStatus), nullable=True)
    assigned_agent_id = Column(String(36), nullable=True)
    assigned_agent_name = Column(String(100), nullable=True)

    # Event Metadata (renamed from 'metadata' which is reserved in SQLAlchemy)
    event_metadata = Column(JSON, nullable=True)

    # Timestamps (immutable)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    complaint = relationship("ComplaintDB", back_populates="history")
