"""Complaint Tracker - Data Models"""
from .db_models import (
    # Enums
    UserRole, ServiceType, ComplaintStatus, ActorKind,
    # Tables
    UserDB, ComplaintDB, ComplaintHistoryDB,
)
from .workflow_models import (
    Actor, AttachmentRef, ComplaintIntake, PendingApproval, SettledState, AwaitingApprovalState,
    WorkflowState, LedgerEntry, ComplaintFilter, VisibilityScope, ComplaintPage,
    PublicComplaintView, PublicHistoryEntry,
)

__all__ = [
    "UserRole", "ServiceType", "ComplaintStatus", "ActorKind",
    "UserDB", "ComplaintDB", "ComplaintHistoryDB",
    "Actor", "AttachmentRef", "ComplaintIntake", "PendingApproval", "SettledState", "AwaitingApprovalState",
    "WorkflowState", "LedgerEntry", "ComplaintFilter", "VisibilityScope", "ComplaintPage",
    "PublicComplaintView", "PublicHistoryEntry",
]
