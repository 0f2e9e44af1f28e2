"""
History Ledger

Append-only, per-complaint ordered log of actions.

Core Principles:
1. The ledger records what happened. It never decides.
2. Append-only - no updates, no deletes. Rows leave only with their complaint.
3. append() never commits; the workflow engine commits the ledger row in
   the same unit of work as the complaint mutation it describes.
"""
from datetime import datetime
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models.db_models import ActorKind, ComplaintHistoryDB
from ...models.workflow_models import (
    LedgerEntry, PublicHistoryEntry, new_id,
)


class HistoryLedger:
    """Writes and reads complaint_history rows."""

    def __init__(self, db: Session):
        self.db = db

    def next_sequence(self, complaint_id: str) -> int:
        current = self.db.query(func.max(ComplaintHistoryDB.sequence)).filter(
            ComplaintHistoryDB.complaint_id == complaint_id
        ).scalar()
        return (current or 0) + 1

    def append(self, complaint_id: str, entry: LedgerEntry) -> ComplaintHistoryDB:
        """
        Stage one ledger row for the complaint.

        The (complaint_id, sequence) unique constraint turns two writers
        racing on the same complaint into an IntegrityError at flush.
        """
        actor = entry.actor
        row = ComplaintHistoryDB(
            id=new_id(),
            complaint_id=complaint_id,
            sequence=self.next_sequence(complaint_id),
            actor_kind=actor.kind,
            actor_user_id=actor.id if actor.kind == ActorKind.USER else None,
            actor_name=actor.name,
            actor_role=actor.role,
            action=entry.action,
            notes=entry.notes,
            old_status=entry.old_status,
            new_status=entry.new_status,
            assigned_agent_id=entry.assigned_agent_id,
            assigned_agent_name=entry.assigned_agent_name,
            event_metadata=entry.metadata,
            created_at=entry.timestamp or datetime.utcnow(),
        )
        self.db.add(row)
        self.db.flush()  # Surface constraint violations before commit
        return row

    def list_for(self, complaint_id: str) -> List[ComplaintHistoryDB]:
        """All entries for a complaint, oldest first."""
        return (
            self.db.query(ComplaintHistoryDB)
            .filter(ComplaintHistoryDB.complaint_id == complaint_id)
            .order_by(ComplaintHistoryDB.created_at.asc(), ComplaintHistoryDB.sequence.asc())
            .all()
        )

    @staticmethod
    def to_public(row: ComplaintHistoryDB) -> PublicHistoryEntry:
        """Strip user ids for the public tracking view."""
        return PublicHistoryEntry(
            timestamp=row.created_at,
            actor_name=row.actor_name,
            actor_role=row.actor_role,
            action=row.action,
            notes=row.notes,
            old_status=row.old_status,
            new_status=row.new_status,
        )
