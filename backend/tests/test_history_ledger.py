"""
Tests for the History Ledger.

1. Per-complaint sequence numbers
2. Tagged actor columns
3. Oldest-first listing with sequence tie-break
4. Sequence uniqueness enforced by the database
5. Public projection drops user ids
"""
from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from app.models.db_models import ActorKind, ComplaintHistoryDB, ComplaintStatus, UserRole
from app.models.workflow_models import Actor, LedgerEntry, new_id
from app.services.complaints import HistoryLedger


WHEN = datetime(2025, 3, 1, 12, 0, 0)


class TestAppend:

    def test_sequence_starts_at_one_per_complaint(self, db_session, insert_complaint_row):
        a = insert_complaint_row("PEN-2025-001")
        b = insert_complaint_row("PEN-2025-002")
        ledger = HistoryLedger(db_session)

        first = ledger.append(a.id, LedgerEntry(actor=Actor.system(), action="one", timestamp=WHEN))
        second = ledger.append(a.id, LedgerEntry(actor=Actor.system(), action="two", timestamp=WHEN))
        other = ledger.append(b.id, LedgerEntry(actor=Actor.system(), action="one", timestamp=WHEN))
        db_session.commit()

        assert (first.sequence, second.sequence, other.sequence) == (1, 2, 1)
        assert len(ledger.list_for(a.id)) == 2

    def test_user_actor_columns(self, db_session, insert_complaint_row):
        complaint = insert_complaint_row("PEN-2025-001")
        actor = Actor.user("u-9", "Sam Supervisor", UserRole.SUPERVISOR)

        row = HistoryLedger(db_session).append(complaint.id, LedgerEntry(
            actor=actor,
            action="Verification started",
            old_status=ComplaintStatus.NEW,
            new_status=ComplaintStatus.UNDER_VERIFICATION,
            metadata={"k": "v"},
            timestamp=WHEN,
        ))
        db_session.commit()

        assert row.actor_kind == ActorKind.USER
        assert row.actor_user_id == "u-9"
        assert row.actor_name == "Sam Supervisor"
        assert row.actor_role == UserRole.SUPERVISOR
        assert row.event_metadata == {"k": "v"}
        assert row.created_at == WHEN

    def test_public_actor_has_no_user_id(self, db_session, insert_complaint_row):
        complaint = insert_complaint_row("PEN-2025-001")
        row = HistoryLedger(db_session).append(complaint.id, LedgerEntry(
            actor=Actor.public("Rina Reporter"),
            action="Complaint created",
            new_status=ComplaintStatus.NEW,
        ))
        assert row.actor_kind == ActorKind.PUBLIC
        assert row.actor_user_id is None
        assert row.actor_role is None

    def test_duplicate_sequence_rejected(self, db_session, insert_complaint_row):
        complaint = insert_complaint_row("PEN-2025-001")
        HistoryLedger(db_session).append(complaint.id, LedgerEntry(actor=Actor.system(), action="one"))
        db_session.commit()

        db_session.add(ComplaintHistoryDB(
            id=new_id(),
            complaint_id=complaint.id,
            sequence=1,
            actor_kind=ActorKind.SYSTEM,
            actor_name="System",
            action="duplicate",
            created_at=WHEN,
        ))
        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

    def test_old_status_requires_new_status(self):
        with pytest.raises(ValueError):
            LedgerEntry(actor=Actor.system(), action="bad", old_status=ComplaintStatus.NEW)


class TestListing:

    def test_oldest_first_with_sequence_tie_break(self, db_session, insert_complaint_row):
        complaint = insert_complaint_row("PEN-2025-001")
        ledger = HistoryLedger(db_session)
        for label in ("a", "b", "c"):
            ledger.append(complaint.id, LedgerEntry(actor=Actor.system(), action=label, timestamp=WHEN))
        db_session.commit()

        assert [row.action for row in ledger.list_for(complaint.id)] == ["a", "b", "c"]

    def test_to_public_strips_ids(self, db_session, insert_complaint_row):
        complaint = insert_complaint_row("PEN-2025-001")
        row = HistoryLedger(db_session).append(complaint.id, LedgerEntry(
            actor=Actor.user("u-4", "Ian Agent", UserRole.AGENT),
            action="Assigned to Ian Agent",
            assigned_agent_id="u-4",
            assigned_agent_name="Ian Agent",
            timestamp=WHEN,
        ))

        public = HistoryLedger.to_public(row)
        assert public.actor_name == "Ian Agent"
        assert public.actor_role == UserRole.AGENT
        assert not hasattr(public, "actor_user_id")
        assert not hasattr(public, "assigned_agent_id")
