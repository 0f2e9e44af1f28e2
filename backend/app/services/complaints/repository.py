"""
Complaint Repository

Durable store of complaint rows. Reads are scoped by VisibilityScope;
writes are compare-and-swap on the row's version and never commit on
their own. Write permission is the workflow engine's responsibility.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import and_, delete, false, or_, update
from sqlalchemy.orm import Session

from ...models.db_models import ComplaintDB, ComplaintHistoryDB
from ...models.workflow_models import ComplaintFilter, ComplaintPage, VisibilityScope
from .errors import ConflictError, ValidationError
from .permissions import TRIAGE_STATUSES

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# Columns a caller may never write through update()
PROTECTED_COLUMNS = frozenset({"id", "tracking_id", "version", "created_at"})


class ComplaintRepository:
    """Queries and versioned writes over the complaints table."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # READS
    # =========================================================================

    def get_by_id(self, complaint_id: str, fresh: bool = False) -> Optional[ComplaintDB]:
        """Look up a complaint. fresh=True bypasses the session's cached copy."""
        query = self.db.query(ComplaintDB)
        if fresh:
            query = query.populate_existing()
        return query.filter(ComplaintDB.id == complaint_id).first()

    def get_by_tracking_id(self, tracking_id: str) -> Optional[ComplaintDB]:
        return self.db.query(ComplaintDB).filter(ComplaintDB.tracking_id == tracking_id).first()

    def scoped_query(self, scope: VisibilityScope):
        """Base query restricted to what the scope may read."""
        query = self.db.query(ComplaintDB)

        if scope.unrestricted:
            return query

        if scope.agent_id:
            return query.filter(ComplaintDB.assigned_agent_id == scope.agent_id)

        if scope.supervisor_id:
            clauses = [ComplaintDB.supervisor_id == scope.supervisor_id]
            if scope.service_types:
                clauses.append(and_(
                    ComplaintDB.status.in_(list(TRIAGE_STATUSES)),
                    ComplaintDB.service_type.in_(list(scope.service_types)),
                ))
            return query.filter(or_(*clauses))

        return query.filter(false())

    def list(
        self,
        complaint_filter: Optional[ComplaintFilter],
        scope: VisibilityScope,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> ComplaintPage:
        """Filtered, scoped, newest-first page of complaints."""
        if page < 1:
            raise ValidationError("page must be >= 1")
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

        query = self.scoped_query(scope)
        f = complaint_filter or ComplaintFilter()

        if f.status is not None:
            query = query.filter(ComplaintDB.status == f.status)
        if f.service_type is not None:
            query = query.filter(ComplaintDB.service_type == f.service_type)
        if f.assigned_agent_id is not None:
            query = query.filter(ComplaintDB.assigned_agent_id == f.assigned_agent_id)
        if f.search:
            term = f"%{f.search.strip()}%"
            query = query.filter(or_(
                ComplaintDB.tracking_id.ilike(term),
                ComplaintDB.reporter_name.ilike(term),
                ComplaintDB.description.ilike(term),
            ))

        total = query.count()
        items = (
            query.order_by(ComplaintDB.created_at.desc(), ComplaintDB.tracking_id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return ComplaintPage(items=items, total=total, page=page, page_size=page_size)

    # =========================================================================
    # WRITES (never commit)
    # =========================================================================

    def create(self, complaint: ComplaintDB) -> ComplaintDB:
        """Stage a new complaint. Tracking id collisions surface at flush."""
        self.db.add(complaint)
        self.db.flush()
        return complaint

    def update(
        self,
        complaint_id: str,
        expected_version: int,
        values: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> int:
        """
        Apply a partial update if the row is still at expected_version.

        Bumps version and updated_at. Returns the new version; raises
        ConflictError when another writer got there first.
        """
        protected = PROTECTED_COLUMNS.intersection(values)
        if protected:
            raise ValidationError(f"Cannot update protected fields: {sorted(protected)}")

        new_version = expected_version + 1
        stmt = (
            update(ComplaintDB)
            .where(ComplaintDB.id == complaint_id, ComplaintDB.version == expected_version)
            .values(**values, version=new_version, updated_at=now or datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount != 1:
            raise ConflictError(
                "Complaint was modified concurrently; re-read and retry",
                details={"complaint_id": complaint_id, "expected_version": expected_version},
            )
        return new_version

    def delete(self, complaint_id: str, expected_version: int) -> None:
        """Remove a complaint and its whole ledger if still at expected_version."""
        result = self.db.execute(
            delete(ComplaintDB)
            .where(ComplaintDB.id == complaint_id, ComplaintDB.version == expected_version)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(
                "Complaint was modified concurrently; re-read and retry",
                details={"complaint_id": complaint_id, "expected_version": expected_version},
            )
        self.db.execute(
            delete(ComplaintHistoryDB)
            .where(ComplaintHistoryDB.complaint_id == complaint_id)
            .execution_options(synchronize_session=False)
        )
