"""
Tracking Identifier Issuer

Issues human-readable, year-scoped, strictly increasing complaint
identifiers of the form PEN-2025-001.

The issuer only computes the next candidate. Uniqueness is arbitrated by
the unique index on complaints.tracking_id; the intake path treats a
collision as AllocationConflict and asks again.
"""
import logging
import os
import re
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...models.db_models import ComplaintDB

logger = logging.getLogger(__name__)

TRACKING_ID_PREFIX = os.getenv("TRACKING_ID_PREFIX", "PEN")
SEQUENCE_WIDTH = 3


class TrackingIdIssuer:
    """Computes the next tracking identifier for the current year."""

    def __init__(
        self,
        db: Session,
        prefix: str = TRACKING_ID_PREFIX,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.prefix = prefix
        self.clock = clock or datetime.utcnow
        self._pattern = re.compile(rf"^{re.escape(prefix)}-(\d{{4}})-(\d{{{SEQUENCE_WIDTH},}})$")

    def current_year(self) -> int:
        return self.clock().year

    def format(self, year: int, sequence: int) -> str:
        return f"{self.prefix}-{year}-{sequence:0{SEQUENCE_WIDTH}d}"

    def is_valid(self, tracking_id: str) -> bool:
        """Check a tracking id's shape without touching storage."""
        return bool(tracking_id) and self._pattern.match(tracking_id) is not None

    def max_sequence(self, year: int) -> int:
        """
        Highest sequence already issued for the year, 0 if none.
        Compared numerically so 1000 ranks above 999.
        """
        like = f"{self.prefix}-{year}-%"
        rows = self.db.query(ComplaintDB.tracking_id).filter(
            ComplaintDB.tracking_id.like(like)
        ).all()

        highest = 0
        for (tracking_id,) in rows:
            match = self._pattern.match(tracking_id)
            if match and int(match.group(1)) == year:
                highest = max(highest, int(match.group(2)))
        return highest

    def issue(self) -> str:
        """Return the next candidate tracking id for the current year."""
        year = self.current_year()
        tracking_id = self.format(year, self.max_sequence(year) + 1)
        logger.debug(f"Issued tracking id candidate {tracking_id}")
        return tracking_id
