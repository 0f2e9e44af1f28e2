"""
Assignment Resolver

Routes a service type to its responsible supervisor and lists the agents
eligible to work it. Returns empty results rather than failing; an
unroutable complaint stays unbound and falls back to the administrator.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ...models.db_models import UserDB, UserRole, ServiceType

logger = logging.getLogger(__name__)


class AssignmentResolver:
    """Read-only lookups over internal users by role and service type."""

    def __init__(self, db: Session):
        self.db = db

    def _active_users_with_role(self, role: UserRole) -> List[UserDB]:
        # Ordered by id so ties break the same way every time
        return (
            self.db.query(UserDB)
            .filter(UserDB.role == role, UserDB.is_active.is_(True))
            .order_by(UserDB.id)
            .all()
        )

    def supervisors_for(self, service_type: ServiceType) -> List[UserDB]:
        """All active supervisors handling the service type, ordered by id."""
        return [u for u in self._active_users_with_role(UserRole.SUPERVISOR) if u.handles(service_type)]

    def resolve_supervisor(self, service_type: ServiceType) -> Optional[str]:
        """
        Supervisor responsible for a service type.

        Returns the first matching supervisor by id, or None when nobody
        handles the type.
        """
        candidates = self.supervisors_for(service_type)
        if not candidates:
            logger.warning(f"No supervisor handles {ServiceType(service_type).value}; complaint left unrouted")
            return None
        if len(candidates) > 1:
            logger.info(
                f"{len(candidates)} supervisors handle {ServiceType(service_type).value}; "
                f"routing to {candidates[0].id}"
            )
        return candidates[0].id

    def eligible_agent_users(self, service_type: ServiceType) -> List[UserDB]:
        return [u for u in self._active_users_with_role(UserRole.AGENT) if u.handles(service_type)]

    def eligible_agents(self, service_type: ServiceType) -> List[str]:
        """Ids of all active agents handling the service type."""
        return [u.id for u in self.eligible_agent_users(service_type)]

    def get_user(self, user_id: str) -> Optional[UserDB]:
        if not user_id:
            return None
        return self.db.query(UserDB).filter(UserDB.id == user_id).first()
