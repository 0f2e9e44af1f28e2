"""
Shared fixtures for the complaint workflow tests.

Every test gets a fresh in-memory SQLite database built from the ORM
metadata, a fixed roster of internal users and a deterministic clock.
"""
import os

# database.py builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import hash_password
from app.database import Base
from app.models.db_models import ComplaintDB, ComplaintStatus, ServiceType, UserDB, UserRole
from app.models.workflow_models import Actor, ComplaintIntake, new_id
from app.services.complaints import ComplaintWorkflowService

TEST_PASSWORD = "password123"

# key, id, username, name, role, service types handled
USER_ROSTER = [
    ("admin", "u-01-admin", "admin", "Ada Admin", UserRole.ADMIN, []),
    ("sup_imm", "u-02-sup-imm", "sup.imm", "Ivan Supervisor", UserRole.SUPERVISOR, [ServiceType.IMMIGRATION]),
    ("sup_con", "u-03-sup-con", "sup.con", "Cora Supervisor", UserRole.SUPERVISOR, [ServiceType.CONSULAR]),
    ("agent_imm", "u-04-agent-imm", "agent.imm", "Ian Agent", UserRole.AGENT, [ServiceType.IMMIGRATION]),
    ("agent_imm2", "u-05-agent-imm2", "agent.imm2", "Ines Agent", UserRole.AGENT, [ServiceType.IMMIGRATION]),
    ("agent_con", "u-06-agent-con", "agent.con", "Carl Agent", UserRole.AGENT, [ServiceType.CONSULAR]),
    ("mgmt", "u-07-mgmt", "mgmt", "Mona Management", UserRole.MANAGEMENT, []),
]


class FakeClock:
    """Callable clock that moves forward one second per reading."""

    def __init__(self, start: datetime = datetime(2025, 3, 1, 9, 0, 0), step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.now
        self.now = self.now + self.step
        return value

    def set(self, when: datetime) -> None:
        self.now = when


# =============================================================================
# DATABASE
# =============================================================================

def build_engine(url: str = "sqlite://"):
    if url == "sqlite://":
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(url, connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture(scope="session")
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture
def engine():
    engine = build_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


def seed_users(session, password_hash):
    users = {}
    for key, user_id, username, name, role, service_types in USER_ROSTER:
        user = UserDB(
            id=user_id,
            username=username,
            name=name,
            email=f"{username}@embassy.example",
            password_hash=password_hash,
            role=role,
            service_types_handled=[s.value for s in service_types],
            is_active=True,
        )
        session.add(user)
        users[key] = user
    session.commit()
    return users


@pytest.fixture
def users(db_session, password_hash):
    return seed_users(db_session, password_hash)


@pytest.fixture
def file_session_factory(tmp_path, password_hash):
    """
    Opens sessions on a file-backed database, one connection each,
    so two writers can genuinely interleave.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'complaints.db'}")
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    seed = factory()
    seed_users(seed, password_hash)
    seed.close()

    opened = []

    def _open():
        session = factory()
        opened.append(session)
        return session

    yield _open
    for session in opened:
        session.close()
    engine.dispose()


@pytest.fixture
def actors(users):
    return {key: Actor.from_user(user) for key, user in users.items()}


# =============================================================================
# WORKFLOW
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(db_session, users, clock):
    return ComplaintWorkflowService(db_session, clock=clock)


def make_intake(**overrides) -> ComplaintIntake:
    values = dict(
        service_type=ServiceType.IMMIGRATION,
        incident_time=datetime(2025, 2, 20, 14, 30),
        description="Visa application was not processed after four weeks.",
        is_anonymous=False,
        reporter_name="Rina Reporter",
        reporter_email="rina@example.com",
        reporter_whatsapp="+628123456789",
    )
    values.update(overrides)
    return ComplaintIntake(**values)


@pytest.fixture
def intake():
    """Builder for intake payloads; keyword arguments override the defaults."""
    return make_intake


@pytest.fixture
def new_complaint(service):
    """A freshly submitted immigration complaint (NEW, routed to sup_imm)."""
    return service.create_complaint(make_intake())


@pytest.fixture
def in_progress_complaint(service, actors, new_complaint):
    """Immigration complaint assigned to agent_imm by sup_imm."""
    return service.assign_agent(new_complaint.id, "u-04-agent-imm", actors["sup_imm"])


@pytest.fixture
def awaiting_complaint(service, actors, in_progress_complaint):
    """agent_imm has requested RESOLVED; awaiting sup_imm's decision."""
    return service.request_status_change(
        in_progress_complaint.id,
        actors["agent_imm"],
        ComplaintStatus.RESOLVED,
        "Visa issued on 2025-03-01.",
    )


@pytest.fixture
def insert_complaint_row(db_session):
    """Insert a complaint row directly, bypassing the workflow."""
    def _insert(tracking_id: str, **overrides) -> ComplaintDB:
        now = datetime(2025, 3, 1, 8, 0, 0)
        values = dict(
            id=new_id(),
            tracking_id=tracking_id,
            is_anonymous=True,
            service_type=ServiceType.OTHER,
            incident_time=now,
            description="Seeded complaint",
            custom_field_data={},
            attachments=[],
            status=ComplaintStatus.NEW,
            version=1,
            created_at=now,
            updated_at=now,
        )
        values.update(overrides)
        row = ComplaintDB(**values)
        db_session.add(row)
        db_session.commit()
        return row
    return _insert


# =============================================================================
# API
# =============================================================================

@pytest.fixture
def client(session_factory, users, tmp_path):
    """TestClient bound to the test database and a temporary attachment store."""
    from fastapi.testclient import TestClient

    from app.database import get_db
    from app.main import app
    from app.routers.complaints import get_attachment_store
    from app.services.complaints import LocalAttachmentStore

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    store = LocalAttachmentStore(root=str(tmp_path / "attachments"))
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_attachment_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(users):
    """Bearer headers for a roster key, e.g. auth_headers("sup_imm")."""
    from app.auth import create_access_token

    def _headers(key: str):
        user = users[key]
        token = create_access_token(user.id, user.username, user.role)
        return {"Authorization": f"Bearer {token}"}
    return _headers
