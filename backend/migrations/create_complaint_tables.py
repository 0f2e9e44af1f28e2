"""
Migration: Create complaint tracker tables.

Creates the three tables the workflow persists to:
1. users - internal accounts (admin, supervisor, agent, management)
2. complaints - one row per complaint, guarded by a version column
3. complaint_history - append-only ledger, ordered per complaint by sequence

Safe to re-run: existing tables are left untouched.
"""
from sqlalchemy import create_engine, text
import os

# Use same DB URL pattern as main app
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/complaint_tracker"
)


def table_exists(conn, table_name: str) -> bool:
    """Check if a table exists in the database."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_name = :table_name
        )
    """), {"table_name": table_name})
    return result.fetchone()[0]


def run_migration():
    """Create all complaint tracker tables."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        # =================================================================
        # TABLE 1: users
        # =================================================================
        if table_exists(conn, "users"):
            print("users table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE users (
                    id VARCHAR(36) PRIMARY KEY,
                    username VARCHAR(100) NOT NULL UNIQUE,
                    name VARCHAR(100) NOT NULL,
                    email VARCHAR(255) UNIQUE,
                    password_hash VARCHAR(255) NOT NULL,
                    role VARCHAR(20) NOT NULL,
                    service_types_handled JSON NOT NULL DEFAULT '[]',
                    is_active BOOLEAN NOT NULL DEFAULT TRUE,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_users_role ON users(role)
            """))
            print("Created users table")

        # =================================================================
        # TABLE 2: complaints
        # =================================================================
        if table_exists(conn, "complaints"):
            print("complaints table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE complaints (
                    id VARCHAR(36) PRIMARY KEY,
                    tracking_id VARCHAR(20) NOT NULL,
                    is_anonymous BOOLEAN NOT NULL DEFAULT FALSE,
                    reporter_name VARCHAR(100),
                    reporter_email VARCHAR(255),
                    reporter_whatsapp VARCHAR(20),
                    service_type VARCHAR(20) NOT NULL,
                    incident_time TIMESTAMP NOT NULL,
                    description TEXT NOT NULL,
                    custom_field_data JSON NOT NULL DEFAULT '{}',
                    attachments JSON NOT NULL DEFAULT '[]',
                    status VARCHAR(30) NOT NULL DEFAULT 'NEW',
                    assigned_agent_id VARCHAR(36) REFERENCES users(id) ON DELETE SET NULL,
                    supervisor_id VARCHAR(36) REFERENCES users(id) ON DELETE SET NULL,
                    agent_follow_up_notes TEXT,
                    requested_status_change VARCHAR(30),
                    status_change_request_notes TEXT,
                    pending_attachment JSON,
                    supervisor_review_notes TEXT,
                    version INTEGER NOT NULL DEFAULT 1,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """))
            # The unique index arbitrates concurrent tracking id allocation
            conn.execute(text("""
                CREATE UNIQUE INDEX ix_complaints_tracking_id ON complaints(tracking_id)
            """))
            conn.execute(text("""
                CREATE INDEX ix_complaints_status ON complaints(status)
            """))
            conn.execute(text("""
                CREATE INDEX ix_complaints_service_type ON complaints(service_type)
            """))
            conn.execute(text("""
                CREATE INDEX ix_complaints_assigned_agent_id ON complaints(assigned_agent_id)
            """))
            conn.execute(text("""
                CREATE INDEX ix_complaints_supervisor_id ON complaints(supervisor_id)
            """))
            conn.execute(text("""
                CREATE INDEX ix_complaints_created_at ON complaints(created_at)
            """))
            print("Created complaints table")

        # =================================================================
        # TABLE 3: complaint_history
        # =================================================================
        if table_exists(conn, "complaint_history"):
            print("complaint_history table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE complaint_history (
                    id VARCHAR(36) PRIMARY KEY,
                    complaint_id VARCHAR(36) NOT NULL REFERENCES complaints(id) ON DELETE CASCADE,
                    sequence INTEGER NOT NULL,
                    actor_kind VARCHAR(10) NOT NULL,
                    actor_user_id VARCHAR(36),
                    actor_name VARCHAR(100) NOT NULL,
                    actor_role VARCHAR(20),
                    action VARCHAR(200) NOT NULL,
                    notes TEXT,
                    old_status VARCHAR(30),
                    new_status VARCHAR(30),
                    assigned_agent_id VARCHAR(36),
                    assigned_agent_name VARCHAR(100),
                    event_metadata JSON,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT uq_complaint_history_sequence UNIQUE (complaint_id, sequence)
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_complaint_history_complaint_id ON complaint_history(complaint_id)
            """))
            conn.execute(text("""
                CREATE INDEX ix_complaint_history_actor_user_id ON complaint_history(actor_user_id)
            """))
            conn.execute(text("""
                CREATE INDEX ix_complaint_history_complaint_created ON complaint_history(complaint_id, created_at)
            """))
            print("Created complaint_history table")

        conn.commit()
        print("\nComplaint tracker migration completed successfully!")


if __name__ == "__main__":
    run_migration()
