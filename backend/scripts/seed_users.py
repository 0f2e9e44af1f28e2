#!/usr/bin/env python3
"""
User Seed Script
Creates internal accounts for the complaint tracker.

Usage:
    python -m scripts.seed_users <role> <username> <name> <password> [service_type ...]

Roles: ADMIN, SUPERVISOR, AGENT, MANAGEMENT
Service types: IMMIGRATION, CONSULAR, SOCIO_CULTURAL, ECONOMIC, OTHER

Example:
    python -m scripts.seed_users ADMIN admin "Site Admin" securepassword123
    python -m scripts.seed_users SUPERVISOR sup.imm "Imm Supervisor" securepassword123 IMMIGRATION
"""
import sys
import os
from typing import List
from uuid import uuid4

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.database import SessionLocal, init_db
from app.models.db_models import ServiceType, UserDB, UserRole
from app.auth import hash_password


def create_user(
    role: UserRole,
    username: str,
    name: str,
    password: str,
    service_types: List[ServiceType],
) -> bool:
    """Create an internal user, or update routing for an existing one."""
    # Ensure tables exist
    init_db()

    db: Session = SessionLocal()
    try:
        existing = db.query(UserDB).filter(UserDB.username == username).first()

        if existing:
            if existing.role != role:
                print(f"Error: Username '{username}' already exists with role {existing.role.value}.")
                return False
            # Same role - refresh routing and reactivate
            existing.service_types_handled = [s.value for s in service_types]
            existing.is_active = True
            db.commit()
            print(f"Updated existing {role.value} '{username}'.")
            return True

        user = UserDB(
            id=str(uuid4()),
            username=username,
            name=name,
            password_hash=hash_password(password),
            role=role,
            service_types_handled=[s.value for s in service_types],
            is_active=True,
        )

        db.add(user)
        db.commit()

        print(f"User created successfully!")
        print(f"  Username: {username}")
        print(f"  Role: {role.value}")
        if service_types:
            print(f"  Handles: {', '.join(s.value for s in service_types)}")
        return True

    except SQLAlchemyError as e:
        print(f"Error creating user: {e}")
        db.rollback()
        return False
    finally:
        db.close()


def main():
    if len(sys.argv) < 5:
        print(__doc__)
        sys.exit(1)

    try:
        role = UserRole(sys.argv[1].upper())
        service_types = [ServiceType(s.upper()) for s in sys.argv[5:]]
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if role == UserRole.PUBLIC:
        print("Error: PUBLIC is not an internal role.")
        sys.exit(1)

    username, name, password = sys.argv[2], sys.argv[3], sys.argv[4]

    # Basic validation
    if len(password) < 8:
        print("Error: Password must be at least 8 characters.")
        sys.exit(1)

    if role in (UserRole.SUPERVISOR, UserRole.AGENT) and not service_types:
        print(f"Warning: {role.value} '{username}' handles no service types and will never be routed work.")

    success = create_user(role, username, name, password, service_types)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
