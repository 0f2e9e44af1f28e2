"""
Complaint Tracker - Authentication Router
Handles login, session verification, and administration of internal users.
"""
from uuid import uuid4
from datetime import datetime
from typing import Optional, List
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import ServiceType, UserDB, UserRole
from ..auth import hash_password, verify_password, create_access_token, get_current_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

INTERNAL_ROLES = [UserRole.ADMIN, UserRole.SUPERVISOR, UserRole.AGENT, UserRole.MANAGEMENT]


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: str
    username: str
    name: str
    email: Optional[str] = None
    role: str
    service_types_handled: List[str] = []
    is_active: bool
    created_at: Optional[str] = None


class UserListResponse(BaseModel):
    """Paginated user list response."""
    users: List[UserResponse]
    total: int
    page: int
    page_size: int


class CreateUserRequest(BaseModel):
    """Request model for creating an internal user."""
    username: str = Field(..., min_length=3, max_length=100)
    name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    password: str
    role: UserRole
    service_types_handled: List[ServiceType] = []

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        if v is not None and v not in INTERNAL_ROLES:
            raise ValueError('Internal users cannot have the PUBLIC role')
        return v

    @field_validator('password')
    @classmethod
    def validate_password_strength(cls, v):
        if v is not None and len(v) < 8:
            raise ValueError('Password must be at least 8 characters')
        return v


class UpdateUserRequest(BaseModel):
    """All fields optional - only provided fields will be updated."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    role: Optional[UserRole] = None
    service_types_handled: Optional[List[ServiceType]] = None
    is_active: Optional[bool] = None

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        if v is not None and v not in INTERNAL_ROLES:
            raise ValueError('Internal users cannot have the PUBLIC role')
        return v

    @field_validator('password')
    @classmethod
    def validate_password_strength(cls, v):
        if v is not None and len(v) < 8:
            raise ValueError('Password must be at least 8 characters')
        return v


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime to ISO string."""
    if dt is None:
        return None
    return dt.isoformat()


def _user_to_response(user: UserDB) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        name=user.name,
        email=user.email,
        role=user.role.value,
        service_types_handled=list(user.service_types_handled or []),
        is_active=user.is_active,
        created_at=_format_datetime(user.created_at),
    )


def _get_user_or_404(db: Session, user_id: str) -> UserDB:
    user = db.query(UserDB).filter(UserDB.id == user_id).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    """
    Authenticate user and return JWT token.
    """
    user = db.query(UserDB).filter(UserDB.username == request.username).first()

    if not user or not user.is_active or not verify_password(request.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(user.id, user.username, user.role)

    logger.info(f"User logged in: {user.username} ({user.role.value})")
    return TokenResponse(access_token=access_token)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: UserDB = Depends(get_current_user)):
    """
    Get current authenticated user info.
    """
    return _user_to_response(current_user)


# =============================================================================
# USER ADMINISTRATION
# =============================================================================

@router.get("/users", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    admin: UserDB = Depends(require_admin)
):
    """
    Get paginated list of internal users.
    """
    query = db.query(UserDB)

    if role is not None:
        query = query.filter(UserDB.role == role)
    if search:
        search_term = f"%{search}%"
        query = query.filter(
            (UserDB.username.ilike(search_term)) |
            (UserDB.name.ilike(search_term)) |
            (UserDB.email.ilike(search_term))
        )

    total = query.count()
    offset = (page - 1) * page_size
    users = query.order_by(UserDB.username).offset(offset).limit(page_size).all()

    return UserListResponse(
        users=[_user_to_response(u) for u in users],
        total=total,
        page=page,
        page_size=page_size
    )


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    db: Session = Depends(get_db),
    admin: UserDB = Depends(require_admin)
):
    """
    Create an internal user account.
    """
    if db.query(UserDB).filter(UserDB.username == request.username).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username already taken"
        )
    if request.email and db.query(UserDB).filter(UserDB.email == request.email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    user = UserDB(
        id=str(uuid4()),
        username=request.username,
        name=request.name,
        email=request.email,
        password_hash=hash_password(request.password),
        role=request.role,
        service_types_handled=[s.value for s in request.service_types_handled],
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"User created by {admin.username}: {user.username} ({user.role.value})")
    return _user_to_response(user)


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    db: Session = Depends(get_db),
    admin: UserDB = Depends(require_admin)
):
    """
    Update an internal user. Deactivated users can no longer log in
    and are skipped by routing.
    """
    user = _get_user_or_404(db, user_id)

    if request.name is not None:
        user.name = request.name
    if request.email is not None:
        user.email = request.email
    if request.password is not None:
        user.password_hash = hash_password(request.password)
    if request.role is not None:
        user.role = request.role
    if request.service_types_handled is not None:
        user.service_types_handled = [s.value for s in request.service_types_handled]
    if request.is_active is not None:
        if user.id == admin.id and not request.is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Administrators cannot deactivate themselves"
            )
        user.is_active = request.is_active

    db.commit()
    db.refresh(user)

    logger.info(f"User updated by {admin.username}: {user.username}")
    return _user_to_response(user)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: UserDB = Depends(require_admin)
):
    """
    Deactivate an internal user.
    Accounts are never removed so history entries keep resolving.
    """
    user = _get_user_or_404(db, user_id)
    if user.id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Administrators cannot deactivate themselves"
        )

    user.is_active = False
    db.commit()

    logger.info(f"User deactivated by {admin.username}: {user.username}")
