"""
Warranty Portal - User Administration Router
Admins create staff accounts, change roles and deactivate users.
Users are never deleted; jobs and proof events keep pointing at them.
"""
from datetime import datetime
from typing import List, Optional
from uuid import uuid4
import logging

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from ..auth import hash_password, require_admin
from ..database import commit_unique, get_db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.db_models import UserDB, UserRole
from .auth import UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class CreateUserRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: Optional[str] = None
    role: UserRole = UserRole.STAFF


class UpdateUserRequest(BaseModel):
    name: Optional[str] = None
    role: Optional[UserRole] = None
    active: Optional[bool] = None


class UserEnvelope(BaseModel):
    user: UserResponse


class UserListResponse(BaseModel):
    users: List[UserResponse]


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=UserListResponse)
def list_users(
    role: Optional[UserRole] = Query(None),
    db: Session = Depends(get_db),
    admin: UserDB = Depends(require_admin),
):
    query = db.query(UserDB)
    if role is not None:
        query = query.filter(UserDB.role == role)
    users = query.order_by(UserDB.created_at.desc()).all()
    return UserListResponse(users=[UserResponse.model_validate(u) for u in users])


@router.post("", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
def create_user(
    request: CreateUserRequest,
    db: Session = Depends(get_db),
    admin: UserDB = Depends(require_admin),
):
    """Create an account with any role. Defaults to STAFF."""
    if db.query(UserDB).filter(UserDB.email == request.email).first():
        raise ConflictError("User already exists")

    user = UserDB(
        id=str(uuid4()),
        email=request.email,
        name=request.name,
        password_hash=hash_password(request.password),
        role=request.role,
        active=True,
    )
    db.add(user)
    commit_unique(db, "User already exists")
    db.refresh(user)

    logger.info(f"User created by admin {admin.email}: {user.email} ({user.role.value})")
    return UserEnvelope(user=UserResponse.model_validate(user))


@router.patch("/{user_id}", response_model=UserEnvelope)
def update_user(
    user_id: str,
    request: UpdateUserRequest,
    db: Session = Depends(get_db),
    admin: UserDB = Depends(require_admin),
):
    """
    Change name, role or active flag.

    An admin cannot demote or deactivate their own account.
    """
    user = db.query(UserDB).filter(UserDB.id == user_id).first()
    if user is None:
        raise NotFoundError("User not found")

    if user.id == admin.id and (
        (request.role is not None and request.role != UserRole.ADMIN)
        or request.active is False
    ):
        raise ValidationError("Cannot demote or deactivate your own account")

    if request.name is not None:
        user.name = request.name
    if request.role is not None:
        user.role = request.role
    if request.active is not None:
        user.active = request.active
    user.updated_at = datetime.utcnow()

    db.commit()
    db.refresh(user)

    logger.info(f"User {user.email} updated by admin {admin.email}")
    return UserEnvelope(user=UserResponse.model_validate(user))
