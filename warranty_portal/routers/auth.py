"""
Warranty Portal - Authentication Router
Handles user registration, login and session verification.
"""
from uuid import uuid4
from datetime import datetime
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import commit_unique, get_db
from ..errors import ConflictError
from ..models.db_models import UserDB, UserRole
from ..auth import hash_password, verify_password, create_access_token, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    name: Optional[str] = None

    @field_validator('password')
    @classmethod
    def validate_password_strength(cls, v):
        if len(v) < 6:
            raise ValueError('Password must be at least 6 characters')
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    """Public view of a user."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: Optional[str] = None
    role: UserRole
    active: bool = True
    created_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    user: UserResponse
    token: str
    token_type: str = "bearer"


class MeResponse(BaseModel):
    user: UserResponse


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: RegisterRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Register a new client account.
    Staff and admin accounts are created by an admin (see /api/users).
    """
    existing_email = db.query(UserDB).filter(UserDB.email == request.email).first()
    if existing_email:
        raise ConflictError("User already exists")

    user = UserDB(
        id=str(uuid4()),
        email=request.email,
        name=request.name,
        password_hash=hash_password(request.password),
        role=UserRole.CLIENT,
        active=True,
    )

    db.add(user)
    commit_unique(db, "User already exists")
    db.refresh(user)

    token = create_access_token(user.id, user.email, user.role.value, settings)

    logger.info(f"User registered: {request.email}")
    return AuthResponse(user=UserResponse.model_validate(user), token=token)


@router.post("/login", response_model=AuthResponse)
def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Authenticate user and return JWT token.
    Inactive users are rejected with the same message as a bad password.
    """
    user = db.query(UserDB).filter(UserDB.email == request.email).first()

    if not user or not user.active or not verify_password(request.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = create_access_token(user.id, user.email, user.role.value, settings)

    logger.info(f"User logged in: {request.email}")
    return AuthResponse(user=UserResponse.model_validate(user), token=token)


@router.get("/me", response_model=MeResponse)
def get_me(current_user: UserDB = Depends(get_current_user)):
    """Get current authenticated user info."""
    return MeResponse(user=UserResponse.model_validate(current_user))
