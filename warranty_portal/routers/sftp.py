"""
SFTP Credential API Routes

Manage the logins that the SFTP drop authenticates against.
Passwords are write-only; responses never carry the hash.
"""
from datetime import datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from ..auth import get_current_user
from ..dependencies import get_sftp_credential_service
from ..models.db_models import UserDB
from ..services import SftpCredentialService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sftp", tags=["sftp"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class CreateCredentialRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")
    password: str = Field(..., min_length=6)
    user_id: Optional[str] = Field(None, description="Owner, staff only. Defaults to the caller")


class UpdateCredentialRequest(BaseModel):
    password: Optional[str] = Field(None, min_length=6)
    active: Optional[bool] = None


class CredentialOwner(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: Optional[str] = None
    email: str


class CredentialResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    active: bool
    created_at: Optional[datetime] = None
    last_used: Optional[datetime] = None
    user: Optional[CredentialOwner] = None


class CredentialEnvelope(BaseModel):
    credential: CredentialResponse


class CredentialListResponse(BaseModel):
    credentials: List[CredentialResponse]


class MessageResponse(BaseModel):
    message: str


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/credentials", response_model=CredentialListResponse)
def list_credentials(
    service: SftpCredentialService = Depends(get_sftp_credential_service),
    current_user: UserDB = Depends(get_current_user),
):
    """Admin/Staff see all credentials, clients see only their own."""
    credentials = service.list(current_user)
    return CredentialListResponse(credentials=[CredentialResponse.model_validate(c) for c in credentials])


@router.post("/credentials", response_model=CredentialEnvelope, status_code=status.HTTP_201_CREATED)
def create_credential(
    request: CreateCredentialRequest,
    service: SftpCredentialService = Depends(get_sftp_credential_service),
    current_user: UserDB = Depends(get_current_user),
):
    credential = service.create(
        requester=current_user,
        username=request.username,
        password=request.password,
        user_id=request.user_id,
    )
    return CredentialEnvelope(credential=CredentialResponse.model_validate(credential))


@router.patch("/credentials/{credential_id}", response_model=CredentialEnvelope)
def update_credential(
    credential_id: str,
    request: UpdateCredentialRequest,
    service: SftpCredentialService = Depends(get_sftp_credential_service),
    current_user: UserDB = Depends(get_current_user),
):
    """Change the password and/or toggle the credential on or off."""
    credential = service.update(
        credential_id,
        current_user,
        password=request.password,
        active=request.active,
    )
    return CredentialEnvelope(credential=CredentialResponse.model_validate(credential))


@router.delete("/credentials/{credential_id}", response_model=MessageResponse)
def delete_credential(
    credential_id: str,
    service: SftpCredentialService = Depends(get_sftp_credential_service),
    current_user: UserDB = Depends(get_current_user),
):
    service.delete(credential_id, current_user)
    return MessageResponse(message="Credential deleted successfully")
