"""
File API Routes

Multipart upload into a job slot, per-job listing, download and delete.
"""
from datetime import datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict

from ..auth import get_current_user
from ..dependencies import get_file_ledger
from ..errors import ValidationError
from ..models.db_models import UploadChannel, UserDB
from ..services import FileLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class FileRecordResponse(BaseModel):
    """Ledger row for an uploaded file."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_id: str
    filename: str
    original_name: str
    file_type: str
    file_size: int
    mime_type: Optional[str] = None
    uploaded_via: UploadChannel
    uploaded_at: Optional[datetime] = None


class FileEnvelope(BaseModel):
    file: FileRecordResponse


class FileListResponse(BaseModel):
    files: List[FileRecordResponse]


class MessageResponse(BaseModel):
    message: str


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/upload", response_model=FileEnvelope, status_code=201)
def upload_file(
    file: Optional[UploadFile] = File(None),
    job_id: str = Form(..., alias="jobId"),
    file_type: str = Form(..., alias="fileType"),
    ledger: FileLedger = Depends(get_file_ledger),
    current_user: UserDB = Depends(get_current_user),
):
    """
    Upload one asset into a job slot.

    Allowed: pdf, png, jpg/jpeg, csv, xlsx, xls. Anything else is rejected
    before bytes are stored.
    """
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")

    try:
        record = ledger.attach(
            job_id=job_id,
            slot=file_type,
            stream=file.file,
            original_name=file.filename,
            mime_type=file.content_type,
            requester=current_user,
            channel=UploadChannel.WEB,
        )
    finally:
        file.file.close()

    return FileEnvelope(file=FileRecordResponse.model_validate(record))


@router.get("/job/{job_id}", response_model=FileListResponse)
def get_job_files(
    job_id: str,
    ledger: FileLedger = Depends(get_file_ledger),
    current_user: UserDB = Depends(get_current_user),
):
    """Files for a job, most recent first."""
    files = ledger.list_for_job(job_id, current_user)
    return FileListResponse(files=[FileRecordResponse.model_validate(f) for f in files])


@router.get("/{file_id}/meta", response_model=FileEnvelope)
def get_file_meta(
    file_id: str,
    ledger: FileLedger = Depends(get_file_ledger),
    current_user: UserDB = Depends(get_current_user),
):
    record = ledger.get(file_id, current_user)
    return FileEnvelope(file=FileRecordResponse.model_validate(record))


@router.get("/{file_id}")
def download_file(
    file_id: str,
    ledger: FileLedger = Depends(get_file_ledger),
    current_user: UserDB = Depends(get_current_user),
):
    """
    Send the stored bytes back under the original filename.

    Non-ASCII names go out as an RFC 5987 filename* parameter.
    """
    record = ledger.locate(file_id, current_user)
    return FileResponse(
        record.file_path,
        filename=record.original_name,
        media_type=record.mime_type or "application/octet-stream",
    )


@router.delete("/{file_id}", response_model=MessageResponse)
def delete_file(
    file_id: str,
    ledger: FileLedger = Depends(get_file_ledger),
    current_user: UserDB = Depends(get_current_user),
):
    ledger.remove(file_id, current_user)
    return MessageResponse(message="File deleted successfully")
