"""
Job API Routes

Campaign CRUD plus the proof event log.
Status changes go through the lifecycle table; clients may only edit the
descriptive fields of their own jobs.
"""
from datetime import datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..auth import get_current_user
from ..dependencies import get_job_service, get_proof_log
from ..models.db_models import InvoiceStatus, JobDB, JobStatus, ProofAction, UserDB
from ..services import JobService, ProofEventLog, JobLifecycle
from .files import FileRecordResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class CreateJobRequest(BaseModel):
    """Request to create a new campaign."""
    month: str = Field(..., min_length=1, max_length=20, description="Mailing month, e.g. December")
    year: int = Field(..., ge=2000, le=2100)
    campaign_name: str = Field(..., min_length=1, max_length=255)


class UpdateJobRequest(BaseModel):
    """Partial update. Only fields present in the body are applied."""
    model_config = ConfigDict(extra="forbid")

    month: Optional[str] = Field(None, min_length=1, max_length=20)
    year: Optional[int] = Field(None, ge=2000, le=2100)
    campaign_name: Optional[str] = Field(None, min_length=1, max_length=255)
    status: Optional[JobStatus] = None
    mail_count: Optional[int] = Field(None, ge=0)
    rate_per_piece: Optional[float] = Field(None, ge=0)
    mailed_at: Optional[datetime] = None

    @field_validator("month", "year", "campaign_name")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class ProofEventRequest(BaseModel):
    action: ProofAction
    notes: Optional[str] = None


class OwnerSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: Optional[str] = None
    email: str


class ProofEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_id: str
    user_id: Optional[str] = None
    action: ProofAction
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class InvoiceSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    invoice_num: str
    total_amount: float
    status: InvoiceStatus


class JobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    month: str
    year: int
    campaign_name: str
    status: JobStatus
    mail_count: Optional[int] = None
    rate_per_piece: Optional[float] = None
    total_cost: Optional[float] = None
    tax_amount: Optional[float] = None
    approved_at: Optional[datetime] = None
    mailed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: Optional[OwnerSummary] = None
    next_statuses: List[JobStatus] = []


class JobListItem(JobResponse):
    file_count: int = 0
    invoice_count: int = 0


class JobDetail(JobResponse):
    files: List[FileRecordResponse] = []
    proof_events: List[ProofEventResponse] = []
    invoices: List[InvoiceSummary] = []


class JobEnvelope(BaseModel):
    job: JobDetail


class JobListResponse(BaseModel):
    jobs: List[JobListItem]


class ProofEventEnvelope(BaseModel):
    proof_event: ProofEventResponse


class ProofEventListResponse(BaseModel):
    proof_events: List[ProofEventResponse]


class MessageResponse(BaseModel):
    message: str


def _job_detail(job: JobDB, lifecycle: JobLifecycle) -> JobDetail:
    detail = JobDetail.model_validate(job)
    detail.next_statuses = lifecycle.get_next_states(job.status)
    return detail


def _job_list_item(job: JobDB, lifecycle: JobLifecycle) -> JobListItem:
    item = JobListItem.model_validate(job)
    item.file_count = len(job.files)
    item.invoice_count = len(job.invoices)
    item.next_statuses = lifecycle.get_next_states(job.status)
    return item


# =============================================================================
# JOB ENDPOINTS
# =============================================================================

@router.get("", response_model=JobListResponse)
def list_jobs(
    service: JobService = Depends(get_job_service),
    current_user: UserDB = Depends(get_current_user),
):
    """Admin/Staff see all jobs, clients see only their own."""
    jobs = service.list_jobs(current_user)
    return JobListResponse(jobs=[_job_list_item(j, service.lifecycle) for j in jobs])


@router.post("", response_model=JobEnvelope, status_code=status.HTTP_201_CREATED)
def create_job(
    request: CreateJobRequest,
    service: JobService = Depends(get_job_service),
    current_user: UserDB = Depends(get_current_user),
):
    """Create a campaign in DRAFT owned by the caller."""
    job = service.create_job(
        requester=current_user,
        month=request.month,
        year=request.year,
        campaign_name=request.campaign_name,
    )
    return JobEnvelope(job=_job_detail(job, service.lifecycle))


@router.get("/{job_id}", response_model=JobEnvelope)
def get_job(
    job_id: str,
    service: JobService = Depends(get_job_service),
    current_user: UserDB = Depends(get_current_user),
):
    job = service.get_job(job_id, current_user)
    return JobEnvelope(job=_job_detail(job, service.lifecycle))


@router.patch("/{job_id}", response_model=JobEnvelope)
def update_job(
    job_id: str,
    request: UpdateJobRequest,
    service: JobService = Depends(get_job_service),
    current_user: UserDB = Depends(get_current_user),
):
    """
    Update a job.

    Status changes must follow the workflow; anything else is a 400.
    """
    job = service.update_job(job_id, current_user, request.model_dump(exclude_unset=True))
    return JobEnvelope(job=_job_detail(job, service.lifecycle))


@router.delete("/{job_id}", response_model=MessageResponse)
def delete_job(
    job_id: str,
    service: JobService = Depends(get_job_service),
    current_user: UserDB = Depends(get_current_user),
):
    service.delete_job(job_id, current_user)
    return MessageResponse(message="Job deleted successfully")


# =============================================================================
# PROOF EVENTS
# =============================================================================

@router.post("/{job_id}/proof-events", response_model=ProofEventEnvelope, status_code=status.HTTP_201_CREATED)
def add_proof_event(
    job_id: str,
    request: ProofEventRequest,
    proof_log: ProofEventLog = Depends(get_proof_log),
    current_user: UserDB = Depends(get_current_user),
):
    """
    Record a review action.

    APPROVED moves a PROOFING job to APPROVED and stamps approved_at.
    REQUEST_CHANGES sends it back to ASSETS_UPLOADED.
    """
    event = proof_log.record(job_id, request.action, request.notes, current_user)
    return ProofEventEnvelope(proof_event=ProofEventResponse.model_validate(event))


@router.get("/{job_id}/proof-events", response_model=ProofEventListResponse)
def list_proof_events(
    job_id: str,
    proof_log: ProofEventLog = Depends(get_proof_log),
    current_user: UserDB = Depends(get_current_user),
):
    events = proof_log.list_for_job(job_id, current_user)
    return ProofEventListResponse(proof_events=[ProofEventResponse.model_validate(e) for e in events])
