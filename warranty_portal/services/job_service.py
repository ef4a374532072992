"""
Job Service

CRUD over campaigns with ownership checks, totals bookkeeping and the
status workflow. Every mutation goes through the authorization policy
and, for status changes, the lifecycle state machine.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models.db_models import JobDB, JobStatus, UserDB
from .lifecycle import JobLifecycle, Trigger
from .notifications import NotificationService
from .policy import enforce, is_privileged
from .storage import LocalFileStorage

logger = logging.getLogger(__name__)

# Fields a client may change on its own job; everything else is staff-only
CLIENT_EDITABLE_FIELDS = {"month", "year", "campaign_name"}
STAFF_EDITABLE_FIELDS = CLIENT_EDITABLE_FIELDS | {"mail_count", "rate_per_piece", "mailed_at", "status"}
NON_NULLABLE_FIELDS = {"month", "year", "campaign_name"}


def compute_totals(mail_count: Optional[int], rate_per_piece: Optional[float], tax_rate: float):
    """Returns (total_cost, tax_amount), or (None, None) when inputs are missing."""
    if mail_count is None or rate_per_piece is None:
        return None, None
    total_cost = round(mail_count * rate_per_piece, 2)
    tax_amount = round(total_cost * tax_rate, 2)
    return total_cost, tax_amount


class JobService:
    """Campaign CRUD and workflow entry points."""

    def __init__(
        self,
        db_session: Session,
        lifecycle: JobLifecycle,
        notifier: Optional[NotificationService] = None,
        storage: Optional[LocalFileStorage] = None,
        tax_rate: float = 0.08,
    ):
        self.db = db_session
        self.lifecycle = lifecycle
        self.notifier = notifier
        self.storage = storage
        self.tax_rate = tax_rate

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def get_or_404(self, job_id: str) -> JobDB:
        job = self.db.query(JobDB).filter(JobDB.id == job_id).first()
        if job is None:
            raise NotFoundError("Job not found")
        return job

    def get_job(self, job_id: str, requester: UserDB) -> JobDB:
        job = self.get_or_404(job_id)
        enforce(requester, job)
        return job

    def list_jobs(self, requester: UserDB) -> List[JobDB]:
        """Staff see every job, clients only their own. Newest first."""
        query = self.db.query(JobDB)
        if not is_privileged(requester):
            query = query.filter(JobDB.user_id == requester.id)
        return query.order_by(JobDB.created_at.desc()).all()

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def create_job(self, requester: UserDB, month: str, year: int, campaign_name: str) -> JobDB:
        job = JobDB(
            id=str(uuid4()),
            user_id=requester.id,
            month=month,
            year=year,
            campaign_name=campaign_name,
            status=JobStatus.DRAFT,
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)

        logger.info(f"Job created: {job.id} by user {requester.id}")

        if self.notifier is not None:
            self.notifier.campaign_created(job, requester)
        return job

    def update_job(self, job_id: str, requester: UserDB, updates: Dict[str, Any]) -> JobDB:
        """
        Apply a partial update.

        Status changes are validated against the lifecycle table. Totals are
        recomputed whenever mail_count or rate_per_piece is touched.
        """
        job = self.get_job(job_id, requester)

        allowed = STAFF_EDITABLE_FIELDS if is_privileged(requester) else CLIENT_EDITABLE_FIELDS
        unknown = set(updates) - STAFF_EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
        denied = set(updates) - allowed
        if denied:
            raise ForbiddenError("Staff access required")

        nulled = sorted(f for f in NON_NULLABLE_FIELDS if f in updates and updates[f] is None)
        if nulled:
            raise ValidationError(f"Fields cannot be null: {', '.join(nulled)}")

        try:
            new_status = updates.get("status")
            if new_status is not None:
                self.lifecycle.transition(job, JobStatus(new_status), Trigger.STATUS_PATCH)

            for field_name in ("month", "year", "campaign_name", "mail_count", "rate_per_piece", "mailed_at"):
                if field_name in updates:
                    setattr(job, field_name, updates[field_name])

            if "mail_count" in updates or "rate_per_piece" in updates:
                job.total_cost, job.tax_amount = compute_totals(job.mail_count, job.rate_per_piece, self.tax_rate)

            job.updated_at = datetime.utcnow()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(job)
        logger.info(f"Job updated: {job.id}")
        return job

    def delete_job(self, job_id: str, requester: UserDB) -> None:
        """Delete a job and, best effort, the stored bytes of its files."""
        job = self.get_job(job_id, requester)
        paths = [f.file_path for f in job.files]

        self.db.delete(job)
        self.db.commit()

        if self.storage is not None:
            for path in paths:
                try:
                    if not self.storage.delete(path):
                        logger.warning(f"Stored file already missing during job delete: {path}")
                except OSError:
                    logger.exception(f"Could not remove stored file {path}")

        logger.info(f"Job deleted: {job_id}")
