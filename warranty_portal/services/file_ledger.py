"""
File Attachment Ledger

Records of uploaded artifacts tied to a job and a slot. Bytes live in the
content store; rows live in the database. Uploads are checked against an
allow-list before anything is written, and the job's asset count drives the
DRAFT -> ASSETS_UPLOADED transition.
"""
import logging
import os
import re
from typing import BinaryIO, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..errors import NotFoundError, ValidationError
from ..models.db_models import FileDB, FileType, JobDB, UploadChannel, UserDB
from .lifecycle import JobLifecycle
from .notifications import NotificationService
from .policy import enforce
from .storage import LocalFileStorage

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".pdf", ".png", ".jpg", ".jpeg", ".csv", ".xlsx", ".xls"}
ALLOWED_MIME_TYPES = {
    "application/pdf",
    "image/png",
    "image/jpeg",
    "image/jpg",
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
SLOT_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]{0,49}$")


def validate_upload(original_name: str, mime_type: Optional[str]) -> None:
    """Reject anything outside the extension and mime allow-lists."""
    ext = os.path.splitext(original_name or "")[1].lower()
    mime = (mime_type or "").split(";")[0].strip().lower()
    if ext not in ALLOWED_EXTENSIONS or mime not in ALLOWED_MIME_TYPES:
        raise ValidationError("Only PDF, images, and spreadsheet files are allowed")


def normalize_slot(slot: str) -> str:
    value = (slot or "").strip().upper()
    if not SLOT_PATTERN.match(value):
        raise ValidationError("Invalid file type")
    return value


class FileLedger:
    """attach / get / open / remove / list_for_job for job artifacts."""

    def __init__(
        self,
        db_session: Session,
        storage: LocalFileStorage,
        lifecycle: JobLifecycle,
        notifier: Optional[NotificationService] = None,
    ):
        self.db = db_session
        self.storage = storage
        self.lifecycle = lifecycle
        self.notifier = notifier

    def _get_job(self, job_id: str) -> JobDB:
        job = self.db.query(JobDB).filter(JobDB.id == job_id).first()
        if job is None:
            raise NotFoundError("Job not found")
        return job

    def _get_file(self, file_id: str) -> FileDB:
        record = self.db.query(FileDB).filter(FileDB.id == file_id).first()
        if record is None:
            raise NotFoundError("File not found")
        return record

    def count_for_job(self, job_id: str) -> int:
        return self.db.query(FileDB).filter(FileDB.job_id == job_id).count()

    def next_upload_seq(self, job_id: str) -> int:
        current = self.db.query(func.max(FileDB.upload_seq)).filter(FileDB.job_id == job_id).scalar()
        return (current or 0) + 1

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def attach(
        self,
        job_id: str,
        slot: str,
        stream: BinaryIO,
        original_name: str,
        mime_type: Optional[str],
        requester: UserDB,
        channel: UploadChannel = UploadChannel.WEB,
    ) -> FileDB:
        """
        Store an upload and add its ledger row.

        Validation and authorization happen before any byte is persisted.
        """
        slot = normalize_slot(slot)
        validate_upload(original_name, mime_type)

        job = self._get_job(job_id)
        enforce(requester, job)

        stored = self.storage.save(stream, slot, original_name)
        try:
            record = FileDB(
                id=str(uuid4()),
                job_id=job.id,
                filename=stored.filename,
                original_name=original_name,
                file_type=slot,
                file_path=stored.path,
                file_size=stored.size,
                mime_type=mime_type,
                uploaded_via=channel,
                upload_seq=self.next_upload_seq(job.id),
            )
            self.db.add(record)
            self.db.flush()

            self.lifecycle.apply_file_threshold(job, self.count_for_job(job.id))
            self.db.commit()
        except Exception:
            self.db.rollback()
            self.storage.delete(stored.path)
            raise

        self.db.refresh(record)
        logger.info(f"File uploaded: {record.id} for job {job.id} ({slot})")

        self._notify_upload(job, record, requester)
        return record

    def get(self, file_id: str, requester: UserDB) -> FileDB:
        record = self._get_file(file_id)
        enforce(requester, record)
        return record

    def locate(self, file_id: str, requester: UserDB) -> FileDB:
        """Ledger row whose stored bytes are known to exist."""
        record = self.get(file_id, requester)
        if not self.storage.exists(record.file_path):
            raise NotFoundError("File not found on disk")
        return record

    def open(self, file_id: str, requester: UserDB) -> Tuple[FileDB, BinaryIO]:
        """Return the ledger row and an open byte stream for download."""
        record = self.locate(file_id, requester)
        return record, self.storage.open(record.file_path)

    def remove(self, file_id: str, requester: UserDB) -> None:
        """
        Delete stored bytes, then the ledger row.

        Missing or undeletable bytes are logged; the row is deleted regardless.
        """
        record = self.get(file_id, requester)

        try:
            if not self.storage.delete(record.file_path):
                logger.warning(f"Stored bytes already missing for file {record.id}: {record.file_path}")
        except OSError:
            logger.exception(f"Could not delete stored bytes for file {record.id}")

        self.db.delete(record)
        self.db.commit()
        logger.info(f"File deleted: {file_id}")

    def list_for_job(self, job_id: str, requester: UserDB) -> List[FileDB]:
        """Files of a job, most recent first."""
        job = self._get_job(job_id)
        enforce(requester, job)
        return (
            self.db.query(FileDB)
            .filter(FileDB.job_id == job.id)
            .order_by(FileDB.uploaded_at.desc(), FileDB.upload_seq.desc())
            .all()
        )

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    def _notify_upload(self, job: JobDB, record: FileDB, uploader: UserDB) -> None:
        if self.notifier is None:
            return
        if record.file_type == FileType.MAIL_LIST.value:
            self.notifier.data_file_uploaded(
                campaign_name=job.campaign_name,
                campaign_id=job.id,
                file_name=record.original_name,
                file_size=record.file_size,
                uploaded_by=uploader.name or uploader.email,
                uploader_email=uploader.email,
                channel=record.uploaded_via.value,
            )
        elif record.file_type == FileType.PROOF.value:
            proof_count = (
                self.db.query(FileDB)
                .filter(FileDB.job_id == job.id, FileDB.file_type == FileType.PROOF.value)
                .count()
            )
            self.notifier.proofs_uploaded(job, uploader, proof_count)
