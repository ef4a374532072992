"""
Warranty Portal - Service Dependencies
Builds per-request service objects from the app's shared handles
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .database import get_db
from .services import (
    FileLedger, InvoiceService, JobLifecycle, JobService, LocalFileStorage,
    NotificationService, ProofEventLog, SftpCredentialService,
)


def get_lifecycle(settings: Settings = Depends(get_settings)) -> JobLifecycle:
    return JobLifecycle(asset_threshold=settings.asset_threshold)


def get_storage(settings: Settings = Depends(get_settings)) -> LocalFileStorage:
    return LocalFileStorage(settings.job_files_dir, settings.max_file_size)


def get_notifier(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> NotificationService:
    return NotificationService(db, settings, transport=request.app.state.mail_transport)


def get_job_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    lifecycle: JobLifecycle = Depends(get_lifecycle),
    notifier: NotificationService = Depends(get_notifier),
    storage: LocalFileStorage = Depends(get_storage),
) -> JobService:
    return JobService(db, lifecycle, notifier=notifier, storage=storage, tax_rate=settings.tax_rate)


def get_file_ledger(
    db: Session = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
    lifecycle: JobLifecycle = Depends(get_lifecycle),
    notifier: NotificationService = Depends(get_notifier),
) -> FileLedger:
    return FileLedger(db, storage, lifecycle, notifier=notifier)


def get_proof_log(
    db: Session = Depends(get_db),
    lifecycle: JobLifecycle = Depends(get_lifecycle),
    notifier: NotificationService = Depends(get_notifier),
) -> ProofEventLog:
    return ProofEventLog(db, lifecycle, notifier=notifier)


def get_sftp_credential_service(db: Session = Depends(get_db)) -> SftpCredentialService:
    return SftpCredentialService(db)


def get_invoice_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    lifecycle: JobLifecycle = Depends(get_lifecycle),
) -> InvoiceService:
    return InvoiceService(db, lifecycle, tax_rate=settings.tax_rate)
