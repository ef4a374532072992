"""Warranty Portal - Services"""
from .policy import Decision, authorize, enforce, is_privileged
from .lifecycle import JobLifecycle, Trigger, STATE_CONFIG
from .storage import LocalFileStorage
from .notifications import NotificationService, LogOnlyTransport, SmtpTransport, build_transport
from .job_service import JobService
from .file_ledger import FileLedger
from .proof_log import ProofEventLog
from .sftp_credentials import SftpCredentialService
from .invoice_service import InvoiceService

__all__ = [
    "Decision", "authorize", "enforce", "is_privileged",
    "JobLifecycle", "Trigger", "STATE_CONFIG",
    "LocalFileStorage",
    "NotificationService", "LogOnlyTransport", "SmtpTransport", "build_transport",
    "JobService",
    "FileLedger",
    "ProofEventLog",
    "SftpCredentialService",
    "InvoiceService",
]
