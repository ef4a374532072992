"""Warranty Portal - Data Models"""
from .db_models import (
    # Enums
    UserRole, JobStatus, FileType, UploadChannel, ProofAction, InvoiceStatus,
    # Tables
    UserDB, JobDB, FileDB, ProofEventDB, SftpCredentialDB, InvoiceDB,
)

__all__ = [
    "UserRole", "JobStatus", "FileType", "UploadChannel", "ProofAction", "InvoiceStatus",
    "UserDB", "JobDB", "FileDB", "ProofEventDB", "SftpCredentialDB", "InvoiceDB",
]
