"""
Warranty Portal - SQLAlchemy ORM Models
Users, campaigns (jobs), uploaded files, proof events, SFTP credentials, invoices
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, Float, DateTime, Text, ForeignKey, Enum as SQLEnum, Boolean, BigInteger
from sqlalchemy.orm import relationship
from ..database import Base


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(str, Enum):
    """Portal roles. ADMIN and STAFF act on every job, CLIENT on its own."""
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    CLIENT = "CLIENT"


class JobStatus(str, Enum):
    """Campaign workflow states, in forward order."""
    DRAFT = "DRAFT"
    ASSETS_UPLOADED = "ASSETS_UPLOADED"
    PROOFING = "PROOFING"
    APPROVED = "APPROVED"
    PRINTING = "PRINTING"
    INVOICED = "INVOICED"
    COMPLETE = "COMPLETE"


class FileType(str, Enum):
    """Known asset slots. Ad hoc slots are stored as plain strings."""
    BUCKSLIP_1 = "BUCKSLIP_1"
    BUCKSLIP_2 = "BUCKSLIP_2"
    BUCKSLIP_3 = "BUCKSLIP_3"
    LETTER_REPLY = "LETTER_REPLY"
    OUTER_ENVELOPE = "OUTER_ENVELOPE"
    MAIL_LIST = "MAIL_LIST"
    PROOF = "PROOF"


class UploadChannel(str, Enum):
    WEB = "WEB"
    SFTP = "SFTP"


class ProofAction(str, Enum):
    """Review actions recorded against a job."""
    APPROVED = "APPROVED"
    REQUEST_CHANGES = "REQUEST_CHANGES"
    COMMENT = "COMMENT"


class InvoiceStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"


# =============================================================================
# MODELS
# =============================================================================

class UserDB(Base):
    """Portal user. Deactivated rather than deleted."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.CLIENT)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    jobs = relationship("JobDB", back_populates="user")
    sftp_credentials = relationship("SftpCredentialDB", back_populates="user", cascade="all, delete-orphan")


class JobDB(Base):
    """One warranty mailer campaign."""
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    month = Column(String(20), nullable=False)
    year = Column(Integer, nullable=False)
    campaign_name = Column(String(255), nullable=False)
    status = Column(SQLEnum(JobStatus), nullable=False, default=JobStatus.DRAFT, index=True)

    # Invoicing inputs and computed totals
    mail_count = Column(Integer, nullable=True)
    rate_per_piece = Column(Float, nullable=True)
    total_cost = Column(Float, nullable=True)
    tax_amount = Column(Float, nullable=True)

    approved_at = Column(DateTime, nullable=True)
    mailed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("UserDB", back_populates="jobs")
    files = relationship(
        "FileDB", back_populates="job", cascade="all, delete-orphan",
        order_by=lambda: [FileDB.uploaded_at.desc(), FileDB.upload_seq.desc()],
    )
    proof_events = relationship(
        "ProofEventDB", back_populates="job", cascade="all, delete-orphan",
        order_by=lambda: ProofEventDB.created_at.desc(),
    )
    invoices = relationship("InvoiceDB", back_populates="job", cascade="all, delete-orphan")


class FileDB(Base):
    """Uploaded artifact attached to a job slot."""
    __tablename__ = "files"

    id = Column(String(36), primary_key=True)  # UUID
    job_id = Column(String(36), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)

    filename = Column(String(255), nullable=False)  # Generated storage name
    original_name = Column(String(255), nullable=False)
    file_type = Column(String(50), nullable=False)  # FileType value or ad hoc slot
    file_path = Column(String(500), nullable=False)
    file_size = Column(BigInteger, nullable=False, default=0)
    mime_type = Column(String(100), nullable=True)
    uploaded_via = Column(SQLEnum(UploadChannel), nullable=False, default=UploadChannel.WEB)
    uploaded_at = Column(DateTime, default=datetime.utcnow, index=True)
    upload_seq = Column(Integer, nullable=False, default=1)  # Per-job insertion order, breaks uploaded_at ties

    # Relationships
    job = relationship("JobDB", back_populates="files")


class ProofEventDB(Base):
    """Append-only review action. Never updated."""
    __tablename__ = "proof_events"

    id = Column(String(36), primary_key=True)  # UUID
    job_id = Column(String(36), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)

    action = Column(SQLEnum(ProofAction), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    job = relationship("JobDB", back_populates="proof_events")


class SftpCredentialDB(Base):
    """Login for the SFTP drop, owned by a portal user."""
    __tablename__ = "sftp_credentials"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_used = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("UserDB", back_populates="sftp_credentials")


class InvoiceDB(Base):
    """Invoice generated from a job's mail count and rate."""
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True)  # UUID
    job_id = Column(String(36), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_num = Column(String(50), unique=True, nullable=False)

    amount = Column(Float, nullable=False, default=0)
    tax_amount = Column(Float, nullable=False, default=0)
    total_amount = Column(Float, nullable=False, default=0)
    status = Column(SQLEnum(InvoiceStatus), nullable=False, default=InvoiceStatus.PENDING)

    created_at = Column(DateTime, default=datetime.utcnow)
    paid_at = Column(DateTime, nullable=True)

    # Relationships
    job = relationship("JobDB", back_populates="invoices")
