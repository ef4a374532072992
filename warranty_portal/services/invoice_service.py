"""
Invoice Service

Generates invoices from a job's mail count and per-piece rate and moves the
job to INVOICED.
"""
import logging
from datetime import datetime
from typing import List
from uuid import uuid4

from sqlalchemy.orm import Session

from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.db_models import InvoiceDB, InvoiceStatus, JobDB, JobStatus, UserDB
from .job_service import compute_totals
from .lifecycle import JobLifecycle, Trigger
from .policy import enforce, is_privileged

logger = logging.getLogger(__name__)


class InvoiceService:

    def __init__(self, db_session: Session, lifecycle: JobLifecycle, tax_rate: float = 0.08):
        self.db = db_session
        self.lifecycle = lifecycle
        self.tax_rate = tax_rate

    def _next_invoice_number(self, year: int) -> str:
        """INV-<year>-<seq>, sequence restarting every year."""
        prefix = f"INV-{year}-"
        existing = {
            num for (num,) in self.db.query(InvoiceDB.invoice_num).filter(InvoiceDB.invoice_num.like(f"{prefix}%"))
        }
        seq = len(existing) + 1
        while f"{prefix}{seq:03d}" in existing:
            seq += 1
        return f"{prefix}{seq:03d}"

    def generate(self, job_id: str, requester: UserDB) -> InvoiceDB:
        job = self.db.query(JobDB).filter(JobDB.id == job_id).first()
        if job is None:
            raise NotFoundError("Job not found")
        enforce(requester, job)

        if job.mail_count is None or job.rate_per_piece is None:
            raise ValidationError("Job needs mail_count and rate_per_piece before invoicing")

        pending = [inv for inv in job.invoices if inv.status == InvoiceStatus.PENDING]
        if pending:
            raise ConflictError(f"Job already has pending invoice {pending[0].invoice_num}")

        amount, tax_amount = compute_totals(job.mail_count, job.rate_per_piece, self.tax_rate)

        try:
            self.lifecycle.transition(job, JobStatus.INVOICED, Trigger.INVOICE_GENERATED)
            job.total_cost, job.tax_amount = amount, tax_amount

            invoice = InvoiceDB(
                id=str(uuid4()),
                job_id=job.id,
                invoice_num=self._next_invoice_number(datetime.utcnow().year),
                amount=amount,
                tax_amount=tax_amount,
                total_amount=round(amount + tax_amount, 2),
                status=InvoiceStatus.PENDING,
            )
            self.db.add(invoice)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.invoice_num} generated for job {job.id}: {invoice.total_amount:.2f}")
        return invoice

    def list(self, requester: UserDB) -> List[InvoiceDB]:
        query = self.db.query(InvoiceDB)
        if not is_privileged(requester):
            query = query.join(JobDB).filter(JobDB.user_id == requester.id)
        return query.order_by(InvoiceDB.created_at.desc()).all()

    def get(self, invoice_id: str, requester: UserDB) -> InvoiceDB:
        invoice = self.db.query(InvoiceDB).filter(InvoiceDB.id == invoice_id).first()
        if invoice is None:
            raise NotFoundError("Invoice not found")
        enforce(requester, invoice)
        return invoice

    def mark_paid(self, invoice_id: str, requester: UserDB) -> InvoiceDB:
        invoice = self.get(invoice_id, requester)
        if invoice.status == InvoiceStatus.PAID:
            return invoice

        invoice.status = InvoiceStatus.PAID
        invoice.paid_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.invoice_num} marked paid")
        return invoice
