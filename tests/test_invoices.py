"""
Tests for invoice generation and payment.
"""
import pytest

from warranty_portal.errors import ConflictError, ForbiddenError, InvalidTransitionError, ValidationError
from warranty_portal.models.db_models import InvoiceStatus, JobDB, JobStatus
from warranty_portal.services import InvoiceService

from conftest import add_job


@pytest.fixture
def invoices(db, lifecycle):
    return InvoiceService(db, lifecycle, tax_rate=0.08)


class TestGenerate:

    def test_generate_from_approved_job(self, db, invoices, staff_user, client_user):
        job = add_job(db, client_user, status=JobStatus.APPROVED, mail_count=5000, rate_per_piece=0.85)

        invoice = invoices.generate(job.id, staff_user)

        assert invoice.amount == 4250.0
        assert invoice.tax_amount == 340.0
        assert invoice.total_amount == 4590.0
        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.invoice_num.startswith("INV-")
        assert invoice.invoice_num.endswith("-001")

        refreshed = db.get(JobDB, job.id)
        assert refreshed.status == JobStatus.INVOICED
        assert refreshed.total_cost == 4250.0

    def test_numbers_increase(self, db, invoices, staff_user, client_user):
        first_job = add_job(db, client_user, status=JobStatus.APPROVED, mail_count=10, rate_per_piece=1.0)
        second_job = add_job(db, client_user, status=JobStatus.PRINTING, mail_count=10, rate_per_piece=1.0)

        first = invoices.generate(first_job.id, staff_user)
        second = invoices.generate(second_job.id, staff_user)

        assert first.invoice_num.endswith("-001")
        assert second.invoice_num.endswith("-002")

    def test_requires_pricing(self, db, invoices, staff_user, client_user):
        job = add_job(db, client_user, status=JobStatus.APPROVED)

        with pytest.raises(ValidationError):
            invoices.generate(job.id, staff_user)

    def test_requires_approved_job(self, db, invoices, staff_user, client_user):
        job = add_job(db, client_user, status=JobStatus.PROOFING, mail_count=10, rate_per_piece=1.0)

        with pytest.raises(InvalidTransitionError):
            invoices.generate(job.id, staff_user)
        assert db.get(JobDB, job.id).invoices == []

    def test_second_pending_invoice_conflicts(self, db, invoices, staff_user, client_user):
        job = add_job(db, client_user, status=JobStatus.APPROVED, mail_count=10, rate_per_piece=1.0)
        invoices.generate(job.id, staff_user)

        with pytest.raises(ConflictError):
            invoices.generate(job.id, staff_user)


class TestReadAndPay:

    def test_client_sees_own_invoices_only(self, db, invoices, staff_user, client_user, other_client):
        mine = add_job(db, client_user, status=JobStatus.APPROVED, mail_count=10, rate_per_piece=1.0)
        theirs = add_job(db, other_client, status=JobStatus.APPROVED, mail_count=10, rate_per_piece=1.0)
        my_invoice = invoices.generate(mine.id, staff_user)
        their_invoice = invoices.generate(theirs.id, staff_user)

        assert [i.id for i in invoices.list(client_user)] == [my_invoice.id]
        assert len(invoices.list(staff_user)) == 2
        with pytest.raises(ForbiddenError):
            invoices.get(their_invoice.id, client_user)

    def test_mark_paid(self, db, invoices, staff_user, client_user):
        job = add_job(db, client_user, status=JobStatus.APPROVED, mail_count=10, rate_per_piece=1.0)
        invoice = invoices.generate(job.id, staff_user)

        paid = invoices.mark_paid(invoice.id, staff_user)

        assert paid.status == InvoiceStatus.PAID
        assert paid.paid_at is not None
        # A paid invoice no longer blocks a new one
        assert invoices.generate(job.id, staff_user).invoice_num.endswith("-002")
