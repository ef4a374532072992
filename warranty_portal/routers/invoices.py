"""
Invoice API Routes

Staff generate invoices from approved jobs and record payment.
Clients may read the invoices of their own jobs.
"""
from datetime import datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict

from ..auth import get_current_user, require_staff
from ..dependencies import get_invoice_service
from ..models.db_models import InvoiceStatus, UserDB
from ..services import InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["invoices"])


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_id: str
    invoice_num: str
    amount: float
    tax_amount: float
    total_amount: float
    status: InvoiceStatus
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None


class InvoiceEnvelope(BaseModel):
    invoice: InvoiceResponse


class InvoiceListResponse(BaseModel):
    invoices: List[InvoiceResponse]


@router.post("/jobs/{job_id}/invoice", response_model=InvoiceEnvelope, status_code=status.HTTP_201_CREATED)
def generate_invoice(
    job_id: str,
    service: InvoiceService = Depends(get_invoice_service),
    current_user: UserDB = Depends(require_staff),
):
    """
    Generate an invoice for an APPROVED or PRINTING job.
    The job moves to INVOICED.
    """
    invoice = service.generate(job_id, current_user)
    return InvoiceEnvelope(invoice=InvoiceResponse.model_validate(invoice))


@router.get("/invoices", response_model=InvoiceListResponse)
def list_invoices(
    service: InvoiceService = Depends(get_invoice_service),
    current_user: UserDB = Depends(get_current_user),
):
    invoices = service.list(current_user)
    return InvoiceListResponse(invoices=[InvoiceResponse.model_validate(i) for i in invoices])


@router.get("/invoices/{invoice_id}", response_model=InvoiceEnvelope)
def get_invoice(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
    current_user: UserDB = Depends(get_current_user),
):
    invoice = service.get(invoice_id, current_user)
    return InvoiceEnvelope(invoice=InvoiceResponse.model_validate(invoice))


@router.post("/invoices/{invoice_id}/pay", response_model=InvoiceEnvelope)
def mark_invoice_paid(
    invoice_id: str,
    service: InvoiceService = Depends(get_invoice_service),
    current_user: UserDB = Depends(require_staff),
):
    invoice = service.mark_paid(invoice_id, current_user)
    return InvoiceEnvelope(invoice=InvoiceResponse.model_validate(invoice))
