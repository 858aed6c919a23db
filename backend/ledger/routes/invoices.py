"""
Billing Ledger Backend — Invoice Route Handlers
================================================

What:  GET/POST /invoices, GET/PUT/DELETE /invoices/{id}.

GET /invoices serves two views:
    - no query string:     every invoice with client name and payment totals
    - ?client_id=<id>:     only that client's invoices that still have a balance
"""

import logging
from typing import List, Optional, Union

from fastapi import APIRouter, Body, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.database import get_db_session
from ledger.exceptions import ValidationError
from ledger.schemas.common import ErrorResponse, MessageResponse
from ledger.schemas.invoice import (
    InvoiceCreate,
    InvoiceDetail,
    InvoiceResponse,
    InvoiceUpdate,
    UnpaidInvoice,
)
from ledger.services.invoice_service import InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["Invoices"])


def get_invoice_service(request: Request) -> InvoiceService:
    """The app's InvoiceService, configured from the Settings given to create_app()."""
    return request.app.state.invoice_service


def _parse_client_id(raw: str) -> int:
    value = raw.strip()
    if not value:
        raise ValidationError(message="Client ID is required.", field="client_id")
    try:
        client_id = int(value)
    except ValueError:
        raise ValidationError(
            message=f"Client ID must be an integer, got '{value}'.",
            field="client_id",
        ) from None
    return client_id


@router.get(
    "",
    response_model=Union[List[InvoiceDetail], List[UnpaidInvoice]],
    responses={
        400: {"description": "Blank or malformed client_id", "model": ErrorResponse},
        404: {"description": "Unknown client", "model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="List invoices, or a client's unpaid invoices",
)
async def list_invoices(
    client_id: Optional[str] = Query(
        default=None,
        description="Only return this client's invoices with an outstanding balance",
    ),
    db: AsyncSession = Depends(get_db_session),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    if client_id is None:
        return await invoice_service.list_invoices(db)
    return await invoice_service.list_unpaid_for_client(db, _parse_client_id(client_id))


@router.post(
    "",
    status_code=201,
    response_model=List[InvoiceResponse],
    responses={
        400: {"description": "Batch size or field validation failed", "model": ErrorResponse},
        409: {"description": "Invoice number collision", "model": ErrorResponse},
    },
    summary="Create 1 to 5 invoices in one call",
)
async def create_invoices(
    invoices: List[InvoiceCreate] = Body(..., description="JSON array of 1–5 invoices"),
    db: AsyncSession = Depends(get_db_session),
    invoice_service: InvoiceService = Depends(get_invoice_service),
) -> List[InvoiceResponse]:
    return await invoice_service.create_invoices(db, invoices)


@router.get(
    "/{invoice_id}",
    response_model=InvoiceDetail,
    responses={404: {"model": ErrorResponse}},
    summary="Fetch one invoice with its balance",
)
async def get_invoice(
    invoice_id: int,
    db: AsyncSession = Depends(get_db_session),
    invoice_service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceDetail:
    return await invoice_service.get_invoice(db, invoice_id)


@router.put(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Update an invoice's amount and/or item",
)
async def update_invoice(
    invoice_id: int,
    data: InvoiceUpdate,
    db: AsyncSession = Depends(get_db_session),
    invoice_service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceResponse:
    logger.info("Update request received for invoice %s", invoice_id)
    return await invoice_service.update_invoice(db, invoice_id, data)


@router.delete(
    "/{invoice_id}",
    response_model=MessageResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"description": "Invoice still has payments", "model": ErrorResponse},
    },
    summary="Delete an invoice that has no payments",
)
async def delete_invoice(
    invoice_id: int,
    db: AsyncSession = Depends(get_db_session),
    invoice_service: InvoiceService = Depends(get_invoice_service),
) -> MessageResponse:
    await invoice_service.delete_invoice(db, invoice_id)
    return MessageResponse(message="Invoice deleted successfully")
