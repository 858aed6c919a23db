"""
Billing Ledger Backend — Payment Route Handlers
================================================
"""

import logging
from typing import List

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.database import get_db_session
from ledger.schemas.common import ErrorResponse, MessageResponse
from ledger.schemas.payment import PaymentCreate, PaymentListItem, PaymentResponse
from ledger.services.payment_service import payment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get(
    "",
    response_model=List[PaymentListItem],
    responses={500: {"model": ErrorResponse}},
    summary="List payments with client, invoice number and outstanding balance",
)
async def list_payments(db: AsyncSession = Depends(get_db_session)) -> List[PaymentListItem]:
    return await payment_service.list_payments(db)


@router.post(
    "",
    status_code=201,
    response_model=List[PaymentResponse],
    responses={
        400: {
            "description": "Missing field, unknown invoice, overpayment or settled invoice",
            "model": ErrorResponse,
        },
    },
    summary="Record one or more payments",
    description=(
        "Every payment is checked against its invoice's outstanding balance, "
        "including earlier payments in the same batch. One failing entry rejects "
        "the whole batch."
    ),
)
async def create_payments(
    payments: List[PaymentCreate] = Body(..., description="JSON array of payments"),
    db: AsyncSession = Depends(get_db_session),
) -> List[PaymentResponse]:
    return await payment_service.create_payments(db, payments)


@router.delete(
    "/{payment_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a payment",
)
async def delete_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await payment_service.delete_payment(db, payment_id)
    return MessageResponse(message="Payment deleted successfully")
