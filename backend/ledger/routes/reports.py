"""
Billing Ledger Backend — Report Route Handlers
===============================================
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.database import get_db_session
from ledger.schemas.common import ErrorResponse
from ledger.schemas.report import (
    ClientBalanceReportItem,
    OutstandingReportItem,
    PaymentModeReportItem,
)
from ledger.services.report_service import report_service

router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
    responses={500: {"model": ErrorResponse}},
)


@router.get(
    "/outstanding",
    response_model=List[OutstandingReportItem],
    summary="Invoices that still have a balance",
)
async def outstanding_report(
    db: AsyncSession = Depends(get_db_session),
) -> List[OutstandingReportItem]:
    return await report_service.outstanding(db)


@router.get(
    "/overall",
    response_model=List[ClientBalanceReportItem],
    summary="Invoiced, paid and outstanding totals per client",
)
async def overall_report(
    db: AsyncSession = Depends(get_db_session),
) -> List[ClientBalanceReportItem]:
    return await report_service.overall(db)


@router.get(
    "/payments",
    response_model=List[PaymentModeReportItem],
    summary="Payment count and total per payment mode",
)
async def payments_report(
    db: AsyncSession = Depends(get_db_session),
) -> List[PaymentModeReportItem]:
    return await report_service.payments_by_mode(db)
