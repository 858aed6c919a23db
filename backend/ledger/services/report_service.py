"""
Billing Ledger Backend — Report Service
========================================

What:  Read-only aggregate reports over the ledger.
How:   Every figure is built from balance.paid_totals_subquery(), the same
       derivation the invoice and payment listings use.

Reports:
    outstanding  — invoices with a balance above zero, oldest due first
    overall      — per client: invoice count, invoiced, paid, outstanding
    payments     — per payment mode: count and total received
"""

import logging
from decimal import Decimal
from typing import List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.models import Client, Invoice, Payment
from ledger.schemas.report import (
    ClientBalanceReportItem,
    OutstandingReportItem,
    PaymentModeReportItem,
)
from ledger.services import balance
from ledger.services.db_errors import database_errors

logger = logging.getLogger(__name__)


class ReportService:

    async def outstanding(self, db: AsyncSession) -> List[OutstandingReportItem]:
        paid = balance.paid_totals_subquery()
        outstanding = balance.outstanding_column(paid)
        with database_errors("build outstanding report"):
            result = await db.execute(
                select(
                    Invoice.id.label("invoice_id"),
                    Invoice.invoice_number,
                    Invoice.client_id,
                    Client.full_name.label("client"),
                    Invoice.due_date,
                    Invoice.amount,
                    balance.total_paid_column(paid).label("total_paid"),
                    outstanding.label("balance_outstanding"),
                )
                .join(Client, Invoice.client_id == Client.id)
                .outerjoin(paid, paid.c.invoice_id == Invoice.id)
                .where(outstanding > 0)
                .order_by(Invoice.due_date.asc(), Invoice.id.asc())
            )
            rows = result.all()
        return [OutstandingReportItem.model_validate(dict(row._mapping)) for row in rows]

    async def overall(self, db: AsyncSession) -> List[ClientBalanceReportItem]:
        paid = balance.paid_totals_subquery()
        with database_errors("build overall report"):
            result = await db.execute(
                select(
                    Client.id.label("client_id"),
                    Client.full_name.label("client"),
                    func.count(Invoice.id).label("invoice_count"),
                    func.coalesce(func.sum(Invoice.amount), 0).label("total_invoiced"),
                    func.coalesce(func.sum(balance.total_paid_column(paid)), 0).label("total_paid"),
                    func.coalesce(func.sum(balance.outstanding_column(paid)), 0).label(
                        "balance_outstanding"
                    ),
                )
                .outerjoin(Invoice, Invoice.client_id == Client.id)
                .outerjoin(paid, paid.c.invoice_id == Invoice.id)
                .group_by(Client.id, Client.full_name)
                .order_by(Client.id.asc())
            )
            rows = result.all()

        items = []
        for row in rows:
            item = ClientBalanceReportItem.model_validate(dict(row._mapping))
            balance.ensure_non_negative(item.balance_outstanding, client_id=item.client_id)
            items.append(item)
        return items

    async def payments_by_mode(self, db: AsyncSession) -> List[PaymentModeReportItem]:
        with database_errors("build payments report"):
            result = await db.execute(
                select(
                    Payment.mode,
                    func.count(Payment.id).label("payment_count"),
                    func.coalesce(func.sum(Payment.amount), 0).label("total_amount"),
                )
                .group_by(Payment.mode)
                .order_by(func.sum(Payment.amount).desc(), Payment.mode.asc())
            )
            rows = result.all()
        return [
            PaymentModeReportItem(
                mode=row.mode,
                payment_count=row.payment_count,
                total_amount=Decimal(row.total_amount),
            )
            for row in rows
        ]


report_service = ReportService()
