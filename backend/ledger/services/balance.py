"""
Billing Ledger Backend — Balance Calculator
============================================

What:  Derives outstanding balances from the payment rows.
How:   outstanding(invoice) = invoice.amount - COALESCE(SUM(payments.amount), 0)
       balance(client)      = SUM(outstanding(invoice) for the client's invoices)

There is no stored balance column. Every reader (invoice listing, payment
listing, client listing, reports, the payment batch writer) builds its
figures from the same `paid_totals_subquery()` so the derivation exists in
exactly one place.

A negative result is never floored to zero. `ensure_non_negative()` raises
IntegrityViolationError, because the payment writer only admits payments
that fit the outstanding balance.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement, Subquery

from ledger.exceptions import IntegrityViolationError, NotFoundError
from ledger.models import Client, Invoice, Payment
from ledger.services.db_errors import database_errors

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


# ══════════════════════════════════════════════════════════════════════════
# Pure Calculation
# ══════════════════════════════════════════════════════════════════════════

def outstanding(amount: Decimal, payments: Iterable[Decimal]) -> Decimal:
    """Invoice amount minus the sum of its payments. Not clamped."""
    return Decimal(amount) - sum((Decimal(p) for p in payments), ZERO)


def ensure_non_negative(
    value: Decimal,
    invoice_id: Optional[int] = None,
    client_id: Optional[int] = None,
) -> Decimal:
    """
    Returns `value` unchanged, or raises IntegrityViolationError when negative.
    """
    if value < ZERO:
        context = {"balance": str(value)}
        if invoice_id is not None:
            context["invoice_id"] = invoice_id
        if client_id is not None:
            context["client_id"] = client_id
        logger.error("Negative derived balance detected | Context: %s", context)
        raise IntegrityViolationError(context=context)
    return value


# ══════════════════════════════════════════════════════════════════════════
# SQL Building Blocks
# ══════════════════════════════════════════════════════════════════════════

def paid_totals_subquery() -> Subquery:
    """
    One row per invoice that has payments: (invoice_id, total_paid).

    Join with OUTER JOIN on invoice_id; invoices without payments get NULL,
    which `total_paid_column()` turns into 0.
    """
    return (
        select(
            Payment.invoice_id.label("invoice_id"),
            func.sum(Payment.amount).label("total_paid"),
        )
        .group_by(Payment.invoice_id)
        .subquery("paid_totals")
    )


def total_paid_column(paid: Subquery) -> ColumnElement:
    return func.coalesce(paid.c.total_paid, 0)


def outstanding_column(paid: Subquery) -> ColumnElement:
    return Invoice.amount - total_paid_column(paid)


# ══════════════════════════════════════════════════════════════════════════
# Queries
# ══════════════════════════════════════════════════════════════════════════

async def paid_totals(db: AsyncSession, invoice_ids: Iterable[int]) -> Dict[int, Decimal]:
    """Sum of payments per invoice. Invoices without payments are absent."""
    ids = list(invoice_ids)
    if not ids:
        return {}
    with database_errors("read payment totals", invoice_ids=ids):
        result = await db.execute(
            select(Payment.invoice_id, func.sum(Payment.amount))
            .where(Payment.invoice_id.in_(ids))
            .group_by(Payment.invoice_id)
        )
        return {invoice_id: Decimal(total) for invoice_id, total in result.all()}


async def invoice_balance(db: AsyncSession, invoice_id: int) -> Decimal:
    """
    Outstanding balance of one invoice, read fresh from its payments.

    Raises:
        NotFoundError: no such invoice
        IntegrityViolationError: payments exceed the invoice amount
    """
    with database_errors("read invoice balance", invoice_id=invoice_id):
        result = await db.execute(select(Invoice.amount).where(Invoice.id == invoice_id))
        amount = result.scalar_one_or_none()
    if amount is None:
        raise NotFoundError(resource="invoice", resource_id=invoice_id)

    totals = await paid_totals(db, [invoice_id])
    balance = outstanding(amount, [totals.get(invoice_id, ZERO)])
    return ensure_non_negative(balance, invoice_id=invoice_id)


def _client_balances_query(paid: Subquery):
    return (
        select(
            Client.id,
            func.coalesce(func.sum(outstanding_column(paid)), 0).label("balance"),
        )
        .outerjoin(Invoice, Invoice.client_id == Client.id)
        .outerjoin(paid, paid.c.invoice_id == Invoice.id)
        .group_by(Client.id)
    )


async def client_balance(db: AsyncSession, client_id: int) -> Decimal:
    """
    Aggregate outstanding balance over every invoice the client owns.

    Raises:
        NotFoundError: no such client
    """
    paid = paid_totals_subquery()
    with database_errors("read client balance", client_id=client_id):
        result = await db.execute(_client_balances_query(paid).where(Client.id == client_id))
        row = result.one_or_none()
    if row is None:
        raise NotFoundError(resource="client", resource_id=client_id)
    return ensure_non_negative(Decimal(row.balance), client_id=client_id)


async def client_balances(db: AsyncSession) -> Dict[int, Decimal]:
    """Aggregate outstanding balance for every client, keyed by client id."""
    paid = paid_totals_subquery()
    with database_errors("read client balances"):
        result = await db.execute(_client_balances_query(paid))
        rows = result.all()
    return {
        client_id: ensure_non_negative(Decimal(balance), client_id=client_id)
        for client_id, balance in rows
    }
