"""
Billing Ledger Backend — Payment Service (Payment Batch Writer)
================================================================

What:  Records a batch of payments only if every one of them fits the
       outstanding balance of its invoice. Also lists and deletes payments.
Who:   Called by the /payments route handlers.

Batch Flow (POST /payments), all inside the request transaction:
    1. Required fields (invoice_id, mode, amount > 0) for every entry
    2. Lock the target invoices: SELECT ... FOR UPDATE, ascending id
    3. Read each locked invoice's outstanding balance from its payments
    4. Walk the entries in submission order against a running balance:
         remaining <= 0       → BusinessRuleError(already_settled)
         amount > remaining   → BusinessRuleError(overpayment)
         otherwise            remaining -= amount
    5. Insert every payment, then flush once

Concurrency:
    Step 2 serializes concurrent batches that touch the same invoice: the
    second transaction waits for the first to commit and then reads the
    balance including the first batch's payments. Step 4 covers several
    entries of ONE batch paying the same invoice, which a per-entry check
    against the stored balance would let through (60 + 50 against 100).
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import (
    BusinessRuleError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from ledger.models import Client, Invoice, Payment
from ledger.schemas.payment import PaymentCreate, PaymentListItem, PaymentResponse
from ledger.services import balance
from ledger.services.db_errors import database_errors
from ledger.services.validation import check_batch_fields, to_money

logger = logging.getLogger(__name__)

REQUIRED_PAYMENT_FIELDS = ("invoice_id", "mode", "amount")


class PaymentService:
    """Stateless; every method receives the request's session."""

    async def _lock_outstanding(
        self, db: AsyncSession, invoice_ids: List[int]
    ) -> Dict[int, Decimal]:
        """
        Locks the given invoices and returns their outstanding balances.
        Invoices that do not exist are absent from the result.
        """
        result = await db.execute(
            select(Invoice.id, Invoice.amount)
            .where(Invoice.id.in_(invoice_ids))
            .order_by(Invoice.id.asc())
            .with_for_update()
        )
        amounts = {invoice_id: amount for invoice_id, amount in result.all()}
        totals = await balance.paid_totals(db, amounts.keys())
        return {
            invoice_id: balance.ensure_non_negative(
                balance.outstanding(amount, [totals.get(invoice_id, balance.ZERO)]),
                invoice_id=invoice_id,
            )
            for invoice_id, amount in amounts.items()
        }

    async def create_payments(
        self,
        db: AsyncSession,
        entries: Sequence[PaymentCreate],
    ) -> List[PaymentResponse]:
        """
        Validates the whole batch against live balances, then inserts it.

        Returns:
            The persisted payments, in submission order.

        Raises:
            ValidationError: empty batch, missing fields, non-positive amount,
                             or an invoice that does not exist
            BusinessRuleError: already_settled / overpayment for any entry;
                               the whole batch is rejected
            PersistenceError: the store failed; nothing from the batch is kept
        """
        if not entries:
            raise ValidationError(message="At least one payment must be provided.")

        check_batch_fields(entries, REQUIRED_PAYMENT_FIELDS, noun="Payment")

        invoice_ids = sorted({entry.invoice_id for entry in entries})
        with database_errors("record payments", invoice_ids=invoice_ids):
            remaining = await self._lock_outstanding(db, invoice_ids)

            for index, entry in enumerate(entries):
                invoice_id = entry.invoice_id
                if invoice_id not in remaining:
                    raise ValidationError(
                        message=f"Invoice {invoice_id} does not exist.",
                        field="invoice_id",
                        context={
                            "index": index,
                            "invoice_id": invoice_id,
                            "reason": "invoice_not_found",
                        },
                    )

                available = remaining[invoice_id]
                if available <= 0:
                    logger.warning(
                        "Payment %d rejected: invoice %s already settled", index, invoice_id
                    )
                    raise BusinessRuleError(
                        message=f"Invoice {invoice_id} is already fully paid.",
                        rule="already_settled",
                        context={"index": index, "invoice_id": invoice_id},
                    )

                if entry.amount > available:
                    logger.warning(
                        "Payment %d rejected: %s exceeds outstanding %s on invoice %s",
                        index,
                        entry.amount,
                        available,
                        invoice_id,
                    )
                    raise BusinessRuleError(
                        message=(
                            f"Payment of {entry.amount} exceeds outstanding balance "
                            f"{available} for invoice {invoice_id}."
                        ),
                        rule="overpayment",
                        context={
                            "index": index,
                            "invoice_id": invoice_id,
                            "amount": str(entry.amount),
                            "balance_outstanding": str(available),
                        },
                    )

                remaining[invoice_id] = available - entry.amount

            today = date.today()
            payments = [
                Payment(
                    invoice_id=entry.invoice_id,
                    mode=entry.mode.strip(),
                    amount=to_money(entry.amount),
                    payment_date=entry.payment_date or today,
                )
                for entry in entries
            ]
            db.add_all(payments)
            try:
                await db.flush()
            except IntegrityError as e:
                logger.error("Payment batch rejected by the store: %s", str(e.orig))
                raise PersistenceError(
                    message="Could not record payments. Please try again.",
                    context={"original_error": type(e).__name__},
                ) from e

        logger.info(
            "Recorded %d payment(s) against invoice(s) %s",
            len(payments),
            ", ".join(map(str, invoice_ids)),
        )
        return [PaymentResponse.model_validate(p) for p in payments]

    async def list_payments(self, db: AsyncSession) -> List[PaymentListItem]:
        """Every payment with client, invoice number and the invoice's current balance."""
        paid = balance.paid_totals_subquery()
        with database_errors("list payments"):
            result = await db.execute(
                select(
                    Payment.id,
                    Client.full_name.label("client"),
                    Payment.invoice_id,
                    Invoice.invoice_number,
                    Payment.payment_date,
                    Payment.mode,
                    Payment.amount,
                    balance.outstanding_column(paid).label("balance_outstanding"),
                )
                .join(Invoice, Payment.invoice_id == Invoice.id)
                .join(Client, Invoice.client_id == Client.id)
                .outerjoin(paid, paid.c.invoice_id == Invoice.id)
                .order_by(Payment.payment_date.desc(), Payment.id.desc())
            )
            rows = result.all()

        items = []
        for row in rows:
            values = dict(row._mapping)
            balance.ensure_non_negative(
                Decimal(values["balance_outstanding"]), invoice_id=values["invoice_id"]
            )
            items.append(PaymentListItem.model_validate(values))
        return items

    async def delete_payment(self, db: AsyncSession, payment_id: int) -> None:
        """
        Raises:
            NotFoundError: no such payment
        """
        with database_errors("delete payment", payment_id=payment_id):
            payment = await db.get(Payment, payment_id)
            if payment is None:
                raise NotFoundError(resource="payment", resource_id=payment_id)
            await db.delete(payment)
            await db.flush()

        logger.info("Payment %s deleted", payment_id)


payment_service = PaymentService()
