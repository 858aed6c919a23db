"""
Billing Ledger Backend — Invoice Service (Invoice Batch Writer)
================================================================

What:  Batch creation of 1–5 invoices, listings with derived balances,
       partial update and delete.
Who:   Called by the /invoices route handlers.

Batch Creation Flow (POST /invoices):
    ┌──────────────┐   ┌──────────────┐   ┌──────────────┐   ┌──────────────┐
    │ Count bound  │──▶│ Fields of    │──▶│ Clients of   │──▶│ Number, add, │
    │ 1..limit     │   │ every entry  │   │ every entry  │   │ flush        │
    └──────────────┘   └──────────────┘   └──────────────┘   └──────────────┘

    Every check covers the whole batch before the first row is added. The
    rows are flushed together inside the request transaction, so either all
    of them are committed or none are.

Invoice Numbers:
    InvoiceNumberGenerator draws `<prefix>-<digits>` values with `secrets`
    and keeps them distinct within a batch. The UNIQUE constraint on
    invoices.invoice_number is the actual guarantee; a collision with an
    existing row is raised as ConflictError (409), not retried.
"""

import logging
import secrets
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.config import Settings, settings as default_settings
from ledger.exceptions import (
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from ledger.models import DEFAULT_INVOICE_STATUS, Client, Invoice, Payment
from ledger.schemas.invoice import (
    InvoiceCreate,
    InvoiceDetail,
    InvoiceResponse,
    InvoiceUpdate,
    UnpaidInvoice,
)
from ledger.services import balance
from ledger.services.db_errors import database_errors
from ledger.services.validation import check_amount, check_batch_fields, is_blank, to_money

logger = logging.getLogger(__name__)

REQUIRED_INVOICE_FIELDS = ("client_id", "item", "amount", "due_date")


class InvoiceNumberGenerator:
    """
    Produces human-readable invoice numbers such as ``INV-04821937``.
    """

    def __init__(self, prefix: str = "INV", digits: int = 8):
        self.prefix = prefix
        self.digits = digits

    def generate(self) -> str:
        return f"{self.prefix}-{secrets.randbelow(10 ** self.digits):0{self.digits}d}"

    def generate_batch(self, count: int) -> List[str]:
        """`count` numbers, pairwise distinct, in generation order."""
        numbers: List[str] = []
        seen = set()
        while len(numbers) < count:
            number = self.generate()
            if number not in seen:
                seen.add(number)
                numbers.append(number)
        return numbers


def _is_invoice_number_collision(error: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed: invoices.invoice_number"
    # PostgreSQL: duplicate key value violates unique constraint "invoices_invoice_number_key"
    return "invoice_number" in str(error.orig)


class InvoiceService:
    """
    Business logic for invoices.

    Error Handling:
        Input problems → ValidationError / BusinessRuleError (nothing written)
        Number collision → ConflictError
        Store failures → PersistenceError (via database_errors)
    """

    def __init__(
        self,
        number_generator: Optional[InvoiceNumberGenerator] = None,
        batch_limit: Optional[int] = None,
        config: Optional[Settings] = None,
    ):
        config = config or default_settings
        self.number_generator = number_generator or InvoiceNumberGenerator(
            prefix=config.invoice_number_prefix,
            digits=config.invoice_number_digits,
        )
        self.batch_limit = batch_limit or config.invoice_batch_limit

    # ── Batch Creation ────────────────────────────────────────────────────

    async def create_invoices(
        self,
        db: AsyncSession,
        entries: Sequence[InvoiceCreate],
    ) -> List[InvoiceResponse]:
        """
        Validates and inserts a batch of invoices atomically.

        Returns:
            The persisted invoices, in submission order.

        Raises:
            BusinessRuleError: batch empty or larger than the limit (rule=invoice_batch_size)
            ValidationError: an entry lacks client_id/item/amount/due_date, has a
                             non-positive amount, or names an unknown client
            ConflictError: a generated invoice number is already taken
            PersistenceError: the store failed; nothing from the batch is kept
        """
        count = len(entries)
        if count == 0 or count > self.batch_limit:
            raise BusinessRuleError(
                message=f"You can add between 1 and {self.batch_limit} invoices at a time.",
                rule="invoice_batch_size",
                context={"count": count, "limit": self.batch_limit},
            )

        check_batch_fields(entries, REQUIRED_INVOICE_FIELDS, noun="Invoice")

        client_ids = sorted({entry.client_id for entry in entries})
        with database_errors("check invoice clients", client_ids=client_ids):
            result = await db.execute(select(Client.id).where(Client.id.in_(client_ids)))
            known = set(result.scalars().all())
        unknown = [cid for cid in client_ids if cid not in known]
        if unknown:
            raise ValidationError(
                message=f"Client(s) {', '.join(map(str, unknown))} do not exist.",
                field="client_id",
                context={"client_ids": unknown},
            )

        numbers = self.number_generator.generate_batch(count)
        invoices = [
            Invoice(
                client_id=entry.client_id,
                invoice_number=number,
                item=entry.item.strip(),
                amount=to_money(entry.amount),
                due_date=entry.due_date,
                status=DEFAULT_INVOICE_STATUS if is_blank(entry.status) else entry.status.strip(),
            )
            for entry, number in zip(entries, numbers)
        ]

        with database_errors("create invoices", count=count):
            db.add_all(invoices)
            try:
                await db.flush()
            except IntegrityError as e:
                if _is_invoice_number_collision(e):
                    logger.warning("Invoice number collision in batch %s", numbers)
                    raise ConflictError(
                        message="A generated invoice number is already in use. Please resubmit.",
                        context={"invoice_numbers": numbers},
                    ) from e
                logger.error("Invoice batch rejected by the store: %s", str(e.orig))
                raise PersistenceError(
                    message="Could not create invoices. Please try again.",
                    context={"original_error": type(e).__name__},
                ) from e

        logger.info(
            "Created %d invoice(s): %s",
            count,
            ", ".join(inv.invoice_number for inv in invoices),
        )
        return [InvoiceResponse.model_validate(inv) for inv in invoices]

    # ── Reads ─────────────────────────────────────────────────────────────

    def _detail_query(self):
        paid = balance.paid_totals_subquery()
        return (
            select(
                Invoice,
                Client.full_name,
                balance.total_paid_column(paid).label("total_paid"),
                balance.outstanding_column(paid).label("balance_outstanding"),
            )
            .join(Client, Invoice.client_id == Client.id)
            .outerjoin(paid, paid.c.invoice_id == Invoice.id)
        )

    @staticmethod
    def _to_detail(row) -> InvoiceDetail:
        invoice, full_name, total_paid, outstanding = row
        return InvoiceDetail(
            **InvoiceResponse.model_validate(invoice).model_dump(),
            full_name=full_name,
            total_paid=Decimal(total_paid),
            balance_outstanding=balance.ensure_non_negative(
                Decimal(outstanding), invoice_id=invoice.id
            ),
        )

    async def list_invoices(self, db: AsyncSession) -> List[InvoiceDetail]:
        """Every invoice with its client name, total paid and outstanding balance."""
        with database_errors("list invoices"):
            result = await db.execute(
                self._detail_query().order_by(Invoice.due_date.asc(), Invoice.id.asc())
            )
            rows = result.all()
        return [self._to_detail(row) for row in rows]

    async def get_invoice(self, db: AsyncSession, invoice_id: int) -> InvoiceDetail:
        with database_errors("fetch invoice", invoice_id=invoice_id):
            result = await db.execute(self._detail_query().where(Invoice.id == invoice_id))
            row = result.one_or_none()
        if row is None:
            raise NotFoundError(resource="invoice", resource_id=invoice_id)
        return self._to_detail(row)

    async def list_unpaid_for_client(
        self, db: AsyncSession, client_id: int
    ) -> List[UnpaidInvoice]:
        """
        Invoices of one client whose outstanding balance is above zero,
        ordered by due date.

        Raises:
            NotFoundError: no such client
        """
        paid = balance.paid_totals_subquery()
        outstanding = balance.outstanding_column(paid)
        with database_errors("list unpaid invoices", client_id=client_id):
            if await db.get(Client, client_id) is None:
                raise NotFoundError(resource="client", resource_id=client_id)
            result = await db.execute(
                select(
                    Invoice.id,
                    Invoice.invoice_number,
                    Invoice.amount,
                    Invoice.due_date,
                    outstanding.label("balance_outstanding"),
                )
                .outerjoin(paid, paid.c.invoice_id == Invoice.id)
                .where(Invoice.client_id == client_id)
                .where(outstanding > 0)
                .order_by(Invoice.due_date.asc(), Invoice.id.asc())
            )
            rows = result.all()
        return [UnpaidInvoice.model_validate(dict(row._mapping)) for row in rows]

    # ── Update & Delete ───────────────────────────────────────────────────

    async def _lock_invoice(self, db: AsyncSession, invoice_id: int) -> Invoice:
        result = await db.execute(
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFoundError(resource="invoice", resource_id=invoice_id)
        return invoice

    async def update_invoice(
        self,
        db: AsyncSession,
        invoice_id: int,
        data: InvoiceUpdate,
    ) -> InvoiceResponse:
        """
        Partial update of amount and/or item. Null fields keep their value.

        Raises:
            NotFoundError: no such invoice
            ValidationError: blank item or non-positive amount
            BusinessRuleError: new amount below what has already been paid
                               (rule=amount_below_paid)
        """
        if data.item is not None and is_blank(data.item):
            raise ValidationError(message="Item cannot be blank", field="item")
        if data.amount is not None:
            check_amount(data.amount, label=f"Invoice {invoice_id}")

        with database_errors("update invoice", invoice_id=invoice_id):
            invoice = await self._lock_invoice(db, invoice_id)

            if data.amount is not None:
                paid = (await balance.paid_totals(db, [invoice_id])).get(invoice_id, balance.ZERO)
                if data.amount < paid:
                    raise BusinessRuleError(
                        message=(
                            f"Invoice {invoice_id} already has {paid} paid; "
                            f"amount cannot be lowered to {data.amount}."
                        ),
                        rule="amount_below_paid",
                        context={"invoice_id": invoice_id, "total_paid": str(paid)},
                    )
                invoice.amount = to_money(data.amount)
            if data.item is not None:
                invoice.item = data.item.strip()

            await db.flush()

        logger.info("Invoice %s updated", invoice_id)
        return InvoiceResponse.model_validate(invoice)

    async def delete_invoice(self, db: AsyncSession, invoice_id: int) -> None:
        """
        Hard delete under the reject-if-referenced policy.

        Raises:
            NotFoundError: no such invoice
            ConflictError: payments are still recorded against it
        """
        with database_errors("delete invoice", invoice_id=invoice_id):
            invoice = await self._lock_invoice(db, invoice_id)

            payment_count = (
                await db.execute(
                    select(func.count(Payment.id)).where(Payment.invoice_id == invoice_id)
                )
            ).scalar_one()
            if payment_count:
                logger.warning(
                    "Refusing to delete invoice %s: %d payment(s) recorded",
                    invoice_id,
                    payment_count,
                )
                raise ConflictError(
                    message=(
                        f"Invoice {invoice_id} has {payment_count} payment(s). "
                        "Delete them before deleting the invoice."
                    ),
                    context={"invoice_id": invoice_id, "payment_count": payment_count},
                )

            try:
                await db.delete(invoice)
                await db.flush()
            except IntegrityError as e:
                raise ConflictError(
                    message=f"Invoice {invoice_id} is referenced by payments",
                    context={"invoice_id": invoice_id},
                ) from e

        logger.info("Invoice %s deleted", invoice_id)

