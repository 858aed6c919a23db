"""
Billing Ledger Backend — Invoice Service Tests
===============================================

What:  Tests for the invoice batch writer, listings, update and delete.
How:   Runs against a real SQLite schema so that atomicity is observable:
       after a rejected batch, a fresh session must see no new rows.

What we test:
    ✅ Batch size bound: 0 and 6 rejected, 1 and 5 accepted
    ✅ Every missing field of every entry is named in one error
    ✅ Unknown client, non-positive amount → nothing written
    ✅ Status defaults to 'Pending'; submission order preserved
    ✅ Invoice numbers distinct; a taken number → ConflictError, no rows
    ✅ Unpaid listing per client with derived balances
    ✅ Amount cannot be lowered below what has been paid
    ✅ Invoice with payments cannot be deleted
    ✅ Parallel batches still get distinct numbers
"""

import asyncio
import re
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import func, select

from ledger.exceptions import (
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from ledger.models import Invoice
from ledger.schemas.invoice import InvoiceCreate, InvoiceUpdate
from ledger.services.invoice_service import InvoiceNumberGenerator, InvoiceService


def _entry(client_id, amount="100.00", item="Consulting", due_date=date(2026, 3, 1), **extra):
    return InvoiceCreate(
        client_id=client_id,
        item=item,
        amount=Decimal(amount),
        due_date=due_date,
        **extra,
    )


async def _invoice_count(database) -> int:
    async with database.session() as db:
        return (await db.execute(select(func.count(Invoice.id)))).scalar_one()


class TestInvoiceNumberGenerator:

    def test_format(self):
        number = InvoiceNumberGenerator(prefix="INV", digits=8).generate()
        assert re.fullmatch(r"INV-\d{8}", number)

    def test_batch_is_distinct_even_when_draws_repeat(self):
        generator = InvoiceNumberGenerator(prefix="X", digits=5)
        with patch("ledger.services.invoice_service.secrets.randbelow", side_effect=[7, 7, 7, 42]):
            numbers = generator.generate_batch(2)
        assert numbers == ["X-00007", "X-00042"]


class TestCreateInvoices:

    def setup_method(self):
        self.service = InvoiceService(batch_limit=5)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, 6])
    async def test_batch_size_out_of_range(self, database, factory, count):
        async with database.session() as db:
            client = await factory.client(db)

        with pytest.raises(BusinessRuleError) as exc_info:
            async with database.session() as db:
                await self.service.create_invoices(db, [_entry(client.id)] * count)

        assert exc_info.value.rule == "invoice_batch_size"
        assert "between 1 and 5" in exc_info.value.message
        assert await _invoice_count(database) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [1, 5])
    async def test_batch_size_in_range(self, database, factory, count):
        async with database.session() as db:
            client = await factory.client(db)

        async with database.session() as db:
            created = await self.service.create_invoices(db, [_entry(client.id)] * count)

        assert len(created) == count
        assert await _invoice_count(database) == count

    @pytest.mark.asyncio
    async def test_missing_fields_are_named(self, database, factory):
        """Entry 1 lacks amount and due_date; nothing from the batch is written."""
        async with database.session() as db:
            client = await factory.client(db)

        batch = [
            _entry(client.id),
            InvoiceCreate(client_id=client.id, item="Hosting"),
        ]
        with pytest.raises(ValidationError) as exc_info:
            async with database.session() as db:
                await self.service.create_invoices(db, batch)

        assert not isinstance(exc_info.value, BusinessRuleError)
        assert exc_info.value.fields == ["amount", "due_date"]
        assert "Invoice 1 is missing amount, due_date" in exc_info.value.message
        assert await _invoice_count(database) == 0

    @pytest.mark.asyncio
    async def test_blank_item_counts_as_missing(self, database, factory):
        async with database.session() as db:
            client = await factory.client(db)
            with pytest.raises(ValidationError) as exc_info:
                await self.service.create_invoices(db, [_entry(client.id, item="   ")])
        assert exc_info.value.fields == ["item"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-5.00", "10.001"])
    async def test_invalid_amount(self, database, factory, amount):
        async with database.session() as db:
            client = await factory.client(db)
            with pytest.raises(ValidationError) as exc_info:
                await self.service.create_invoices(db, [_entry(client.id, amount=amount)])
        assert exc_info.value.fields == ["amount"]

    @pytest.mark.asyncio
    async def test_unknown_client(self, database, factory):
        async with database.session() as db:
            client = await factory.client(db)

        with pytest.raises(ValidationError) as exc_info:
            async with database.session() as db:
                await self.service.create_invoices(db, [_entry(client.id), _entry(404)])

        assert exc_info.value.field == "client_id"
        assert exc_info.value.context["client_ids"] == [404]
        assert await _invoice_count(database) == 0

    @pytest.mark.asyncio
    async def test_defaults_and_order(self, database, factory):
        async with database.session() as db:
            client = await factory.client(db)
            created = await self.service.create_invoices(
                db,
                [
                    _entry(client.id, item="First", amount="10.00"),
                    _entry(client.id, item="Second", amount="20.00", status="Draft"),
                    _entry(client.id, item="  Third  ", amount="30.00", status="  "),
                ],
            )

        assert [inv.item for inv in created] == ["First", "Second", "Third"]
        assert [inv.status for inv in created] == ["Pending", "Draft", "Pending"]
        assert [inv.amount for inv in created] == [Decimal("10"), Decimal("20"), Decimal("30")]
        assert len({inv.invoice_number for inv in created}) == 3
        assert all(inv.client_id == client.id for inv in created)

    @pytest.mark.asyncio
    async def test_number_collision_is_conflict(self, database, factory):
        """A generated number that is already stored rejects the whole batch."""
        async with database.session() as db:
            client = await factory.client(db)
            taken = await factory.invoice(db, client)

        generator = MagicMock(spec=InvoiceNumberGenerator)
        generator.generate_batch.return_value = ["NEW-00001", taken.invoice_number]
        service = InvoiceService(number_generator=generator, batch_limit=5)

        with pytest.raises(ConflictError):
            async with database.session() as db:
                await service.create_invoices(db, [_entry(client.id), _entry(client.id)])

        assert await _invoice_count(database) == 1

    @pytest.mark.asyncio
    async def test_amount_is_stored_with_two_places(self, database, factory):
        async with database.session() as db:
            client = await factory.client(db)
            (created,) = await self.service.create_invoices(db, [_entry(client.id, amount="100")])

        assert str(created.amount) == "100.00"


class TestInvoiceReads:

    def setup_method(self):
        self.service = InvoiceService()

    @pytest.mark.asyncio
    async def test_list_invoices_carries_balances(self, database, factory):
        async with database.session() as db:
            client = await factory.client(db, full_name="Acme")
            invoice = await factory.invoice(db, client, amount="100.00")
            await factory.payment(db, invoice, "30.00")

        async with database.session() as db:
            listed = await self.service.list_invoices(db)

        assert len(listed) == 1
        assert listed[0].full_name == "Acme"
        assert listed[0].total_paid == Decimal("30")
        assert listed[0].balance_outstanding == Decimal("70")

    @pytest.mark.asyncio
    async def test_get_invoice_missing(self, database):
        async with database.session() as db:
            with pytest.raises(NotFoundError):
                await self.service.get_invoice(db, 1)

    @pytest.mark.asyncio
    async def test_unpaid_for_client(self, database, factory):
        """Settled invoices and other clients' invoices are left out."""
        async with database.session() as db:
            acme = await factory.client(db, full_name="Acme")
            other = await factory.client(db, full_name="Globex")
            open_invoice = await factory.invoice(db, acme, amount="100.00", due_date=date(2026, 2, 1))
            partly_paid = await factory.invoice(db, acme, amount="80.00", due_date=date(2026, 1, 1))
            settled = await factory.invoice(db, acme, amount="50.00")
            await factory.invoice(db, other, amount="999.00")
            await factory.payment(db, partly_paid, "30.00")
            await factory.payment(db, settled, "50.00")

        async with database.session() as db:
            unpaid = await self.service.list_unpaid_for_client(db, acme.id)

        assert [inv.id for inv in unpaid] == [partly_paid.id, open_invoice.id]
        assert unpaid[0].balance_outstanding == Decimal("50")
        assert unpaid[1].balance_outstanding == Decimal("100")

    @pytest.mark.asyncio
    async def test_unpaid_for_unknown_client(self, database):
        async with database.session() as db:
            with pytest.raises(NotFoundError):
                await self.service.list_unpaid_for_client(db, 77)


class TestUpdateAndDelete:

    def setup_method(self):
        self.service = InvoiceService()

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, database, factory):
        async with database.session() as db:
            client = await factory.client(db)
            invoice = await factory.invoice(db, client, amount="100.00", item="Consulting")

        async with database.session() as db:
            updated = await self.service.update_invoice(db, invoice.id, InvoiceUpdate(item="Audit"))

        assert updated.item == "Audit"
        assert updated.amount == Decimal("100")
        assert updated.invoice_number == invoice.invoice_number

    @pytest.mark.asyncio
    async def test_amount_below_paid_rejected(self, database, factory):
        async with database.session() as db:
            client = await factory.client(db)
            invoice = await factory.invoice(db, client, amount="100.00")
            await factory.payment(db, invoice, "60.00")

        with pytest.raises(BusinessRuleError) as exc_info:
            async with database.session() as db:
                await self.service.update_invoice(
                    db, invoice.id, InvoiceUpdate(amount=Decimal("50.00"))
                )
        assert exc_info.value.rule == "amount_below_paid"

        async with database.session() as db:
            updated = await self.service.update_invoice(
                db, invoice.id, InvoiceUpdate(amount=Decimal("60"))
            )
        assert str(updated.amount) == "60.00"

    @pytest.mark.asyncio
    async def test_update_rejects_blank_item_and_bad_amount(self, database, factory):
        async with database.session() as db:
            client = await factory.client(db)
            invoice = await factory.invoice(db, client)

            with pytest.raises(ValidationError):
                await self.service.update_invoice(db, invoice.id, InvoiceUpdate(item=" "))
            with pytest.raises(ValidationError):
                await self.service.update_invoice(db, invoice.id, InvoiceUpdate(amount=Decimal("0")))

    @pytest.mark.asyncio
    async def test_update_missing_invoice(self, database):
        async with database.session() as db:
            with pytest.raises(NotFoundError):
                await self.service.update_invoice(db, 5, InvoiceUpdate(item="x"))

    @pytest.mark.asyncio
    async def test_delete_with_payments_is_conflict(self, database, factory):
        async with database.session() as db:
            client = await factory.client(db)
            invoice = await factory.invoice(db, client)
            await factory.payment(db, invoice, "10.00")

        with pytest.raises(ConflictError) as exc_info:
            async with database.session() as db:
                await self.service.delete_invoice(db, invoice.id)

        assert exc_info.value.context["payment_count"] == 1
        assert await _invoice_count(database) == 1

    @pytest.mark.asyncio
    async def test_delete_without_payments(self, database, factory):
        async with database.session() as db:
            client = await factory.client(db)
            invoice = await factory.invoice(db, client)

        async with database.session() as db:
            await self.service.delete_invoice(db, invoice.id)

        assert await _invoice_count(database) == 0


class TestConcurrentBatches:

    def setup_method(self):
        self.service = InvoiceService(batch_limit=5)

    @pytest.mark.asyncio
    async def test_parallel_submissions_get_distinct_numbers(self, database, factory):
        async with database.session() as db:
            client = await factory.client(db)

        async def submit():
            async with database.session() as db:
                created = await self.service.create_invoices(
                    db, [_entry(client.id), _entry(client.id)]
                )
            return [inv.invoice_number for inv in created]

        batches = await asyncio.gather(*(submit() for _ in range(5)))

        numbers = [number for batch in batches for number in batch]
        assert len(numbers) == 10
        assert len(set(numbers)) == 10
        assert await _invoice_count(database) == 10
