"""
Billing Ledger Backend — Client Service Tests
==============================================

What we test:
    ✅ Create requires full_name, address and contact
    ✅ Reads carry the aggregate outstanding balance
    ✅ A client that owns invoices cannot be deleted, and nothing is removed
    ✅ Once its invoices are gone the client can be deleted
    ✅ Driver failure → PersistenceError
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from ledger.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from ledger.models import Client, Invoice
from ledger.schemas.client import ClientCreate
from ledger.services.client_service import ClientService
from ledger.services.invoice_service import InvoiceService


class TestCreateClient:

    def setup_method(self):
        self.service = ClientService()

    @pytest.mark.asyncio
    async def test_create_strips_and_starts_at_zero(self, database):
        async with database.session() as db:
            created = await self.service.create_client(
                db,
                ClientCreate(full_name="  Acme Ltd ", address="1 Main St", contact="acme@example.com"),
            )

        assert created.id is not None
        assert created.full_name == "Acme Ltd"
        assert created.balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_missing_fields(self, mock_db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_client(mock_db_session, ClientCreate(full_name="Acme", contact=" "))

        assert exc_info.value.fields == ["address", "contact"]
        mock_db_session.add.assert_not_called()


class TestReadClients:

    def setup_method(self):
        self.service = ClientService()

    @pytest.mark.asyncio
    async def test_get_client_with_balance(self, database, factory):
        async with database.session() as db:
            client = await factory.client(db)
            invoice = await factory.invoice(db, client, amount="120.00")
            await factory.invoice(db, client, amount="30.00")
            await factory.payment(db, invoice, "20.00")

        async with database.session() as db:
            fetched = await self.service.get_client(db, client.id)

        assert fetched.full_name == "Acme Ltd"
        assert fetched.balance == Decimal("130")

    @pytest.mark.asyncio
    async def test_list_clients(self, database, factory):
        async with database.session() as db:
            acme = await factory.client(db, full_name="Acme")
            await factory.client(db, full_name="Globex")
            await factory.invoice(db, acme, amount="10.00")

        async with database.session() as db:
            listed = await self.service.list_clients(db)

        assert [c.full_name for c in listed] == ["Acme", "Globex"]
        assert [c.balance for c in listed] == [Decimal("10"), Decimal("0")]

    @pytest.mark.asyncio
    async def test_get_missing_client(self, database):
        async with database.session() as db:
            with pytest.raises(NotFoundError) as exc_info:
                await self.service.get_client(db, 3)
        assert exc_info.value.message == "Client 3 was not found"

    @pytest.mark.asyncio
    async def test_driver_failure(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))
        with pytest.raises(PersistenceError):
            await self.service.list_clients(mock_db_session)


class TestDeleteClient:

    def setup_method(self):
        self.service = ClientService()

    @pytest.mark.asyncio
    async def test_delete_with_invoices_is_conflict(self, database, factory):
        """Neither the client nor its invoices disappear."""
        async with database.session() as db:
            client = await factory.client(db)
            await factory.invoice(db, client)
            await factory.invoice(db, client)

        with pytest.raises(ConflictError) as exc_info:
            async with database.session() as db:
                await self.service.delete_client(db, client.id)
        assert exc_info.value.context["invoice_count"] == 2

        async with database.session() as db:
            assert await db.get(Client, client.id) is not None
            remaining = (
                await db.execute(
                    select(func.count(Invoice.id)).where(Invoice.client_id == client.id)
                )
            ).scalar_one()
        assert remaining == 2

    @pytest.mark.asyncio
    async def test_delete_after_invoices_removed(self, database, factory):
        async with database.session() as db:
            client = await factory.client(db)
            invoice = await factory.invoice(db, client)

        async with database.session() as db:
            await InvoiceService().delete_invoice(db, invoice.id)
        async with database.session() as db:
            await self.service.delete_client(db, client.id)

        async with database.session() as db:
            assert await db.get(Client, client.id) is None

    @pytest.mark.asyncio
    async def test_delete_missing_client(self, database):
        async with database.session() as db:
            with pytest.raises(NotFoundError):
                await self.service.delete_client(db, 8)
