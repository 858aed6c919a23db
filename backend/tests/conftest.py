"""
Billing Ledger Backend — Test Configuration (conftest.py)
==========================================================

What:  Shared pytest fixtures for the test suite.
How:   Every test gets its own on-disk SQLite database (aiosqlite) with the
       tables created from ORM metadata, so service tests exercise real SQL,
       real constraints and real transaction rollback.

Fixtures:
    database        — Database handle on a fresh SQLite file
    factory         — inserts clients/invoices/payments directly (no rules)
    mock_db_session — AsyncMock session for driver-failure paths
    test_client     — httpx AsyncClient wired to a create_app() instance
"""

import os
import tempfile

# Must be set before anything imports ledger.config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(
    tempfile.mkdtemp(prefix="ledger_test_"), "import.db"
)
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["DB_CONNECT_RETRIES"] = "1"

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ledger.config import Settings
from ledger.database import Database
from ledger.models import Client, Invoice, Payment


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        log_level="WARNING",
        db_connect_retries=1,
    )


@pytest_asyncio.fixture
async def database(test_settings):
    """
    A Database handle with an empty schema.

    Usage:
        async def test_something(database):
            async with database.session() as db:
                ...
    """
    db = Database(test_settings)
    await db.create_all()
    yield db
    await db.dispose()


class LedgerFactory:
    """Inserts rows directly, bypassing the services' business rules."""

    def __init__(self):
        self._counter = 0

    async def client(self, db, full_name="Acme Ltd", address="1 Main St", contact="acme@example.com"):
        client = Client(full_name=full_name, address=address, contact=contact)
        db.add(client)
        await db.flush()
        return client

    async def invoice(self, db, client, amount="100.00", due_date=date(2026, 1, 31), item="Consulting"):
        self._counter += 1
        invoice = Invoice(
            client_id=client.id,
            invoice_number=f"TST-{self._counter:05d}",
            item=item,
            amount=Decimal(amount),
            due_date=due_date,
        )
        db.add(invoice)
        await db.flush()
        return invoice

    async def payment(self, db, invoice, amount, mode="cash"):
        payment = Payment(invoice_id=invoice.id, mode=mode, amount=Decimal(amount))
        db.add(payment)
        await db.flush()
        return payment


@pytest.fixture
def factory():
    return LedgerFactory()


@pytest.fixture
def mock_db_session():
    """
    A mock AsyncSession for simulating driver failures.

    Usage:
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception())
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.get = AsyncMock()
    session.delete = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# HTTP Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(test_settings, database):
    """
    HTTPX AsyncClient talking to a fresh app bound to the test database.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from ledger.main import create_app

    app = create_app(config=test_settings, database=database)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
