"""
Billing Ledger Backend — Database Handle Tests

What we test:
    ✅ A failing commit surfaces as PersistenceError and keeps nothing
    ✅ An error inside the session rolls the transaction back
    ✅ SQLite connections enforce foreign keys
"""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import PersistenceError
from ledger.models import Client, Invoice


async def _client_count(database) -> int:
    async with database.session() as db:
        return (await db.execute(select(func.count(Client.id)))).scalar_one()


class TestSessionScope:

    @pytest.mark.asyncio
    async def test_commit_failure_is_persistence_error(self, database):
        failing_commit = AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error")))

        with patch.object(AsyncSession, "commit", failing_commit):
            with pytest.raises(PersistenceError) as exc_info:
                async with database.session() as db:
                    db.add(Client(full_name="Acme", address="1 Main St", contact="acme@example.com"))
                    await db.flush()

        assert exc_info.value.context["original_error"] == "OperationalError"
        assert "disk I/O error" not in exc_info.value.message
        assert await _client_count(database) == 0

    @pytest.mark.asyncio
    async def test_error_rolls_back(self, database):
        with pytest.raises(RuntimeError):
            async with database.session() as db:
                db.add(Client(full_name="Acme", address="1 Main St", contact="acme@example.com"))
                await db.flush()
                raise RuntimeError("boom")

        assert await _client_count(database) == 0

    @pytest.mark.asyncio
    async def test_sqlite_enforces_foreign_keys(self, database):
        with pytest.raises(IntegrityError):
            async with database.session() as db:
                db.add(
                    Invoice(
                        client_id=999,
                        invoice_number="ORPHAN-1",
                        item="Consulting",
                        amount=Decimal("10.00"),
                        due_date=date(2026, 1, 31),
                    )
                )
                await db.flush()
