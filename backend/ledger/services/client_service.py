"""
Billing Ledger Backend — Client Service
========================================

What:  Create, read and delete clients; each read carries the derived balance.
Who:   Called by the /clients route handlers.

Delete policy: reject-if-referenced. A client that still owns invoices is
refused with ConflictError and nothing is removed. The invoices have to be
deleted first (and those, in turn, only once their payments are gone).
"""

import logging
from typing import List

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.exceptions import ConflictError, NotFoundError, ValidationError
from ledger.models import Client, Invoice
from ledger.schemas.client import ClientCreate, ClientResponse
from ledger.services import balance
from ledger.services.db_errors import database_errors
from ledger.services.validation import missing_fields

logger = logging.getLogger(__name__)

REQUIRED_CLIENT_FIELDS = ("full_name", "address", "contact")


class ClientService:
    """Stateless; every method receives the request's session."""

    async def list_clients(self, db: AsyncSession) -> List[ClientResponse]:
        with database_errors("list clients"):
            result = await db.execute(select(Client).order_by(Client.id.asc()))
            clients = list(result.scalars().all())

        balances = await balance.client_balances(db)
        return [
            ClientResponse(
                id=c.id,
                full_name=c.full_name,
                address=c.address,
                contact=c.contact,
                balance=balances.get(c.id, balance.ZERO),
            )
            for c in clients
        ]

    async def create_client(self, db: AsyncSession, data: ClientCreate) -> ClientResponse:
        """
        Raises:
            ValidationError: any of full_name, address, contact missing or blank
        """
        missing = missing_fields(data, REQUIRED_CLIENT_FIELDS)
        if missing:
            raise ValidationError(
                message=f"All fields are required; missing: {', '.join(missing)}",
                fields=missing,
            )

        client = Client(
            full_name=data.full_name.strip(),
            address=data.address.strip(),
            contact=data.contact.strip(),
        )
        with database_errors("create client"):
            db.add(client)
            await db.flush()

        logger.info("Client created: %s", client.id)
        return ClientResponse(
            id=client.id,
            full_name=client.full_name,
            address=client.address,
            contact=client.contact,
            balance=balance.ZERO,
        )

    async def get_client(self, db: AsyncSession, client_id: int) -> ClientResponse:
        with database_errors("fetch client", client_id=client_id):
            client = await db.get(Client, client_id)
        if client is None:
            raise NotFoundError(resource="client", resource_id=client_id)

        return ClientResponse(
            id=client.id,
            full_name=client.full_name,
            address=client.address,
            contact=client.contact,
            balance=await balance.client_balance(db, client_id),
        )

    async def delete_client(self, db: AsyncSession, client_id: int) -> None:
        """
        Raises:
            NotFoundError: no such client
            ConflictError: the client still owns invoices
        """
        with database_errors("delete client", client_id=client_id):
            result = await db.execute(
                select(Client).where(Client.id == client_id).with_for_update()
            )
            client = result.scalar_one_or_none()
            if client is None:
                raise NotFoundError(resource="client", resource_id=client_id)

            invoice_count = (
                await db.execute(
                    select(func.count(Invoice.id)).where(Invoice.client_id == client_id)
                )
            ).scalar_one()
            if invoice_count:
                logger.warning(
                    "Refusing to delete client %s: %d invoice(s) still reference it",
                    client_id,
                    invoice_count,
                )
                raise ConflictError(
                    message=(
                        f"Client {client_id} still has {invoice_count} invoice(s). "
                        "Delete them before deleting the client."
                    ),
                    context={"client_id": client_id, "invoice_count": invoice_count},
                )

            try:
                await db.delete(client)
                await db.flush()
            except IntegrityError as e:
                # An invoice was added concurrently; the foreign key refused the delete
                raise ConflictError(
                    message=f"Client {client_id} is referenced by invoices",
                    context={"client_id": client_id},
                ) from e

        logger.info("Client deleted: %s", client_id)


client_service = ClientService()
