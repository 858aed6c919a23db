"""
Billing Ledger Backend — Client Route Handlers
===============================================
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.database import get_db_session
from ledger.schemas.client import ClientCreate, ClientResponse
from ledger.schemas.common import ErrorResponse, MessageResponse
from ledger.services.client_service import client_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clients", tags=["Clients"])


@router.get(
    "",
    response_model=List[ClientResponse],
    responses={500: {"model": ErrorResponse}},
    summary="List clients with their outstanding balance",
)
async def list_clients(db: AsyncSession = Depends(get_db_session)) -> List[ClientResponse]:
    return await client_service.list_clients(db)


@router.post(
    "",
    status_code=201,
    response_model=ClientResponse,
    responses={400: {"description": "Missing field", "model": ErrorResponse}},
    summary="Create a client",
)
async def create_client(
    data: ClientCreate,
    db: AsyncSession = Depends(get_db_session),
) -> ClientResponse:
    return await client_service.create_client(db, data)


@router.get(
    "/{client_id}",
    response_model=ClientResponse,
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Fetch one client",
)
async def get_client(
    client_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> ClientResponse:
    return await client_service.get_client(db, client_id)


@router.delete(
    "/{client_id}",
    response_model=MessageResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"description": "Client still owns invoices", "model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Delete a client that owns no invoices",
)
async def delete_client(
    client_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await client_service.delete_client(db, client_id)
    return MessageResponse(message="Client deleted successfully")
