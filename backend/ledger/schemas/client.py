"""
Billing Ledger Backend — Client Schemas
========================================

Request fields are optional at the schema level so that ClientService can
report every missing field in one ValidationError instead of a 422.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class ClientCreate(BaseModel):
    full_name: Optional[str] = Field(default=None, description="Client's full name")
    address: Optional[str] = Field(default=None, description="Postal address")
    contact: Optional[str] = Field(default=None, description="Phone number or email")


class ClientResponse(BaseModel):
    """A client with its aggregate outstanding balance across all invoices."""
    id: int
    full_name: str
    address: str
    contact: str
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Sum of the outstanding balances of this client's invoices",
    )

    model_config = {"from_attributes": True}
