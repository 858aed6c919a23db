"""
Billing Ledger Backend — Invoice Schemas
=========================================

What:  API contract for invoice batch creation, partial update and listing.
How:   Create fields are optional here; InvoiceService checks the whole batch
       and names every missing field before anything is written.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class InvoiceCreate(BaseModel):
    """
    One entry of a POST /invoices batch (a JSON array of 1–5 of these).

    Required by the service: client_id, item, amount, due_date.
    """
    client_id: Optional[int] = Field(default=None, description="Owning client ID")
    item: Optional[str] = Field(default=None, description="Description of what is billed")
    amount: Optional[Decimal] = Field(default=None, description="Positive amount billed")
    due_date: Optional[date] = Field(default=None, description="Payment due date (YYYY-MM-DD)")
    status: Optional[str] = Field(default=None, description="Free-text status, defaults to 'Pending'")


class InvoiceUpdate(BaseModel):
    """PUT /invoices/{id} body. Null or absent fields are left unchanged."""
    amount: Optional[Decimal] = Field(default=None, description="New positive amount")
    item: Optional[str] = Field(default=None, description="New item description")


class InvoiceResponse(BaseModel):
    """A persisted invoice row."""
    id: int
    invoice_number: str
    client_id: int
    item: str
    amount: Decimal
    due_date: date
    status: str
    date_created: datetime

    model_config = {"from_attributes": True}


class InvoiceDetail(InvoiceResponse):
    """An invoice together with the balances derived from its payments."""
    full_name: str = Field(description="Owning client's name")
    total_paid: Decimal = Field(description="Sum of recorded payments")
    balance_outstanding: Decimal = Field(description="amount - total_paid")


class UnpaidInvoice(BaseModel):
    """Row of GET /invoices?client_id=: an invoice that still has a balance."""
    id: int
    invoice_number: str
    amount: Decimal
    due_date: date
    balance_outstanding: Decimal
