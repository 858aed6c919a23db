"""
Billing Ledger Backend — Payment Schemas
=========================================
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class PaymentCreate(BaseModel):
    """
    One entry of a POST /payments batch.

    Required by the service: invoice_id, mode, amount.
    payment_date defaults to the submission date.
    """
    invoice_id: Optional[int] = Field(default=None, description="Invoice being paid")
    mode: Optional[str] = Field(default=None, description="Payment mode, e.g. 'cash'")
    amount: Optional[Decimal] = Field(default=None, description="Positive amount received")
    payment_date: Optional[date] = Field(default=None, description="Date received (YYYY-MM-DD)")


class PaymentResponse(BaseModel):
    """A persisted payment row."""
    id: int
    invoice_id: int
    mode: str
    amount: Decimal
    payment_date: date
    date_created: datetime

    model_config = {"from_attributes": True}


class PaymentListItem(BaseModel):
    """Row of GET /payments."""
    id: int
    client: str = Field(description="Name of the client who owns the invoice")
    invoice_id: int
    invoice_number: str
    payment_date: date
    mode: str
    amount: Decimal
    balance_outstanding: Decimal = Field(description="Invoice's current outstanding balance")
