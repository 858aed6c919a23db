"""
Billing Ledger Backend — Report Schemas
========================================
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel


class OutstandingReportItem(BaseModel):
    """GET /reports/outstanding: one invoice that is not yet fully paid."""
    invoice_id: int
    invoice_number: str
    client_id: int
    client: str
    due_date: date
    amount: Decimal
    total_paid: Decimal
    balance_outstanding: Decimal


class ClientBalanceReportItem(BaseModel):
    """GET /reports/overall: totals for one client."""
    client_id: int
    client: str
    invoice_count: int
    total_invoiced: Decimal
    total_paid: Decimal
    balance_outstanding: Decimal


class PaymentModeReportItem(BaseModel):
    """GET /reports/payments: totals for one payment mode."""
    mode: str
    payment_count: int
    total_amount: Decimal
