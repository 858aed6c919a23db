"""ORM models. Importing this package registers every table on Base.metadata."""

from ledger.models.client import Client
from ledger.models.invoice import DEFAULT_INVOICE_STATUS, Invoice
from ledger.models.payment import Payment

__all__ = ["Client", "Invoice", "Payment", "DEFAULT_INVOICE_STATUS"]
