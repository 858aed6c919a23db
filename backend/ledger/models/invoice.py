"""
Billing Ledger Backend — Invoice Model
=======================================

What:  ORM model for the `invoices` table.
How:   The outstanding balance is NOT a column. It is derived from the
       payment rows on every read (see ledger.services.balance).

Table Design:
    - invoice_number: UNIQUE. The constraint, not the generator, is what
      guarantees two invoices never share a number.
    - amount: NUMERIC(12,2) with CHECK (amount > 0).
    - status: free-text annotation, defaults to 'Pending'. It is never
      reconciled with the derived balance.
    - client_id: RESTRICT on delete; a client with invoices cannot be removed.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    TIMESTAMP,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base

DEFAULT_INVOICE_STATUS = "Pending"


class Invoice(Base):
    """An amount billed to a client, payable by a due date."""

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    client_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
    )

    invoice_number: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
    )

    item: Mapped[str] = mapped_column(String(500), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=DEFAULT_INVOICE_STATUS,
        server_default=text(f"'{DEFAULT_INVOICE_STATUS}'"),
    )

    date_created: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_invoices_amount_positive"),
        Index("idx_invoices_client_id", "client_id"),
        Index("idx_invoices_due_date", "due_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id}, number='{self.invoice_number}', "
            f"amount={self.amount}, status='{self.status}')>"
        )
