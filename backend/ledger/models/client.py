"""
Billing Ledger Backend — Client Model
======================================

What:  ORM model for the `clients` table.
Who:   Owns zero or more invoices. Deleting a client that still owns
       invoices is refused by ClientService (no cascade).
"""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base


class Client(Base):
    """A billed party."""

    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    contact: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, full_name='{self.full_name}')>"
