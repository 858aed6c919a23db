"""
Billing Ledger Backend — Application Package
=============================================

What: Accounts-receivable API for clients, invoices and payments.
How:  Layered the same way throughout:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │  Services (balances, batch writers) │  ← Business rules, transactions
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

Balances are never stored. Every outstanding figure is derived from the
payment rows at read time by `ledger.services.balance`.
"""

__version__ = "1.0.0"
