# Services package init
"""
Billing Ledger Backend — Services Layer
========================================

What:  Business logic between routes (HTTP) and the database.
How:   Services are stateless singletons. Each method receives the request's
       AsyncSession, so all work of one request shares one transaction.

Service Inventory:
    - balance:          Outstanding-balance derivation (pure + SQL forms)
    - ClientService:    Client CRUD with aggregate balance, reject-if-referenced delete
    - InvoiceService:   Invoice batch writer, listings, partial update, delete
    - PaymentService:   Payment batch writer with locked, running-balance validation
    - ReportService:    Outstanding / overall / payments-by-mode reports
"""
