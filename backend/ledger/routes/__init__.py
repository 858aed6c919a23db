# Routes package init
"""
Billing Ledger Backend — API Routes Package
============================================

Route Inventory:
    - clients.py:   GET/POST /clients, GET/DELETE /clients/{id}
    - invoices.py:  GET/POST /invoices (?client_id=), GET/PUT/DELETE /invoices/{id}
    - payments.py:  GET/POST /payments, DELETE /payments/{id}
    - reports.py:   GET /reports/outstanding | /reports/overall | /reports/payments
    - health.py:    GET /, GET /health

Routes stay thin: read the request, call a service, set the status code.
Errors are raised as ledger exceptions and formatted by the handlers in main.py.
"""
