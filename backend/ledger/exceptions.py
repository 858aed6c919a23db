"""
Billing Ledger Backend — Custom Exception Hierarchy
====================================================

What:  Application-specific exceptions, one per failure category.
How:   Each exception carries a user-facing message and a context dict.
       Global handlers registered in main.py turn them into JSON error
       responses with the matching HTTP status code.
Who:   Raised by services; caught by the handlers in main.py.

Exception Hierarchy:
    LedgerError (base)
    ├── ValidationError              → 400 Bad Request
    │   └── BusinessRuleError        → 400 Bad Request (batch size, overpayment, ...)
    ├── NotFoundError                → 404 Not Found
    ├── ConflictError                → 409 Conflict
    └── PersistenceError             → 500 Internal Server Error
        └── IntegrityViolationError  → 500 (a derived balance went negative)

BusinessRuleError extends ValidationError: every business-rule rejection is
also an input the caller has to change before retrying.
"""

from typing import Any, Dict, Iterable, Optional


class LedgerError(Exception):
    """
    Base exception for all ledger errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional detail. Returned as `details` for client errors,
                  logged only for server errors.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(LedgerError):
    """
    Raised when client input is missing or malformed.

    HTTP: 400 Bad Request

    Example response:
        {
            "error": "validation_error",
            "message": "Invoice 1 is missing required field(s): amount, due_date",
            "details": {"index": 1, "fields": ["amount", "due_date"]}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        fields: Optional[Iterable[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        if fields:
            fields = list(fields)
            ctx["fields"] = fields
        super().__init__(message=message, context=ctx)
        self.field = field
        self.fields = fields or ([field] if field else [])


class BusinessRuleError(ValidationError):
    """
    Raised when a well-formed request breaks a ledger rule.

    HTTP: 400 Bad Request

    `rule` names the rule that was broken:
        invoice_batch_size  — zero or too many invoices in one call
        already_settled     — payment against an invoice with nothing outstanding
        overpayment         — payment larger than the outstanding balance
        amount_below_paid   — invoice amount lowered below what was already paid
    """

    def __init__(
        self,
        message: str,
        rule: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["rule"] = rule
        super().__init__(message=message, context=ctx)
        self.rule = rule


class NotFoundError(LedgerError):
    """
    Raised when a referenced entity does not exist.

    HTTP: 404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id is not None:
            message = f"{resource.capitalize()} {resource_id} was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(LedgerError):
    """
    Raised when a write collides with existing state.

    When:  Generated invoice number already taken; deleting a client that
           still owns invoices or an invoice that still has payments.
    HTTP:  409 Conflict
    """

    def __init__(
        self,
        message: str = "The request conflicts with existing records",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PersistenceError(LedgerError):
    """
    Raised when the store is unreachable, times out or rejects a write.

    HTTP: 500 Internal Server Error

    The message returned to the client is always generic. Driver errors,
    SQL text and constraint names only go to the server log.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class IntegrityViolationError(PersistenceError):
    """
    Raised when a derived balance comes out negative.

    Payments are validated against the outstanding balance before they are
    written, so a negative balance means the rows were changed outside the
    ledger's rules. The value is reported, never floored to zero.
    """

    def __init__(
        self,
        message: str = "Ledger data is inconsistent",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
