"""
Billing Ledger Backend — Shared Response Schemas
=================================================

What:  Response shapes used by every router: errors, messages, health.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Error body returned by every exception handler.

    Example:
        {
            "error": "business_rule_violation",
            "message": "Payment of 50.00 exceeds outstanding balance 40.00 for invoice 7",
            "details": {"rule": "overpayment", "index": 1, "invoice_id": 7},
            "request_id": "1f0c9a2e"
        }
    """
    error: str = Field(description="Machine-readable error category")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class MessageResponse(BaseModel):
    message: str = Field(description="Human-readable outcome")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")
