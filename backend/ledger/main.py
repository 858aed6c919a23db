"""
Billing Ledger Backend — FastAPI Application Factory
=====================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() builds the Database handle, registers middleware,
       exception handlers and routers, and returns the app.
Who:   uvicorn (`uvicorn ledger.main:app`) and the test suite, which passes
       its own Settings to point the app at a throwaway database.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware:  Request ID → Logging → CORS           │
    │                                                     │
    │  Routes:  /clients  /invoices  /payments  /reports  │
    │           /  /health                                │
    │                                                     │
    │  Exception Handlers:                                │
    │   Validation/BusinessRule→400  NotFound→404         │
    │   Conflict→409  Persistence→500  Unexpected→500     │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:   configure logging, verify the database (with retries)
    Shutdown:  dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ledger import __version__
from ledger.config import Settings, settings as default_settings
from ledger.database import Database
from ledger.exceptions import (
    BusinessRuleError,
    ConflictError,
    LedgerError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from ledger.middleware.logging import RequestLoggingMiddleware
from ledger.middleware.request_id import RequestIDMiddleware, request_id_var
from ledger.routes import clients, health, invoices, payments, reports
from ledger.services.invoice_service import InvoiceService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once, before anything else logs.

    Format: 2025-01-15T12:00:00 [INFO] ledger.services.payment_service: ...
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # uvicorn's access log duplicates RequestLoggingMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if level == "DEBUG" else logging.WARNING
    )


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config: Settings = app.state.settings
    database: Database = app.state.database

    setup_logging(config.log_level)
    logger.info("=" * 60)
    logger.info("Billing ledger backend %s starting up...", __version__)

    await database.verify()

    logger.info("Server ready at http://%s:%d", config.host, config.port)
    logger.info("=" * 60)

    yield

    logger.info("Billing ledger backend shutting down...")
    await database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "") or request_id_var.get("")


def _error_body(request: Request, error: str, message: str, details=None) -> dict:
    body = {"error": error, "message": message, "request_id": _request_id(request)}
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map ledger exceptions onto HTTP responses.

        BusinessRuleError       → 400 business_rule_violation
        ValidationError         → 400 validation_error
        RequestValidationError  → 400 validation_error (malformed JSON / types)
        NotFoundError           → 404 not_found
        ConflictError           → 409 conflict
        PersistenceError        → 500 server_error (generic message)
        Exception               → 500 internal_server_error

    Client errors echo `details`; server errors log them and return a
    generic message.
    """

    @app.exception_handler(BusinessRuleError)
    async def handle_business_rule(request: Request, exc: BusinessRuleError):
        logger.warning("[%s] Business rule violated: %s", _request_id(request), exc.message)
        return JSONResponse(
            status_code=400,
            content=_error_body(request, "business_rule_violation", exc.message, exc.context),
        )

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", _request_id(request), exc.message)
        return JSONResponse(
            status_code=400,
            content=_error_body(request, "validation_error", exc.message, exc.context),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {
                "location": ".".join(str(part) for part in err.get("loc", ())),
                "problem": err.get("msg", "invalid value"),
            }
            for err in exc.errors()
        ]
        logger.warning("[%s] Malformed request: %s", _request_id(request), errors)
        return JSONResponse(
            status_code=400,
            content=_error_body(
                request,
                "validation_error",
                "The request body or parameters are malformed.",
                {"errors": errors},
            ),
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(
            status_code=404,
            content=_error_body(request, "not_found", exc.message),
        )

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        logger.warning("[%s] Conflict: %s", _request_id(request), exc.message)
        return JSONResponse(
            status_code=409,
            content=_error_body(request, "conflict", exc.message, exc.context),
        )

    @app.exception_handler(PersistenceError)
    async def handle_persistence_error(request: Request, exc: PersistenceError):
        logger.error(
            "[%s] Persistence error: %s | Context: %s",
            _request_id(request),
            exc.message,
            exc.context,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(
                request,
                "server_error",
                "An internal error occurred. Please try again later.",
            ),
        )

    @app.exception_handler(LedgerError)
    async def handle_ledger_error(request: Request, exc: LedgerError):
        logger.error("[%s] Unhandled ledger error: %s", _request_id(request), exc.message)
        return JSONResponse(
            status_code=500,
            content=_error_body(request, "server_error", exc.message),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            _request_id(request),
            str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(
                request,
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    config: Optional[Settings] = None,
    database: Optional[Database] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config:   Settings to use (defaults to the environment-loaded singleton)
        database: Store handle to use (defaults to one built from `config`)
    """
    config = config or default_settings

    app = FastAPI(
        title="Billing Ledger API",
        description=(
            "Clients, invoices and payments for a small accounts-receivable workflow. "
            "Outstanding balances are derived from recorded payments on every read."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.database = database or Database(config)
    app.state.invoice_service = InvoiceService(config=config)

    # Last added runs first: RequestID → Logging → CORS
    origins = config.cors_origins_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(clients.router)
    app.include_router(invoices.router)
    app.include_router(payments.router)
    app.include_router(reports.router)

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve `app` with uvicorn on the configured port."""
    uvicorn.run(
        "ledger.main:app",
        host=default_settings.host,
        port=default_settings.port,
        log_level=default_settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
