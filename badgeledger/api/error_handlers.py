"""Error Handlers — map exceptions escaping a route onto the BadgeLedger error envelope.

Invariants:
    - Every error body has the shape produced by BadgeLedgerError.to_response()
    - Body validation failures reuse core ValidationError, so request-schema and
      domain validation look identical to clients (400 + field details)
    - External failures carrying retry_after_ms also set a Retry-After header
    - Unhandled exceptions answer 500 without leaking internals

Design Decisions:
    - Three handlers in specificity order: domain, request validation, catch-all
    - 4xx logged at WARNING (caller mistakes), 5xx at ERROR
"""

import logging
import math

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from badgeledger.core.errors import BadgeLedgerError, ErrorSeverity, ValidationError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BadgeLedgerError, badgeledger_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)


async def badgeledger_error_handler(request: Request, exc: BadgeLedgerError):
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
        extra={
            "error_code": exc.code,
            "case_id": exc.context.case_id,
            "purchase_id": exc.context.purchase_id,
            "target_id": exc.context.target_id,
        },
    )
    headers = None
    if exc.context.retry_after_ms:
        headers = {"Retry-After": str(math.ceil(exc.context.retry_after_ms / 1000))}
    return JSONResponse(
        status_code=exc.http_status, content=exc.to_response(), headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(loc) for loc in e["loc"]),
            "message": e["msg"],
            "type": e["type"],
        }
        for e in exc.errors()
    ]
    logger.warning(f"Rejected request body on {request.url.path}: {details}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ValidationError("Invalid request data", details).to_response(),
    )


async def generic_error_handler(request: Request, exc: Exception):
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc}",
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "category": "internal",
                "severity": ErrorSeverity.CRITICAL.value,
            },
        },
    )
