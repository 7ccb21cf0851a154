"""
Translation of kernel exceptions into HTTP error responses.

Every error body has the same shape::

    {"error": "<code>", "message": "<text>", "details": {...}}

``details`` carries the structured attributes of the exception in camelCase
(``unitIds`` for unit conflicts, ``missingFields`` for guard failures ...).
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel

from harvest_kernel.exceptions import (
    BatchNotFoundError,
    DraftNotFoundError,
    HarvestKernelError,
)
from harvest_kernel.logging_config import get_logger

logger = get_logger("api.errors")

# Ordered most specific first.
STATUS_BY_ERROR: tuple[tuple[type[HarvestKernelError], int], ...] = (
    (BatchNotFoundError, 404),
    (DraftNotFoundError, 404),
    (HarvestKernelError, 400),
)

_RENAMED = {"unit_codes": "unitIds"}


def status_for(exc: HarvestKernelError) -> int:
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 400


def error_details(exc: HarvestKernelError) -> dict[str, Any]:
    details = {
        _RENAMED.get(key, to_camel(key)): value
        for key, value in vars(exc).items()
        if not key.startswith("_") and value is not None
    }
    return jsonable_encoder(details)


def error_body(code: str, message: str, details: dict[str, Any] | None = None) -> dict:
    return {"error": code, "message": message, "details": details or {}}


async def handle_kernel_error(request: Request, exc: HarvestKernelError) -> JSONResponse:
    status = status_for(exc)
    logger.info(
        "request_rejected",
        extra={
            "path": request.url.path,
            "method": request.method,
            "status_code": status,
            "error_code": exc.code,
        },
    )
    return JSONResponse(
        status_code=status,
        content=error_body(exc.code, str(exc), error_details(exc)),
    )


async def handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_body("VALIDATION_ERROR", "Request validation failed", {"errors": errors}),
    )


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        exc_info=exc,
        extra={"path": request.url.path, "method": request.method},
    )
    return JSONResponse(
        status_code=500,
        content=error_body("INTERNAL_ERROR", "Internal server error"),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HarvestKernelError, handle_kernel_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)
