"""
Exception handlers — map the error taxonomy onto HTTP responses.

Every IngestError carries its own status code and error code, so one
handler covers the whole hierarchy:

    raise PayloadTooLarge("File too large")
        → 413 {"error": "PayloadTooLarge", "message": "File too large"}

Request bodies that fail pydantic validation (wrong types, tags sent as
a JSON-encoded string, out-of-range coordinates) become 422
ValidationFailed with pydantic's own field-level detail.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from models.errors import IngestError, ValidationError

logger = logging.getLogger(__name__)


async def ingest_error_handler(request: Request, exc: IngestError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} → {exc.status_code} {exc.code}: {exc.message}")
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.message},
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"error": ValidationError.code, "detail": jsonable_encoder(exc.errors())},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(IngestError, ingest_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
