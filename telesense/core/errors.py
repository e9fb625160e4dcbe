"""
Custom exception hierarchy for telesense.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.

Only decoding and batch-size errors ever reach a client. Reasoning and
sink failures are recovered inside the pipeline; they carry codes anyway
so they read the same in logs.
"""
from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class SenseException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class TelemetryDecodeError(SenseException):
    """A transport record could not be decoded into a telemetry sample."""
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "TELEMETRY_DECODE_ERROR"

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(
            message=message,
            details={"errors": errors} if errors else {},
        )


class BatchTooLargeError(SenseException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "BATCH_TOO_LARGE"

    def __init__(self, max_items: int, received: int):
        super().__init__(
            message=f"Batch exceeds maximum size of {max_items} items. Received {received}.",
            details={"max_items": max_items, "received": received},
        )


class ReasoningError(SenseException):
    http_status = status.HTTP_502_BAD_GATEWAY
    code = "REASONING_ERROR"


class SinkDeliveryError(SenseException):
    http_status = status.HTTP_502_BAD_GATEWAY
    code = "SINK_DELIVERY_ERROR"

    def __init__(self, sink: str, message: str):
        super().__init__(message=message, details={"sink": sink})


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def sense_exception_handler(request: Request, exc: SenseException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


def _field_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in errors
    ]


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": _field_errors(exc.errors())},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
