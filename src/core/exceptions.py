# src/core/exceptions.py
"""
Typed errors raised by the scheduling core.

Service functions raise these instead of ``HTTPException`` so they stay usable
outside a request; ``register_exception_handlers`` maps them to stable JSON
responses at the HTTP boundary.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class SchedulingError(Exception):
    code = "scheduling_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.detail}


class NotFoundError(SchedulingError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ValidationError(SchedulingError):
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(SchedulingError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, detail: str, reason: Optional[str] = None):
        super().__init__(detail)
        self.reason = reason

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.reason:
            payload["reason"] = self.reason
        return payload


class InsufficientResourceError(SchedulingError):
    code = "insufficient_resource"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, resource_type: str, detail: Optional[str] = None):
        super().__init__(detail or f"Not enough resources of type: {resource_type}")
        self.resource_type = resource_type

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["resource_type"] = self.resource_type
        return payload


class AuthorizationError(SchedulingError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class InvalidStateError(SchedulingError):
    code = "invalid_state"
    status_code = status.HTTP_409_CONFLICT


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    logger.info(
        "%s %s rejected: %s (%s)",
        request.method,
        request.url.path,
        exc.code,
        exc.detail,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SchedulingError, scheduling_error_handler)
