"""
Error taxonomy for the sports camp API.

Services raise these; the handlers registered by ``register_error_handlers``
turn them into ``{"error": true, "message": ...}`` bodies.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "internal error"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        self.message = message or self.default_message
        self.code = code or self.__class__.__name__
        super().__init__(self.message)


class UnauthorizedException(DomainException):
    """Missing, garbled or expired bearer credential."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "unauthorized access"


class InvalidToken(UnauthorizedException):
    """Token signature is invalid or the token has expired."""


class ForbiddenException(DomainException):
    """Authenticated, but the caller's role does not allow the action."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "forbidden message"


class NotFoundException(DomainException):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "not found"


class ConflictException(DomainException):
    status_code = status.HTTP_409_CONFLICT
    default_message = "conflict"


class UpstreamFailure(DomainException):
    """The payment gateway or another collaborator call failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "upstream service failed"


class StoreUnavailable(UpstreamFailure):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "document store unavailable"


def error_body(message: str, code: Optional[str] = None, **extra) -> dict:
    body = {"error": True, "message": message}
    if code:
        body["code"] = code
    body.update(extra)
    return body


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.message, exc.code),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=HTTP_422_UNPROCESSABLE,
            content=error_body(
                "invalid request body",
                "RequestValidationError",
                errors=jsonable_encoder(exc.errors()),
            ),
        )
