"""Domain exceptions and their HTTP mapping."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PaqueteriaError(Exception):
    """Base class for brokerage domain errors."""

    status_code = 400
    code = "error"
    default_message = "No se pudo completar la operación"

    def __init__(
        self, message: str | None = None, *, details: Any = None
    ) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(PaqueteriaError):
    status_code = 400
    code = "validation_error"
    default_message = "Datos de entrada inválidos"


class AuthenticationError(PaqueteriaError):
    status_code = 401
    code = "unauthorized"
    default_message = "No autenticado"


class ForbiddenError(PaqueteriaError):
    status_code = 403
    code = "forbidden"
    default_message = "No tienes permiso para realizar esta acción"


class NotFoundError(PaqueteriaError):
    status_code = 404
    code = "not_found"
    default_message = "Recurso no encontrado"


class ConflictError(PaqueteriaError):
    status_code = 409
    code = "conflict"
    default_message = "La operación no es válida en el estado actual"


class InsufficientFundsError(PaqueteriaError):
    """Raised when a wallet cannot cover a charge.

    Carries both figures so the client can show them.
    """

    status_code = 402
    code = "insufficient_funds"

    def __init__(self, required: Decimal, available: Decimal) -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Saldo insuficiente. Necesitas ${required:.2f} MXN "
            f"y tienes ${available:.2f} MXN",
            details={
                "required": f"{required:.2f}",
                "available": f"{available:.2f}",
            },
        )


class ExternalServiceError(PaqueteriaError):
    """The carrier gateway failed or answered with an unexpected shape."""

    status_code = 502
    code = "external_service_error"
    default_message = "No se pudo completar la operación con la paquetería"


def _error_response(exc: PaqueteriaError) -> JSONResponse:
    content: dict[str, Any] = {
        "success": False,
        "error": exc.message,
        "code": exc.code,
    }
    if exc.details is not None:
        content["details"] = jsonable_encoder(exc.details)
    return JSONResponse(status_code=exc.status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """Register domain exception handlers on a FastAPI app.

    Every handler answers with the ``{success: false, error, code}``
    envelope. Subclasses of ``PaqueteriaError`` resolve through the
    single base handler using their own ``status_code`` and ``code``.
    """

    @app.exception_handler(RequestValidationError)
    async def _request_validation(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": ValidationError.default_message,
                "code": ValidationError.code,
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(ExternalServiceError)
    async def _external_service(
        request: Request,
        exc: ExternalServiceError,
    ) -> JSONResponse:
        logger.warning(
            "External service failure on %s %s: %s",
            request.method,
            request.url.path,
            exc.message,
        )
        return _error_response(exc)

    @app.exception_handler(PaqueteriaError)
    async def _domain_error(
        request: Request,
        exc: PaqueteriaError,
    ) -> JSONResponse:
        return _error_response(exc)
