"""
Error taxonomy and the JSON error envelope.

Every failure leaves the API as ``{"success": false, "error": {"code", "message"}}``.
Services raise the domain errors below; routers never translate them by hand.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException


class HolyTravelsError(Exception):
    """Base class for errors surfaced to API callers"""
    code = "ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(HolyTravelsError):
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class InventoryError(HolyTravelsError):
    code = "INSUFFICIENT_SEATS"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidStateError(HolyTravelsError):
    code = "INVALID_STATE"
    status_code = status.HTTP_400_BAD_REQUEST


class PaymentVerificationError(HolyTravelsError):
    code = "PAYMENT_VERIFICATION_FAILED"
    status_code = status.HTTP_400_BAD_REQUEST


class AuthorizationError(HolyTravelsError):
    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(HolyTravelsError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class PaymentGatewayError(HolyTravelsError):
    code = "PAYMENT_GATEWAY_ERROR"
    status_code = status.HTTP_502_BAD_GATEWAY


def error_body(code: str, message: str) -> dict:
    return {"success": False, "error": {"code": code, "message": message}}


_HTTP_CODES = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_409_CONFLICT: "CONFLICT",
}


async def _domain_error_handler(request: Request, exc: HolyTravelsError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message))


async def _http_exception_handler(request: Request, exc: HTTPException):
    code = _HTTP_CODES.get(exc.status_code, "ERROR")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else err.get("msg", ""))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(ValidationError.code, "; ".join(messages) or "Invalid request"),
    )


async def _integrity_error_handler(request: Request, exc: IntegrityError):
    logger.bind(event="db_conflict").warning("Integrity error on {}: {}", request.url.path, exc.orig)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=error_body("CONFLICT", "Request conflicts with existing data"),
    )


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.bind(event="unhandled_error").exception("Unhandled error on {}", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("SERVER_ERROR", "Server error"),
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(HolyTravelsError, _domain_error_handler)
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(IntegrityError, _integrity_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
