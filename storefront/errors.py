"""Error taxonomy and the JSON error handlers installed on the app.

Services raise the exceptions below; the handlers turn every error into the
same response shape::

    {"status_code": 404, "error": "Not Found", "detail": "order not found",
     "path": "/admin/orders/9", "method": "GET", "timestamp": "..."}
"""
from datetime import datetime, timezone
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .utils import get_logger

logger = get_logger(__name__)


class StorefrontError(Exception):
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class BadRequestError(StorefrontError):
    status_code = 400


class MalformedRequestError(BadRequestError):
    pass


class UnauthorizedError(StorefrontError):
    status_code = 401


class ForbiddenError(StorefrontError):
    status_code = 403


class NotFoundError(StorefrontError):
    status_code = 404


class ConflictError(StorefrontError):
    status_code = 409


class ConfigurationError(StorefrontError):
    status_code = 500


class PaymentGatewayError(StorefrontError):
    status_code = 502


def error_body(request: Request, status_code: int, detail) -> dict:
    return {
        "status_code": status_code,
        "error": HTTPStatus(status_code).phrase,
        "detail": detail,
        "path": request.url.path,
        "method": request.method,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error("HTTP %s on %s %s: %s", exc.status_code, request.method, request.url.path, exc.message)
    else:
        logger.info("HTTP %s on %s %s: %s", exc.status_code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(request, exc.status_code, exc.message))


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_body(request, exc.status_code, exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Validation is rejected at the boundary with 400 and one entry per field
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        fields.append({"field": ".".join(loc) or "body", "message": err.get("msg", "invalid value")})
    return JSONResponse(status_code=400, content=error_body(request, 400, fields))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body(request, 500, "Internal server error"))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
