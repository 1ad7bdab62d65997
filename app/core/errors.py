from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException


class ApiErrorCode(Enum):
    MISSING_PARAMETERS = "missing_parameters"
    MISSING_CREDENTIALS = "missing_credentials"
    INVALID_EXCHANGE = "invalid_exchange"
    UNSUPPORTED_EXCHANGE = "unsupported_exchange"
    UPSTREAM_FAILURE = "upstream_failure"
    NOT_CONFIGURED = "not_configured"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"


_STATUS_BY_CODE = {
    ApiErrorCode.MISSING_PARAMETERS: status.HTTP_400_BAD_REQUEST,
    ApiErrorCode.MISSING_CREDENTIALS: status.HTTP_400_BAD_REQUEST,
    ApiErrorCode.INVALID_EXCHANGE: status.HTTP_400_BAD_REQUEST,
    ApiErrorCode.UNSUPPORTED_EXCHANGE: status.HTTP_400_BAD_REQUEST,
    ApiErrorCode.UPSTREAM_FAILURE: status.HTTP_502_BAD_GATEWAY,
    ApiErrorCode.NOT_CONFIGURED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ApiErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ApiErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ApiErrorCode.SERVER_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ApiError(Exception):
    """
    Error raised by services and routes; rendered as ``{"error": message, **extra}``.

    ``status_code`` overrides the status implied by ``code`` (used when an
    upstream status is passed through, e.g. Binance listen-key errors).
    """

    def __init__(
        self,
        message: str,
        code: ApiErrorCode = ApiErrorCode.SERVER_ERROR,
        status_code: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code or _STATUS_BY_CODE[code]
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


def missing_parameters(message: str = "Missing parameters") -> ApiError:
    return ApiError(message, ApiErrorCode.MISSING_PARAMETERS)


def not_configured(message: str) -> ApiError:
    return ApiError(message, ApiErrorCode.NOT_CONFIGURED)


async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    content = detail if isinstance(detail, dict) else {"error": str(detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": f"{location}: {message}" if location else message, "details": jsonable_errors(errors)},
    )


def jsonable_errors(errors):
    return [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg"), "type": err.get("type")}
        for err in errors
    ]


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Server error", "details": str(exc)},
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
