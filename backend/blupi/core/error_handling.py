"""Request-id propagation, request logging, and JSON error responses.

Every error body has the same shape:

    {"detail": ..., "message": "<human readable>", "request_id": "..."}

`detail` keeps FastAPI's conventional payload (a string or a list of
validation errors) while `message` is always a string suitable for a toast.
"""

from __future__ import annotations

from http import HTTPStatus
from time import perf_counter
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from fastapi import status
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from blupi.core.config import settings
from blupi.core.errors import BlupiError, IntegrationError
from blupi.core.logging import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI
    from starlette.requests import Request
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

REQUEST_ID_HEADER = "X-Request-Id"
_REQUEST_ID_HEADER_BYTES = REQUEST_ID_HEADER.lower().encode("latin-1")
_HEALTH_PATHS = frozenset({"/health", "/healthz", "/readyz"})
_INTERNAL_ERROR = "Internal Server Error"
_RATE_LIMITED_MESSAGE = "Too many requests. Please try again in a moment."
_VALIDATION_MESSAGE = "Request validation failed."

logger = get_logger(__name__)


class RequestIdMiddleware:
    """Attach a request id to each HTTP request and log request completion."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = self._request_id_from_headers(scope) or uuid4().hex
        scope.setdefault("state", {})["request_id"] = request_id
        encoded_request_id = request_id.encode("latin-1", errors="replace")
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        started = perf_counter()

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = int(message["status"])
                headers = list(message.get("headers", []))
                if not any(name.lower() == _REQUEST_ID_HEADER_BYTES for name, _ in headers):
                    headers.append((_REQUEST_ID_HEADER_BYTES, encoded_request_id))
                message = {**message, "headers": headers}
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            path = str(scope.get("path", ""))
            if path not in _HEALTH_PATHS or settings.request_log_include_health:
                _log_request(
                    method=str(scope.get("method", "")),
                    path=path,
                    status_code=status_code,
                    duration_ms=(perf_counter() - started) * 1000,
                    request_id=request_id,
                )

    @staticmethod
    def _request_id_from_headers(scope: Scope) -> str | None:
        for name, value in scope.get("headers", []):
            if name.lower() == _REQUEST_ID_HEADER_BYTES:
                candidate = value.decode("latin-1").strip()
                return candidate or None
        return None


def _log_request(
    *,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    request_id: str,
) -> None:
    extra = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": round(duration_ms, 2),
        "request_id": request_id,
    }
    threshold = settings.request_log_slow_ms
    if threshold and duration_ms >= threshold:
        logger.warning("http.request.slow", extra={**extra, "slow_threshold_ms": threshold})
        return
    logger.info("http.request.complete", extra=extra)


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(item) for item in value]
    return str(value)


def _error_payload(
    *,
    detail: Any,
    request_id: str | None,
    message: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"detail": _json_safe(detail)}
    if message is not None:
        payload["message"] = message
    if request_id:
        payload["request_id"] = request_id
    return payload


def _get_request_id(request: Request) -> str | None:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    return None


def _error_response(
    request: Request,
    *,
    status_code: int,
    detail: Any,
    message: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    request_id = _get_request_id(request)
    response_headers = dict(headers or {})
    if request_id:
        response_headers[REQUEST_ID_HEADER] = request_id
    return JSONResponse(
        status_code=status_code,
        content=_error_payload(detail=detail, request_id=request_id, message=message),
        headers=response_headers,
    )


def _validation_message(errors: list[dict[str, Any]]) -> str:
    if not errors:
        return _VALIDATION_MESSAGE
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    msg = str(first.get("msg", "")).strip() or _VALIDATION_MESSAGE
    return f"{loc}: {msg}" if loc else msg


async def _request_validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    if not isinstance(exc, RequestValidationError):
        msg = "Expected RequestValidationError"
        raise TypeError(msg)
    errors = list(exc.errors())
    return _error_response(
        request,
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=errors,
        message=_validation_message(errors),
    )


async def _response_validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    if not isinstance(exc, ResponseValidationError):
        msg = "Expected ResponseValidationError"
        raise TypeError(msg)
    logger.error(
        "http.response.validation_failed",
        extra={"path": request.url.path, "request_id": _get_request_id(request)},
    )
    return _error_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=_INTERNAL_ERROR,
        message=_INTERNAL_ERROR,
    )


async def _http_exception_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    if not isinstance(exc, StarletteHTTPException):
        msg = "Expected StarletteHTTPException"
        raise TypeError(msg)
    if isinstance(exc.detail, str) and exc.detail:
        message = exc.detail
    elif isinstance(exc.detail, dict) and isinstance(exc.detail.get("message"), str):
        message = exc.detail["message"]
    else:
        try:
            message = HTTPStatus(exc.status_code).phrase
        except ValueError:
            message = "Request failed"
    return _error_response(
        request,
        status_code=exc.status_code,
        detail=exc.detail,
        message=message,
        headers=dict(exc.headers or {}),
    )


async def _blupi_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, BlupiError):
        msg = "Expected BlupiError"
        raise TypeError(msg)
    if isinstance(exc, IntegrationError):
        logger.warning(
            "integration.request_failed",
            extra={
                "provider": exc.provider,
                "path": request.url.path,
                "request_id": _get_request_id(request),
                "cause": repr(exc.__cause__) if exc.__cause__ else None,
            },
        )
    return _error_response(
        request,
        status_code=exc.status_code,
        detail=exc.message,
        message=exc.message,
    )


async def _rate_limit_exceeded_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, RateLimitExceeded):
        msg = "Expected RateLimitExceeded"
        raise TypeError(msg)
    logger.info(
        "http.request.rate_limited",
        extra={"path": request.url.path, "limit": str(exc.detail)},
    )
    return _error_response(
        request,
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=f"Rate limit exceeded: {exc.detail}",
        message=_RATE_LIMITED_MESSAGE,
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "http.request.unhandled_exception",
        extra={
            "path": request.url.path,
            "request_id": _get_request_id(request),
            "error_type": exc.__class__.__name__,
        },
    )
    return _error_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=_INTERNAL_ERROR,
        message=_INTERNAL_ERROR,
    )


def install_error_handling(app: FastAPI) -> None:
    """Register request-id middleware and JSON exception handlers on an app."""
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(RequestValidationError, _request_validation_exception_handler)
    app.add_exception_handler(ResponseValidationError, _response_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_exception_handler)
    app.add_exception_handler(BlupiError, _blupi_error_handler)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
