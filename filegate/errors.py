import logging
import traceback
from datetime import UTC, datetime

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from filegate.exceptions import ApiError, bad_request
from filegate.services.s3_storage import StorageError, StorageErrorKind

logger = logging.getLogger(__name__)


_STORAGE_ERROR_MAP: dict[StorageErrorKind, tuple[int, str, str | None]] = {
    StorageErrorKind.BACKEND_UNREACHABLE: (
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "SERVICE_UNAVAILABLE",
        "Storage service unavailable",
    ),
    StorageErrorKind.BUCKET_NOT_FOUND: (
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "BUCKET_NOT_FOUND",
        "Storage bucket not found",
    ),
    StorageErrorKind.ACCESS_DENIED: (status.HTTP_403_FORBIDDEN, "ACCESS_DENIED", "Storage access denied"),
    StorageErrorKind.NOT_FOUND: (status.HTTP_404_NOT_FOUND, "NOT_FOUND", "File not found"),
    # Unknown backend failures pass their message through verbatim.
    StorageErrorKind.UNKNOWN: (status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", None),
}


def storage_error_to_api_error(exc: StorageError) -> ApiError:
    status_code, code, error = _STORAGE_ERROR_MAP[exc.kind]
    if error is None:
        return ApiError(status_code=status_code, code=code, error=exc.message)
    return ApiError(status_code=status_code, code=code, error=error, message=exc.message)


def utc_timestamp() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def error_body(
    *,
    code: str,
    error: str,
    message: str | None = None,
    request: Request | None = None,
) -> dict:
    body: dict = {
        "success": False,
        "error": error,
        "code": code,
        "timestamp": utc_timestamp(),
    }
    if message:
        body["message"] = message
    if request is not None:
        body["path"] = request.url.path
        body["method"] = request.method
    return body


def _render(request: Request, exc: ApiError, *, cause: BaseException | None = None) -> JSONResponse:
    body = error_body(code=exc.code, error=exc.error, message=exc.message, request=request)
    settings = getattr(request.app.state, "settings", None)
    if cause is not None and settings is not None and not settings.is_production:
        body["stack"] = "".join(traceback.format_exception(cause))
    return JSONResponse(status_code=exc.status_code, content=body)


async def _handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return _render(request, exc)


async def _handle_storage_error(request: Request, exc: StorageError) -> JSONResponse:
    return _render(request, storage_error_to_api_error(exc), cause=exc)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    api_error = bad_request("VALIDATION_ERROR", "Validation failed", details or None)
    return _render(request, api_error)


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
        api_error = ApiError(
            status_code=status.HTTP_404_NOT_FOUND,
            code="NOT_FOUND",
            error="Route not found",
            message=f"Cannot {request.method} {request.url.path}",
        )
    elif exc.status_code == status.HTTP_401_UNAUTHORIZED:
        api_error = ApiError(status_code=exc.status_code, code="UNAUTHORIZED", error=str(exc.detail))
    else:
        code = "VALIDATION_ERROR" if exc.status_code < 500 else "INTERNAL_ERROR"
        api_error = ApiError(status_code=exc.status_code, code=code, error=str(exc.detail))
    return _render(request, api_error)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    api_error = ApiError(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="INTERNAL_ERROR",
        error=str(exc) or "Internal Server Error",
    )
    return _render(request, api_error, cause=exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _handle_api_error)
    app.add_exception_handler(StorageError, _handle_storage_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)
    app.add_exception_handler(Exception, _handle_unexpected_error)
