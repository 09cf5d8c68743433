import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request."

    def __init__(self, message: str | None = None, errors: dict[str, list[str]] | None = None):
        super().__init__(status_code=self.status_code, detail=message or self.default_message)
        self.errors = errors


class BadRequest(ApiError):
    pass


class NotAuthenticated(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized access."


class Forbidden(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden."


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found."


class Conflict(ApiError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict."


class ValidationFailed(ApiError):
    status_code = 422
    default_message = "Validation Error"


def field_error(field: str, message: str) -> ValidationFailed:
    return ValidationFailed(errors={field: [message]})


def success(data: Any = None, message: str = "Success", status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "Success", "message": message, "data": jsonable_encoder(data if data is not None else [])},
    )


def error_response(message: str, status_code: int, errors: Any = None) -> JSONResponse:
    content: dict[str, Any] = {"status": "Error", "message": message}
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content)


def _collect_validation_errors(exc: RequestValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for item in exc.errors():
        location = [str(part) for part in item.get("loc", ()) if part not in ("body", "query", "path", "form")]
        errors.setdefault(".".join(location) or "__root__", []).append(item.get("msg", "Invalid value"))
    return errors


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(str(exc.detail), exc.status_code, getattr(exc, "errors", None))


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response("Validation Error", 422, _collect_validation_errors(exc))


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response("Internal server error.", status.HTTP_500_INTERNAL_SERVER_ERROR)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
