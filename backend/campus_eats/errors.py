"""Domain errors and their RFC 7807 problem-details rendering.

Services raise the exceptions defined here and never build HTTP responses
themselves; :func:`register_exception_handlers` maps them onto
``application/problem+json`` bodies of the form::

    {"type": "about:blank", "title": "Conflict", "status": 409,
     "detail": "...", "instance": "/api/v1/..."}
"""

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    title: str = "Internal Server Error"

    def __init__(self, detail: str = "", *, headers: dict[str, str] | None = None) -> None:
        super().__init__(detail or self.title)
        self.detail = detail or self.title
        self.headers = headers


class ValidationError(ServiceError):
    status_code = 400
    title = "Bad Request"


class InvalidRating(ValidationError):
    def __init__(self, rating: float) -> None:
        super().__init__(f"rating must be between 0 and 5, got {rating}")
        self.rating = rating


class Unauthorized(ServiceError):
    status_code = 401
    title = "Unauthorized"


class NotFound(ServiceError):
    status_code = 404
    title = "Not Found"


class Forbidden(ServiceError):
    status_code = 403
    title = "Forbidden"


class Conflict(ServiceError):
    status_code = 409
    title = "Conflict"


class DuplicateStore(Conflict):
    def __init__(self, detail: str = "a store with this name and address already exists") -> None:
        super().__init__(detail)


class DuplicateReview(Conflict):
    def __init__(self, detail: str = "you have already reviewed this store; update your existing review instead") -> None:
        super().__init__(detail)


class AlreadyProcessed(Conflict):
    def __init__(self, entity: str, status: str) -> None:
        super().__init__(f"{entity} already processed (status: {status})")
        self.status = status


class InProgress(ServiceError):
    status_code = 429
    title = "Too Many Requests"


class InternalError(ServiceError):
    status_code = 500
    title = "Internal Server Error"


def problem_response(
    status: int,
    title: str,
    detail: str | None = None,
    instance: str | None = None,
    headers: dict[str, str] | None = None,
    **extra,
) -> JSONResponse:
    body = {"type": "about:blank", "title": title, "status": status}
    if detail:
        body["detail"] = detail
    if instance:
        body["instance"] = instance
    body.update(extra)
    return JSONResponse(
        status_code=status,
        content=jsonable_encoder(body),
        media_type=PROBLEM_MEDIA_TYPE,
        headers=headers,
    )


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Service failure on %s: %s", request.url.path, exc.detail)
        detail = "an internal error occurred"
    else:
        detail = exc.detail
    return problem_response(
        exc.status_code, exc.title, detail, request.url.path, headers=exc.headers
    )


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    try:
        title = HTTPStatus(exc.status_code).phrase
    except ValueError:
        title = "Error"
    return problem_response(
        exc.status_code, title, str(exc.detail), request.url.path, headers=getattr(exc, "headers", None)
    )


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return problem_response(
        400, "Bad Request", "request validation failed", request.url.path, errors=errors
    )


async def _database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s", request.url.path, exc_info=exc)
    return problem_response(
        500, "Internal Server Error", "an internal error occurred", request.url.path
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path, exc_info=exc)
    return problem_response(
        500, "Internal Server Error", "an internal error occurred", request.url.path
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, _database_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
