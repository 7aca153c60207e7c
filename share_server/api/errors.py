"""API error taxonomy and FastAPI exception handlers.

Every error response is ``{"error": <code>, "message": <short text>}``. No stack
traces, query text or connection details are ever sent to the client.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from share_server.services.errors import NotFoundError

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An error with a stable machine-readable code."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.headers = headers


# ── Taxonomy ────────────────────────────────────────────────────────


def bad_json() -> ApiError:
    return ApiError(status.HTTP_400_BAD_REQUEST, "bad_json", "invalid json")


def missing_schema() -> ApiError:
    return ApiError(status.HTTP_400_BAD_REQUEST, "missing_schema", "schema is required")


def invalid_schema(prefixes: tuple[str, ...]) -> ApiError:
    tags = " or ".join(f"{p}..." for p in prefixes)
    return ApiError(status.HTTP_400_BAD_REQUEST, "invalid_schema", f"schema must start with {tags}")


def missing_update() -> ApiError:
    return ApiError(status.HTTP_400_BAD_REQUEST, "missing_update", "schema or name is required")


def missing_field(code: str, field: str) -> ApiError:
    return ApiError(status.HTTP_400_BAD_REQUEST, code, f"{field} is required")


def body_too_large() -> ApiError:
    return ApiError(
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "body_too_large", "request body too large"
    )


def password_required() -> ApiError:
    return ApiError(status.HTTP_401_UNAUTHORIZED, "password_required", "server password required")


def invalid_password() -> ApiError:
    return ApiError(status.HTTP_401_UNAUTHORIZED, "invalid_password", "invalid server password")


def unauthorized() -> ApiError:
    return ApiError(
        status.HTTP_401_UNAUTHORIZED,
        "unauthorized",
        "unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def oidc_not_enabled() -> ApiError:
    return ApiError(status.HTTP_401_UNAUTHORIZED, "oidc_not_enabled", "oidc not enabled")


def forbidden(message: str = "not allowed") -> ApiError:
    return ApiError(status.HTTP_403_FORBIDDEN, "forbidden", message)


def not_found(what: str = "resource") -> ApiError:
    return ApiError(status.HTTP_404_NOT_FOUND, "not_found", f"{what} not found")


def unhealthy() -> ApiError:
    return ApiError(status.HTTP_503_SERVICE_UNAVAILABLE, "unhealthy", "database unreachable")


@contextmanager
def store_errors(db: Session, code: str, message: str) -> Iterator[None]:
    """Turn unexpected SQLAlchemy failures into a 500 with a generic db_* code.

    NotFoundError passes through untouched for the 404 handler.
    """
    try:
        yield
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Store operation failed (%s)", code)
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, code, message) from None


# ── Handlers ────────────────────────────────────────────────────────


def error_response(
    status_code: int, code: str, message: str, headers: dict[str, str] | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": code, "message": message},
        headers=headers,
    )


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(exc.status_code, exc.code, exc.message, exc.headers)


async def _not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return error_response(status.HTTP_404_NOT_FOUND, "not_found", str(exc))


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return error_response(exc.status_code, "not_found", "not found")
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        return error_response(exc.status_code, "method_not_allowed", "method not allowed")
    return error_response(exc.status_code, "error", str(exc.detail))


async def _validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(status.HTTP_400_BAD_REQUEST, "bad_json", "invalid request")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(NotFoundError, _not_found_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_handler)
