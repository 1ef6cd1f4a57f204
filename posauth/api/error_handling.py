"""Application-wide exception handlers for domain and storage errors."""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from posauth.core.logging import get_logger
from posauth.services.errors import FieldError, PasswordHashError, StoreError, ValidationError

logger = get_logger("errors")


def _validation_response(errors: list[FieldError]) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Validation failed",
            "errors": [{"field": e.field, "message": e.message} for e in errors],
        },
    )


def _field_errors_from_request(exc: RequestValidationError) -> list[FieldError]:
    errors = []
    for error in exc.errors():
        # loc is ("body", "loginName") or ("path", "user_id"); drop the location kind
        location = [str(part) for part in error.get("loc", ())[1:]]
        errors.append(FieldError(".".join(location) or "body", error.get("msg", "Invalid value")))
    return errors


def register_exception_handlers(app: FastAPI) -> None:
    """Install consistent handlers so endpoints only map the errors they care about."""

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        # Field names only; submitted values (passwords included) are never logged
        logger.warning(
            f"Validation failed: {request.method} {request.url.path} "
            f"fields={sorted({e.field for e in exc.errors})}"
        )
        return _validation_response(exc.errors)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = _field_errors_from_request(exc)
        logger.warning(
            f"Request validation failed: {request.method} {request.url.path} "
            f"fields={sorted({e.field for e in errors})}"
        )
        return _validation_response(errors)

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError):
        logger.error(
            f"Store failure during {request.method} {request.url.path}: {exc}",
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Authentication service unavailable"},
        )

    @app.exception_handler(PasswordHashError)
    async def handle_password_hash_error(request: Request, exc: PasswordHashError):
        logger.error(
            f"Corrupt password hash encountered during {request.method} {request.url.path}",
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )
