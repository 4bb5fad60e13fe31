import logging
import os

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from llf_api.engine.errors import (
    Conflict,
    LlfError,
    NotFound,
    PermissionDenied,
    StorageError,
    Unauthenticated,
    ValidationError,
)
from llf_api.routes import auth, dashboard, health, inspections, machines, me, users

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (Unauthenticated, status.HTTP_401_UNAUTHORIZED),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Conflict, status.HTTP_409_CONFLICT),
    (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(error: LlfError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _configure_logging() -> None:
    level = os.environ.get("LLF_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


async def _llf_error_handler(request: Request, exc: LlfError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code}, headers=headers)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ())) or "request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": f"Invalid field {location}: {first.get('msg', 'invalid')}", "code": ValidationError.code},
    )


def create_app() -> FastAPI:
    _configure_logging()
    app = FastAPI(title="LLF Inspection API")
    app.add_exception_handler(LlfError, _llf_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(me.router)
    app.include_router(users.router)
    app.include_router(machines.router)
    app.include_router(inspections.router)
    app.include_router(dashboard.router)
    return app


app = create_app()
