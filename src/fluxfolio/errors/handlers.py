"""FastAPI exception handlers producing a uniform ErrorResponse."""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from fluxfolio.errors.exceptions import AuthenticationError, FluxfolioError
from fluxfolio.models.common import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


def _error_response(request: Request, status_code: int, code: str, message: str, details=None) -> JSONResponse:
    trace_id = getattr(request.state, "trace_id", "unknown-trace")
    error_response = ErrorResponse(
        schema_version="1.0",
        error=ErrorDetail(
            code=code,
            message=message,
            details=details,
            trace_id=trace_id,
            timestamp=datetime.now(timezone.utc),
        ),
    )
    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json", exclude_none=True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI app."""

    @app.exception_handler(FluxfolioError)
    async def fluxfolio_error_handler(request: Request, exc: FluxfolioError):
        if isinstance(exc, AuthenticationError):
            logger.warning(
                "unauthorized_request",
                extra={"path": request.url.path, "method": request.method},
            )
        return _error_response(request, exc.status_code, exc.code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error_response(
            request,
            400,
            "VALIDATION_ERROR",
            "Missing or invalid parameters",
            [{"loc": list(err.get("loc", [])), "msg": err.get("msg")} for err in exc.errors()],
        )
