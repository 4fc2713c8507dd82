"""Exception handlers rendering every failure as an error envelope."""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from huminex_payroll.api.dependencies import get_trace_id
from huminex_payroll.api.schemas import ErrorEnvelope
from huminex_payroll.errors import HuminexError

logger = logging.getLogger(__name__)

_HTTP_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
}


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    validation_errors: dict[str, list[str]] | None = None,
) -> JSONResponse:
    envelope = ErrorEnvelope(
        code=code,
        message=message,
        trace_id=get_trace_id(request),
        validation_errors=validation_errors,
    )
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


def _validation_errors(errors: list[dict[str, Any]]) -> dict[str, list[str]]:
    fields: dict[str, list[str]] = {}
    for error in errors:
        # Drop the "body"/"query"/"path" prefix
        loc = [str(part) for part in error.get("loc", ())[1:]] or ["request"]
        fields.setdefault(".".join(loc), []).append(error.get("msg", "Invalid value"))
    return fields


def _in_path(error: dict[str, Any]) -> bool:
    loc = error.get("loc", ())
    return bool(loc) and loc[0] == "path"


def install_exception_handlers(app: FastAPI) -> None:
    """Register the envelope handlers on the application."""

    @app.exception_handler(HuminexError)
    async def huminex_error_handler(request: Request, exc: HuminexError) -> JSONResponse:
        return error_response(request, exc.status_code, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = list(exc.errors())
        if errors and all(_in_path(error) for error in errors):
            # A malformed id in the URL matches no resource
            return error_response(
                request,
                status.HTTP_404_NOT_FOUND,
                "not_found",
                "The requested resource was not found.",
            )
        return error_response(
            request,
            status.HTTP_400_BAD_REQUEST,
            "validation_failed",
            "One or more validation errors occurred.",
            _validation_errors(errors),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return error_response(
            request,
            exc.status_code,
            _HTTP_CODES.get(exc.status_code, "http_error"),
            str(exc.detail),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled error on %s %s (trace %s)",
            request.method,
            request.url.path,
            get_trace_id(request),
        )
        return error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "unhandled_error",
            "An unexpected error occurred.",
        )
