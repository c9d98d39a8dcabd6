"""
Error envelope handlers.

Every failure leaves the API as ``{"success": false, "message": ..., "code": ...}``
so clients can branch on ``success`` the same way for all endpoints.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def _envelope(
    *,
    message: str,
    code: str,
    details: Optional[Any] = None,
    instance: Optional[str] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message, "code": code}
    if details:
        body["details"] = jsonable_encoder(details)
    if instance:
        body["instance"] = instance
    return body


def _parse_detail(detail: Any) -> tuple[str, Optional[str], Optional[Any]]:
    if isinstance(detail, dict):
        code = detail.get("code") if isinstance(detail.get("code"), str) else None
        message = detail.get("message") or detail.get("detail")
        errors = detail.get("details") or detail.get("errors")
        return (message if isinstance(message, str) else ""), code, errors
    if isinstance(detail, str):
        return detail, None, None
    if detail is None:
        return "", None, None
    return str(detail), None, None


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        message, code, errors = _parse_detail(exc.detail)
        return JSONResponse(
            _envelope(
                message=message,
                code=code or f"http_{exc.status_code}",
                details=errors,
                instance=request.url.path,
            ),
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            _envelope(
                message="Request validation failed",
                code="validation_error",
                details=exc.errors(),
                instance=request.url.path,
            ),
            status_code=422,
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            _envelope(
                message="Internal Server Error",
                code="internal_server_error",
                instance=request.url.path,
            ),
            status_code=500,
        )
