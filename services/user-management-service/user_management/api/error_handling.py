"""Map domain errors onto HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..errors import StoreError, UserManagementError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handler rendering ``UserManagementError`` as ``{detail, error_code}``."""

    @app.exception_handler(UserManagementError)
    async def handle_user_management_error(request: Request, exc: UserManagementError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "%s %s failed with %s: %s",
            request.method,
            request.url.path,
            exc.error_code,
            exc.message,
        )
        content = {"detail": exc.message, "error_code": exc.error_code}
        if exc.detail:
            content["context"] = exc.detail
        headers = None
        if isinstance(exc, StoreError) and exc.retryable:
            headers = {"Retry-After": "1"}
        return JSONResponse(status_code=exc.status_code, content=content, headers=headers)
