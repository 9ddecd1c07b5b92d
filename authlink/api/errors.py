from __future__ import annotations

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from authlink.domain.exceptions import AuthFlowError


logger = logging.getLogger(__name__)


def error_body(code: str, message: str, status_code: int) -> dict:
    return {"status": status_code, "error": code, "message": message}


async def auth_flow_error_handler(_request: Request, exc: AuthFlowError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.status_code),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.debug("api: invalid_request path=%s errors=%s", request.url.path, exc.errors())
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "The request payload is incorrect")
    if location:
        message = f"{location}: {message}"
    return JSONResponse(status_code=400, content=error_body("invalid-request", message, 400))
