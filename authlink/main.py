from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from authlink.api.errors import auth_flow_error_handler, validation_error_handler
from authlink.api.routers import native, oauth, token, webauthn
from authlink.domain.exceptions import AuthFlowError
from authlink.shared.config import get_settings


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="authlink", version=settings.version)
app.add_exception_handler(AuthFlowError, auth_flow_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)

app.include_router(oauth.router)
app.include_router(native.router)
app.include_router(webauthn.router)
app.include_router(token.router)


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/version")
def version():
    return {"version": settings.version}
