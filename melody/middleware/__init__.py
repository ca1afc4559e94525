"""Application middleware registration helpers."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from melody.config import AppConfig

from .errors import setup_exception_handlers
from .request_id import RequestIDMiddleware


def install_middleware(app: FastAPI, config: AppConfig) -> None:
    """Install CORS, request ids and the exception handlers on ``app``."""

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors.allowed_origins) or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
        expose_headers=["X-Request-ID", "X-Debug-Id"],
    )
    app.add_middleware(RequestIDMiddleware)
    setup_exception_handlers(app)


__all__ = ["install_middleware"]
