"""HTTP routers mounted under ``/api``."""

from __future__ import annotations

from fastapi import APIRouter

from melody.api.routers import auth, matches, songs, system

API_PREFIX = "/api"


def build_api_router() -> APIRouter:
    router = APIRouter(prefix=API_PREFIX)
    for module in (auth, songs, matches, system):
        router.include_router(module.router)
    return router


__all__ = ["API_PREFIX", "build_api_router"]
