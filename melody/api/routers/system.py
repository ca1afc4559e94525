"""Liveness endpoint."""

from __future__ import annotations

import time

from fastapi import APIRouter

from melody.schemas import HealthResponse

router = APIRouter(tags=["System"])


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(timestamp=int(time.time() * 1000))
