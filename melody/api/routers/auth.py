"""Login, callback, logout and current-user endpoints."""

from __future__ import annotations

from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from melody.config import AppConfig
from melody.dependencies import (
    CurrentIdentity,
    bearer_token,
    get_app_config,
    get_auth_service,
    require_identity,
)
from melody.errors import AuthenticationFailedError
from melody.logging import get_logger
from melody.schemas import LoginResponse, MeResponse, SuccessResponse
from melody.services.auth_service import AuthService

router = APIRouter(tags=["Auth"])
logger = get_logger(__name__)


def _client_redirect(config: AppConfig, **params: str) -> RedirectResponse:
    base = config.client_url.rstrip("/") or "/"
    return RedirectResponse(f"{base}?{urlencode(params)}", status_code=302)


@router.get("/auth/login", response_model=LoginResponse)
def login(service: AuthService = Depends(get_auth_service)) -> LoginResponse:
    """Return the Spotify authorization URL the client should open."""

    return LoginResponse(url=service.login())


@router.get("/callback")
async def callback(
    code: str | None = None,
    error: str | None = None,
    service: AuthService = Depends(get_auth_service),
    config: AppConfig = Depends(get_app_config),
) -> RedirectResponse:
    if error:
        logger.info("Spotify reported an authorization error: %s", error)
        return _client_redirect(config, error=error)
    try:
        token = await service.authenticate_callback(code)
    except AuthenticationFailedError:
        return _client_redirect(config, error="auth_failed")
    return _client_redirect(config, token=token)


@router.post("/auth/logout", response_model=SuccessResponse)
def logout(
    request: Request,
    _identity: CurrentIdentity = Depends(require_identity),
    service: AuthService = Depends(get_auth_service),
) -> SuccessResponse:
    service.logout(bearer_token(request))
    return SuccessResponse()


@router.get("/me", response_model=MeResponse)
def me(
    identity: CurrentIdentity = Depends(require_identity),
    service: AuthService = Depends(get_auth_service),
) -> MeResponse:
    summary = service.describe(identity.identity_id)
    return MeResponse(
        id=summary.id,
        display_name=summary.display_name,
        created_at=summary.created_at,
        songCount=summary.song_count,
        matchCount=summary.match_count,
    )
