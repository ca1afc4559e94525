"""FastAPI dependency providers.

Services live on ``app.state.runtime`` (built by the application lifespan);
dependencies only look them up, they never construct global singletons.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Request

from melody.config import AppConfig
from melody.errors import AuthenticationRequiredError, InternalServerError
from melody.runtime import MelodyRuntime
from melody.services.auth_service import AuthService
from melody.services.library_service import LibraryService
from melody.services.ranking_service import RankingService

_BEARER_PREFIX = "bearer "


@dataclass(slots=True, frozen=True)
class CurrentIdentity:
    """The authenticated caller of a request, resolved from its session token."""

    token: str
    identity_id: str
    display_name: str | None


def get_runtime(request: Request) -> MelodyRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if not isinstance(runtime, MelodyRuntime):
        raise InternalServerError("Application runtime is not initialised.")
    return runtime


def get_app_config(runtime: MelodyRuntime = Depends(get_runtime)) -> AppConfig:
    return runtime.config


def get_auth_service(runtime: MelodyRuntime = Depends(get_runtime)) -> AuthService:
    return runtime.auth


def get_ranking_service(runtime: MelodyRuntime = Depends(get_runtime)) -> RankingService:
    return runtime.ranking


def get_library_service(runtime: MelodyRuntime = Depends(get_runtime)) -> LibraryService:
    return runtime.library


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith(_BEARER_PREFIX):
        token = header[len(_BEARER_PREFIX):].strip()
        return token or None
    return None


def require_identity(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
) -> CurrentIdentity:
    token = bearer_token(request)
    if token is None:
        raise AuthenticationRequiredError()
    record = auth.resolve_session(token)
    return CurrentIdentity(
        token=token,
        identity_id=record.identity_id,
        display_name=record.display_name,
    )


__all__ = [
    "CurrentIdentity",
    "bearer_token",
    "get_app_config",
    "get_auth_service",
    "get_library_service",
    "get_ranking_service",
    "get_runtime",
    "require_identity",
]
