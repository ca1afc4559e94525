"""HTTP client for the Spotify accounts service (authorize, token, profile)."""

from __future__ import annotations

import base64
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from melody.config import SpotifyConfig
from melody.logging import get_logger

__all__ = [
    "AUTHORIZE_URL",
    "PROFILE_URL",
    "TOKEN_URL",
    "SpotifyAuthClient",
    "SpotifyAuthError",
    "SpotifyProfile",
    "TokenGrant",
]

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"
PROFILE_URL = "https://api.spotify.com/v1/me"

logger = get_logger(__name__)


class SpotifyAuthError(RuntimeError):
    """Raised when the accounts service rejects a request or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True, frozen=True)
class TokenGrant:
    access_token: str
    refresh_token: str | None
    expires_in: int
    scope: str | None = None


@dataclass(slots=True, frozen=True)
class SpotifyProfile:
    spotify_id: str
    display_name: str | None


class SpotifyAuthClient:
    def __init__(
        self,
        config: SpotifyConfig,
        *,
        http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._config = config
        self._http_timeout = max(1.0, float(config.http_timeout))
        self._http_client_factory = http_client_factory

    @property
    def configured(self) -> bool:
        return bool(self._config.client_id and self._config.client_secret)

    def authorization_url(self) -> str:
        params = {
            "response_type": "code",
            "client_id": self._config.client_id or "",
            "scope": self._config.scope,
            "redirect_uri": self._config.redirect_uri or "",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def _build_http_client(self) -> httpx.AsyncClient:
        if self._http_client_factory is not None:
            return self._http_client_factory()
        return httpx.AsyncClient(timeout=self._http_timeout)

    def _basic_auth_header(self) -> str:
        if not self.configured:
            raise SpotifyAuthError("Spotify client credentials are not configured")
        raw = f"{self._config.client_id}:{self._config.client_secret}".encode("utf-8")
        return "Basic " + base64.b64encode(raw).decode("ascii")

    async def _post_token(self, payload: Mapping[str, str], *, grant_type: str) -> TokenGrant:
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Authorization": self._basic_auth_header(),
        }
        try:
            async with self._build_http_client() as client:
                response = await client.post(TOKEN_URL, data=dict(payload), headers=headers)
        except httpx.HTTPError as exc:
            logger.warning(
                "Spotify token endpoint unreachable",
                extra={"event": "spotify.token.unreachable", "grant_type": grant_type},
            )
            raise SpotifyAuthError("token endpoint unreachable") from exc

        if response.status_code >= 400:
            logger.error(
                "Spotify token request failed",
                extra={
                    "event": "spotify.token.failed",
                    "grant_type": grant_type,
                    "status": response.status_code,
                },
            )
            raise SpotifyAuthError("token request rejected", status_code=response.status_code)

        data = response.json()
        if not isinstance(data, Mapping) or not data.get("access_token"):
            raise SpotifyAuthError("unexpected token response", status_code=response.status_code)
        return _grant_from_payload(data)

    async def exchange_code(self, code: str) -> TokenGrant:
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._config.redirect_uri or "",
        }
        return await self._post_token(payload, grant_type="authorization_code")

    async def refresh(self, refresh_token: str) -> TokenGrant:
        payload = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        return await self._post_token(payload, grant_type="refresh_token")

    async def fetch_profile(self, access_token: str) -> SpotifyProfile:
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with self._build_http_client() as client:
                response = await client.get(PROFILE_URL, headers=headers)
        except httpx.HTTPError as exc:
            raise SpotifyAuthError("profile endpoint unreachable") from exc
        if response.status_code >= 400:
            raise SpotifyAuthError("failed to get profile", status_code=response.status_code)
        data = response.json()
        if not isinstance(data, Mapping) or not data.get("id"):
            raise SpotifyAuthError("unexpected profile response", status_code=response.status_code)
        return SpotifyProfile(
            spotify_id=str(data["id"]),
            display_name=_optional_str(data.get("display_name")),
        )


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text or None


def _grant_from_payload(data: Mapping[str, Any]) -> TokenGrant:
    try:
        expires_in = int(data.get("expires_in") or 0)
    except (TypeError, ValueError):
        expires_in = 0
    return TokenGrant(
        access_token=str(data["access_token"]),
        refresh_token=_optional_str(data.get("refresh_token")),
        expires_in=max(0, expires_in),
        scope=_optional_str(data.get("scope")),
    )
