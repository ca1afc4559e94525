"""Process-lifetime wiring of melody's services."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
import random

import httpx

from melody.config import AppConfig
from melody.core.spotify_auth import SpotifyAuthClient
from melody.services.auth_service import AuthService
from melody.services.credential_service import CredentialRefresher
from melody.services.library_service import CatalogClientFactory, LibraryService
from melody.services.ranking_service import RankingService
from melody.sessions import SessionRegistry

__all__ = ["MelodyRuntime", "build_runtime"]


@dataclass(slots=True)
class MelodyRuntime:
    config: AppConfig
    sessions: SessionRegistry
    auth: AuthService
    credentials: CredentialRefresher
    ranking: RankingService
    library: LibraryService

    def close(self) -> int:
        """Drop every live session; returns how many were dropped."""

        dropped = self.sessions.count()
        self.sessions.clear()
        return dropped


def build_runtime(
    config: AppConfig,
    *,
    http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
    catalog_factory: CatalogClientFactory | None = None,
    now_fn: Callable[[], datetime] | None = None,
    rng: random.Random | None = None,
) -> MelodyRuntime:
    """Create a fresh set of services sharing one session registry."""

    clock = now_fn or (lambda: datetime.now(UTC))
    sessions = SessionRegistry(token_bytes=config.session.token_bytes, now_fn=clock)
    auth_client = SpotifyAuthClient(config.spotify, http_client_factory=http_client_factory)
    credentials = CredentialRefresher(
        auth_client,
        skew=timedelta(seconds=config.session.credential_skew_seconds),
        now_fn=clock,
    )
    return MelodyRuntime(
        config=config,
        sessions=sessions,
        auth=AuthService(auth_client=auth_client, sessions=sessions, now_fn=clock),
        credentials=credentials,
        ranking=RankingService(config.rating, rng=rng, now_fn=clock),
        library=LibraryService(
            spotify=config.spotify,
            rating=config.rating,
            credentials=credentials,
            catalog_factory=catalog_factory,
        ),
    )
