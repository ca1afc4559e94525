"""Expiry-aware access to the per-identity Spotify access token."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
import logging

from sqlalchemy.orm import Session

from melody.core.spotify_auth import SpotifyAuthClient, SpotifyAuthError
from melody.db import run_session
from melody.errors import CredentialUnavailableError
from melody.logging import get_logger, log_event
from melody.models import Identity, as_utc

__all__ = ["DEFAULT_SKEW", "CredentialRefresher", "StoredCredential"]

DEFAULT_SKEW = timedelta(seconds=60)

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class StoredCredential:
    access_token: str | None
    refresh_token: str | None
    expires_at: datetime | None

    def is_fresh(self, *, now: datetime, skew: timedelta) -> bool:
        if not self.access_token or self.expires_at is None:
            return False
        return now < self.expires_at - skew


class CredentialRefresher:
    """Hand out a valid access token, refreshing it shortly before it expires.

    Concurrent calls for the same identity may each refresh; the accounts
    service accepts every presentation of the refresh token, so duplicate
    refreshes are harmless and are not coalesced here.  Refresh failures are
    surfaced as :class:`CredentialUnavailableError` and never retried.
    """

    def __init__(
        self,
        auth_client: SpotifyAuthClient,
        *,
        skew: timedelta = DEFAULT_SKEW,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        if skew < timedelta(0):
            raise ValueError("skew must not be negative")
        self._auth_client = auth_client
        self._skew = skew
        self._now = now_fn or (lambda: datetime.now(UTC))

    async def load(self, identity_id: str) -> StoredCredential | None:
        def _query(session: Session) -> StoredCredential | None:
            record = session.get(Identity, identity_id)
            if record is None:
                return None
            return StoredCredential(
                access_token=record.access_token,
                refresh_token=record.refresh_token,
                expires_at=as_utc(record.token_expires_at),
            )

        return await run_session(_query)

    async def _persist(
        self,
        identity_id: str,
        *,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime,
    ) -> None:
        def _update(session: Session) -> None:
            record = session.get(Identity, identity_id)
            if record is None:
                raise CredentialUnavailableError(reason="unknown_identity")
            record.access_token = access_token
            record.token_expires_at = expires_at
            if refresh_token:
                record.refresh_token = refresh_token

        await run_session(_update)

    async def get_valid_credential(self, identity_id: str) -> str:
        stored = await self.load(identity_id)
        if stored is None:
            raise CredentialUnavailableError(reason="unknown_identity")
        if not stored.refresh_token:
            raise CredentialUnavailableError(reason="no_refresh_token")

        now = self._now()
        if stored.is_fresh(now=now, skew=self._skew):
            return stored.access_token  # type: ignore[return-value]

        try:
            grant = await self._auth_client.refresh(stored.refresh_token)
        except SpotifyAuthError as exc:
            log_event(
                logger,
                "credential.refresh_failed",
                level=logging.WARNING,
                identity_id=identity_id,
                status=exc.status_code,
            )
            raise CredentialUnavailableError(reason="refresh_failed") from exc

        expires_at = now + timedelta(seconds=grant.expires_in)
        await self._persist(
            identity_id,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=expires_at,
        )
        log_event(
            logger,
            "credential.refreshed",
            identity_id=identity_id,
            expires_in=grant.expires_in,
            rotated_refresh_token=bool(grant.refresh_token),
        )
        return grant.access_token
