"""Spotify login flow: authorization URL, callback handling and logout."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from melody.core.spotify_auth import SpotifyAuthClient, SpotifyAuthError, SpotifyProfile, TokenGrant
from melody.db import run_session, session_scope
from melody.errors import AuthenticationFailedError, NotFoundError
from melody.logging import get_logger, log_event
from melody.models import Identity, MatchRecord, Song
from melody.sessions import SessionRecord, SessionRegistry
from melody.services.types import IdentitySummary

__all__ = ["AuthService", "upsert_identity"]

logger = get_logger(__name__)


def upsert_identity(
    session: Session,
    *,
    profile: SpotifyProfile,
    grant: TokenGrant,
    expires_at: datetime,
) -> Identity:
    """Create the identity for ``profile`` or refresh its stored credentials."""

    record = (
        session.execute(select(Identity).where(Identity.spotify_id == profile.spotify_id))
        .scalars()
        .first()
    )
    if record is None:
        record = Identity(spotify_id=profile.spotify_id)
        session.add(record)
    if grant.refresh_token:
        record.refresh_token = grant.refresh_token
    record.display_name = profile.display_name
    record.access_token = grant.access_token
    record.token_expires_at = expires_at
    session.flush()
    return record


class AuthService:
    def __init__(
        self,
        *,
        auth_client: SpotifyAuthClient,
        sessions: SessionRegistry,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._auth_client = auth_client
        self._sessions = sessions
        self._now = now_fn or (lambda: datetime.now(UTC))

    def login(self) -> str:
        """Return the Spotify authorization URL the client should open."""

        return self._auth_client.authorization_url()

    async def authenticate_callback(self, code: str | None) -> str:
        """Exchange ``code`` for tokens, upsert the identity and open a session."""

        if not code:
            raise AuthenticationFailedError()
        try:
            grant = await self._auth_client.exchange_code(code)
            profile = await self._auth_client.fetch_profile(grant.access_token)
        except SpotifyAuthError as exc:
            log_event(
                logger,
                "auth.callback.failed",
                level=logging.WARNING,
                status=exc.status_code,
            )
            raise AuthenticationFailedError() from exc

        expires_at = self._now() + timedelta(seconds=grant.expires_in)

        def _store(session: Session) -> tuple[str, str | None]:
            record = upsert_identity(
                session,
                profile=profile,
                grant=grant,
                expires_at=expires_at,
            )
            return record.id, record.display_name

        try:
            identity_id, display_name = await run_session(_store)
        except SQLAlchemyError as exc:
            log_event(
                logger,
                "auth.callback.failed",
                level=logging.WARNING,
                reason="identity_store_failed",
                error=type(exc).__name__,
            )
            raise AuthenticationFailedError() from exc
        token = self._sessions.create(identity_id, display_name)
        log_event(logger, "auth.callback.completed", identity_id=identity_id)
        return token

    def resolve_session(self, token: str | None) -> SessionRecord:
        return self._sessions.resolve(token)

    def logout(self, token: str | None) -> None:
        self._sessions.destroy(token)

    def describe(self, identity_id: str) -> IdentitySummary:
        with session_scope() as session:
            record = session.get(Identity, identity_id)
            if record is None:
                raise NotFoundError("Identity not found")
            song_count = session.execute(
                select(func.count(Song.id)).where(Song.identity_id == identity_id)
            ).scalar_one()
            match_count = session.execute(
                select(func.count(MatchRecord.id)).where(MatchRecord.identity_id == identity_id)
            ).scalar_one()
            return IdentitySummary(
                id=record.id,
                display_name=record.display_name,
                created_at=record.created_at,
                song_count=int(song_count),
                match_count=int(match_count),
            )
