"""In-memory session registry for single-process deployments."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
import secrets
from threading import Lock

from melody.errors import AuthenticationRequiredError
from melody.logging import fingerprint, get_logger, log_event

__all__ = ["MIN_TOKEN_BYTES", "SessionRecord", "SessionRegistry"]

MIN_TOKEN_BYTES = 16

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class SessionRecord:
    """Immutable snapshot of what a session token resolves to."""

    identity_id: str
    display_name: str | None
    created_at: datetime


class SessionRegistry:
    """Thread-safe mapping from opaque bearer tokens to identities.

    Sessions never expire on their own and are lost when the process exits.
    One registry is created per application lifespan and handed to request
    handlers; there is no module level instance.
    """

    def __init__(
        self,
        *,
        token_bytes: int = 32,
        token_factory: Callable[[int], str] | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        if token_bytes < MIN_TOKEN_BYTES:
            raise ValueError(f"session tokens need at least {MIN_TOKEN_BYTES * 8} bits of entropy")
        self._token_bytes = token_bytes
        self._token_factory = token_factory or secrets.token_hex
        self._now = now_fn or (lambda: datetime.now(UTC))
        self._sessions: dict[str, SessionRecord] = {}
        self._lock = Lock()

    def create(self, identity_id: str, display_name: str | None) -> str:
        if not identity_id:
            raise ValueError("identity_id must be provided")
        record = SessionRecord(
            identity_id=identity_id,
            display_name=display_name,
            created_at=self._now(),
        )
        with self._lock:
            token = self._token_factory(self._token_bytes)
            while token in self._sessions:
                token = self._token_factory(self._token_bytes)
            self._sessions[token] = record
        log_event(
            logger,
            "session.created",
            identity_id=identity_id,
            token_fingerprint=fingerprint(token),
        )
        return token

    def resolve(self, token: str | None) -> SessionRecord:
        if not token:
            raise AuthenticationRequiredError()
        with self._lock:
            record = self._sessions.get(token)
        if record is None:
            raise AuthenticationRequiredError()
        return record

    def destroy(self, token: str | None) -> bool:
        """Remove ``token``; unknown tokens are ignored."""

        if not token:
            return False
        with self._lock:
            record = self._sessions.pop(token, None)
        if record is None:
            return False
        log_event(
            logger,
            "session.destroyed",
            identity_id=record.identity_id,
            token_fingerprint=fingerprint(token),
        )
        return True

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
