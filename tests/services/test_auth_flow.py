from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from melody.config import load_config
from melody.core.spotify_auth import AUTHORIZE_URL, SpotifyAuthClient
from melody.db import session_scope
from melody.errors import AuthenticationFailedError, AuthenticationRequiredError, NotFoundError
from melody.models import Identity, as_utc
from melody.services.auth_service import AuthService
from melody.sessions import SessionRegistry
from tests.helpers import FrozenClock, StubHttpClientFactory, add_songs


def _service(
    factory: StubHttpClientFactory,
    clock: FrozenClock,
    sessions: SessionRegistry | None = None,
) -> AuthService:
    auth_client = SpotifyAuthClient(load_config().spotify, http_client_factory=factory)
    return AuthService(
        auth_client=auth_client,
        sessions=sessions or SessionRegistry(now_fn=clock.now),
        now_fn=clock.now,
    )


def _enqueue_login(
    factory: StubHttpClientFactory,
    *,
    access: str = "access-1",
    refresh: str | None = "refresh-1",
    spotify_id: str = "user-1",
    display_name: str = "Listener",
) -> None:
    payload = {"access_token": access, "expires_in": 3600}
    if refresh is not None:
        payload["refresh_token"] = refresh
    factory.enqueue(200, payload)
    factory.enqueue(200, {"id": spotify_id, "display_name": display_name})


def _identities() -> list[Identity]:
    with session_scope() as session:
        return list(session.execute(select(Identity)).scalars().all())


def test_login_returns_authorization_url() -> None:
    url = _service(StubHttpClientFactory(), FrozenClock()).login()

    assert url.startswith(AUTHORIZE_URL)
    assert "client_id=test-client" in url


@pytest.mark.asyncio()
async def test_callback_creates_identity_and_session() -> None:
    clock = FrozenClock()
    factory = StubHttpClientFactory()
    _enqueue_login(factory)
    service = _service(factory, clock)

    token = await service.authenticate_callback("code-1")

    [identity] = _identities()
    assert identity.spotify_id == "user-1"
    assert identity.display_name == "Listener"
    assert identity.access_token == "access-1"
    assert identity.refresh_token == "refresh-1"
    assert as_utc(identity.token_expires_at) == clock.now() + timedelta(seconds=3600)
    assert service.resolve_session(token).identity_id == identity.id


@pytest.mark.asyncio()
async def test_second_login_updates_existing_identity() -> None:
    factory = StubHttpClientFactory()
    _enqueue_login(factory)
    _enqueue_login(factory, access="access-2", refresh=None, display_name="Renamed")
    service = _service(factory, FrozenClock())

    first = await service.authenticate_callback("code-1")
    second = await service.authenticate_callback("code-2")

    [identity] = _identities()
    assert identity.access_token == "access-2"
    assert identity.refresh_token == "refresh-1"
    assert identity.display_name == "Renamed"
    assert first != second
    assert service.resolve_session(first).identity_id == service.resolve_session(second).identity_id


@pytest.mark.asyncio()
async def test_rejected_code_fails_without_creating_identity() -> None:
    factory = StubHttpClientFactory()
    factory.enqueue(400, {"error": "invalid_grant"})
    sessions = SessionRegistry()
    service = _service(factory, FrozenClock(), sessions)

    with pytest.raises(AuthenticationFailedError):
        await service.authenticate_callback("bad-code")

    assert _identities() == []
    assert sessions.count() == 0


@pytest.mark.asyncio()
async def test_identity_store_failure_is_reported_as_auth_failure(monkeypatch) -> None:
    def _conflict(session, **_kwargs):  # type: ignore[no-untyped-def]
        raise IntegrityError(
            "INSERT INTO identities", {}, Exception("UNIQUE constraint failed: identities.spotify_id")
        )

    monkeypatch.setattr("melody.services.auth_service.upsert_identity", _conflict)
    factory = StubHttpClientFactory()
    _enqueue_login(factory)
    sessions = SessionRegistry()
    service = _service(factory, FrozenClock(), sessions)

    with pytest.raises(AuthenticationFailedError):
        await service.authenticate_callback("code-1")

    assert sessions.count() == 0


@pytest.mark.asyncio()
async def test_missing_code_fails_without_calling_spotify() -> None:
    factory = StubHttpClientFactory()

    with pytest.raises(AuthenticationFailedError):
        await _service(factory, FrozenClock()).authenticate_callback(None)

    assert factory.calls == []


@pytest.mark.asyncio()
async def test_profile_failure_fails_the_callback() -> None:
    factory = StubHttpClientFactory()
    factory.enqueue(200, {"access_token": "access", "expires_in": 3600})
    factory.enqueue(401, {"error": "bad token"})

    with pytest.raises(AuthenticationFailedError):
        await _service(factory, FrozenClock()).authenticate_callback("code")

    assert _identities() == []


@pytest.mark.asyncio()
async def test_logout_invalidates_only_that_session() -> None:
    factory = StubHttpClientFactory()
    _enqueue_login(factory)
    _enqueue_login(factory)
    service = _service(factory, FrozenClock())
    first = await service.authenticate_callback("code-1")
    second = await service.authenticate_callback("code-2")

    service.logout(first)
    service.logout(first)

    with pytest.raises(AuthenticationRequiredError):
        service.resolve_session(first)
    assert service.resolve_session(second)


@pytest.mark.asyncio()
async def test_describe_counts_songs_and_matches() -> None:
    factory = StubHttpClientFactory()
    _enqueue_login(factory)
    service = _service(factory, FrozenClock())
    token = await service.authenticate_callback("code")
    identity_id = service.resolve_session(token).identity_id
    add_songs(identity_id, 3)

    summary = service.describe(identity_id)

    assert (summary.song_count, summary.match_count) == (3, 0)
    assert summary.display_name == "Listener"


def test_describe_unknown_identity_is_not_found() -> None:
    with pytest.raises(NotFoundError):
        _service(StubHttpClientFactory(), FrozenClock()).describe("missing")
