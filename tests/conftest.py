import asyncio
import inspect
import os
from pathlib import Path
import sys
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from melody.config import load_config, override_runtime_env  # noqa: E402
from melody.db import init_db, reset_engine_for_tests  # noqa: E402
from melody.main import create_app  # noqa: E402
from tests.helpers import (  # noqa: E402
    FakeCatalogClient,
    FrozenClock,
    StubHttpClientFactory,
)


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    marker = pyfuncitem.get_closest_marker("asyncio")
    if marker is None:
        return None
    test_func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_func):
        return None
    fixtureinfo = getattr(pyfuncitem, "_fixtureinfo", None)
    if fixtureinfo is None:
        return None
    kwargs = {name: pyfuncitem.funcargs[name] for name in fixtureinfo.argnames}
    asyncio.run(test_func(**kwargs))
    return True


@pytest.fixture(autouse=True)
def _test_environment(tmp_path: Path) -> Iterator[None]:
    db_path = tmp_path / "data" / "melody.db"
    db_path.parent.mkdir(parents=True, exist_ok=True)

    os.environ.setdefault("SPOTIFY_CLIENT_ID", "test-client")
    os.environ.setdefault("SPOTIFY_CLIENT_SECRET", "test-secret")
    os.environ.setdefault("SPOTIFY_REDIRECT_URI", "http://127.0.0.1:3001/api/callback")
    os.environ.setdefault("CLIENT_URL", "http://localhost:5173")
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"

    override_runtime_env(None)
    reset_engine_for_tests()
    init_db()
    try:
        yield
    finally:
        reset_engine_for_tests()
        override_runtime_env(None)


@pytest.fixture()
def app_config():
    return load_config()


@pytest.fixture()
def frozen_clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def http_client_stub() -> StubHttpClientFactory:
    return StubHttpClientFactory()


@pytest.fixture()
def catalog() -> FakeCatalogClient:
    return FakeCatalogClient()


@pytest.fixture()
def client(
    app_config,
    http_client_stub: StubHttpClientFactory,
    catalog: FakeCatalogClient,
    frozen_clock: FrozenClock,
) -> Iterator[TestClient]:
    app = create_app(
        app_config,
        http_client_factory=http_client_stub,
        catalog_factory=catalog.factory,
        now_fn=frozen_clock.now,
    )
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client


@pytest.fixture()
def login(client: TestClient, http_client_stub: StubHttpClientFactory):
    """Run the callback flow for a Spotify user and return auth headers."""

    def _login(spotify_id: str = "spotify-user", display_name: str = "Listener") -> dict[str, str]:
        http_client_stub.enqueue(
            200,
            {"access_token": f"access-{spotify_id}", "refresh_token": "refresh", "expires_in": 3600},
        )
        http_client_stub.enqueue(200, {"id": spotify_id, "display_name": display_name})
        response = client.get("/api/callback", params={"code": f"code-{spotify_id}"})
        assert response.status_code == 302, response.text
        location = response.headers["location"]
        assert "token=" in location
        token = location.split("token=", 1)[1]
        return {"Authorization": f"Bearer {token}"}

    return _login
