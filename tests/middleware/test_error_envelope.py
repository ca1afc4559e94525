from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from melody.config import load_config
from melody.errors import NotEnoughEntitiesError
from melody.middleware import install_middleware


def _create_app() -> FastAPI:
    app = FastAPI()
    install_middleware(app, load_config(runtime_env={}))

    @app.get("/conflict")
    def conflict() -> None:
        raise NotEnoughEntitiesError(available=0)

    @app.get("/upstream")
    def upstream() -> None:
        raise HTTPException(status_code=502, detail="Spotify is unavailable")

    @app.get("/items/{item_id}")
    def item(item_id: int) -> dict[str, int]:
        return {"id": item_id}

    return app


def test_app_errors_use_the_standard_envelope() -> None:
    with TestClient(_create_app()) as client:
        response = client.get("/conflict")

    assert response.status_code == 409
    assert response.json() == {
        "ok": False,
        "error": {
            "code": "NOT_ENOUGH_ENTITIES",
            "message": "Need at least 2 songs to create matchup",
            "meta": {"available": 0, "required": 2},
        },
    }
    assert response.headers["X-Debug-Id"]


def test_upstream_http_errors_map_to_dependency_error() -> None:
    with TestClient(_create_app()) as client:
        response = client.get("/upstream")

    assert response.status_code == 502
    assert response.json()["error"] == {"code": "DEPENDENCY_ERROR", "message": "Spotify is unavailable"}


def test_request_validation_errors_are_reported_as_bad_request() -> None:
    with TestClient(_create_app()) as client:
        response = client.get("/items/not-a-number")

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["meta"]["fields"][0]["field"] == "item_id"


def test_unknown_routes_use_the_not_found_envelope() -> None:
    with TestClient(_create_app()) as client:
        response = client.get("/missing")

    assert response.status_code == 404
    assert response.json() == {"ok": False, "error": {"code": "NOT_FOUND", "message": "Not Found"}}


def test_request_id_is_echoed_or_generated() -> None:
    with TestClient(_create_app()) as client:
        echoed = client.get("/items/1", headers={"X-Request-ID": "req-123"})
        generated = client.get("/items/2")

    assert echoed.headers["X-Request-ID"] == "req-123"
    assert len(generated.headers["X-Request-ID"]) == 32
