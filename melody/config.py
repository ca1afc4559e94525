"""Application configuration utilities for melody."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any

from melody.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./melody.db"
DEFAULT_CLIENT_URL = "http://localhost:5173"
DEFAULT_SPOTIFY_SCOPE = (
    "user-library-read playlist-read-private playlist-read-collaborative user-read-private"
)
DEFAULT_IMPORT_MAX_TRACKS = 500
DEFAULT_INITIAL_RATING = 1500.0
DEFAULT_K_FACTOR = 32.0
DEFAULT_SESSION_TOKEN_BYTES = 32
MIN_SESSION_TOKEN_BYTES = 16
DEFAULT_CREDENTIAL_SKEW_SECONDS = 60

_RUNTIME_ENV_CACHE: dict[str, str] | None = None


def _load_env_file(path: Path) -> dict[str, str]:
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    env_values: dict[str, str] = {}
    for line in contents.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition("=")
        if not sep:
            continue
        env_values[key.strip()] = value.strip().strip('"').strip("'")
    return env_values


def load_runtime_env(
    *,
    env_file: str | os.PathLike[str] | None = None,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Load runtime environment values applying .env before explicit environment."""

    env: dict[str, str] = {}
    source = dict(base_env if base_env is not None else os.environ)

    path = Path(env_file) if env_file is not None else Path(".env")
    if path.exists() and path.is_file():
        env.update(_load_env_file(path))

    env.update({key: str(value) for key, value in source.items() if value is not None})
    return env


def get_runtime_env() -> Mapping[str, str]:
    """Return the cached runtime environment mapping."""

    global _RUNTIME_ENV_CACHE
    if _RUNTIME_ENV_CACHE is None:
        _RUNTIME_ENV_CACHE = load_runtime_env()
    return _RUNTIME_ENV_CACHE


def override_runtime_env(runtime_env: Mapping[str, str] | None) -> None:
    """Override the cached runtime environment (primarily for testing)."""

    global _RUNTIME_ENV_CACHE
    if runtime_env is None:
        _RUNTIME_ENV_CACHE = None
    else:
        _RUNTIME_ENV_CACHE = dict(runtime_env)


def get_env(name: str, default: str | None = None) -> str | None:
    """Return an environment variable honoring ENV > .env > defaults."""

    env = get_runtime_env()
    return env.get(name, default)


def _env_value(env: Mapping[str, Any], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    return str(value)


def _as_int(value: str | None, *, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: str | None, *, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _bounded_int(
    value: Any,
    *,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    try:
        resolved = int(value)
    except (TypeError, ValueError):
        resolved = default
    if minimum is not None:
        resolved = max(minimum, resolved)
    if maximum is not None:
        resolved = min(maximum, resolved)
    return resolved


def _parse_list(value: str | None) -> list[str]:
    if value is None:
        return []
    candidates = value.replace("\n", ",").split(",")
    return [item.strip() for item in candidates if item.strip()]


@dataclass(slots=True)
class SpotifyConfig:
    client_id: str | None
    client_secret: str | None
    redirect_uri: str | None
    scope: str
    import_max_tracks: int
    http_timeout: float


@dataclass(slots=True)
class SessionConfig:
    token_bytes: int
    credential_skew_seconds: int


@dataclass(slots=True)
class RatingConfig:
    initial_rating: float
    k_factor: float
    recent_pair_window: int


@dataclass(slots=True)
class LoggingConfig:
    level: str


@dataclass(slots=True)
class DatabaseConfig:
    url: str


@dataclass(slots=True)
class CorsConfig:
    allowed_origins: tuple[str, ...]


@dataclass(slots=True)
class AppConfig:
    spotify: SpotifyConfig
    session: SessionConfig
    rating: RatingConfig
    logging: LoggingConfig
    database: DatabaseConfig
    cors: CorsConfig
    client_url: str


def _resolve_database_url(env: Mapping[str, Any]) -> str:
    raw = (_env_value(env, "DATABASE_URL") or "").strip()
    return raw or DEFAULT_DATABASE_URL


def load_config(runtime_env: Mapping[str, Any] | None = None) -> AppConfig:
    """Build the application configuration from the runtime environment."""

    env = runtime_env if runtime_env is not None else get_runtime_env()

    client_url = (_env_value(env, "CLIENT_URL") or "").strip() or DEFAULT_CLIENT_URL

    requested_token_bytes = _as_int(
        _env_value(env, "SESSION_TOKEN_BYTES"),
        default=DEFAULT_SESSION_TOKEN_BYTES,
    )
    token_bytes = _bounded_int(
        requested_token_bytes,
        default=DEFAULT_SESSION_TOKEN_BYTES,
        minimum=MIN_SESSION_TOKEN_BYTES,
        maximum=128,
    )
    if token_bytes != requested_token_bytes:
        logger.warning(
            "SESSION_TOKEN_BYTES=%r outside allowed range; clamped to %s.",
            requested_token_bytes,
            token_bytes,
        )

    spotify = SpotifyConfig(
        client_id=_env_value(env, "SPOTIFY_CLIENT_ID"),
        client_secret=_env_value(env, "SPOTIFY_CLIENT_SECRET"),
        redirect_uri=_env_value(env, "SPOTIFY_REDIRECT_URI"),
        scope=_env_value(env, "SPOTIFY_SCOPE") or DEFAULT_SPOTIFY_SCOPE,
        import_max_tracks=max(
            1,
            _as_int(
                _env_value(env, "IMPORT_MAX_TRACKS"),
                default=DEFAULT_IMPORT_MAX_TRACKS,
            ),
        ),
        http_timeout=max(1.0, _as_float(_env_value(env, "SPOTIFY_HTTP_TIMEOUT"), default=10.0)),
    )

    session = SessionConfig(
        token_bytes=token_bytes,
        credential_skew_seconds=max(
            0,
            _as_int(
                _env_value(env, "CREDENTIAL_SKEW_SECONDS"),
                default=DEFAULT_CREDENTIAL_SKEW_SECONDS,
            ),
        ),
    )

    rating = RatingConfig(
        initial_rating=_as_float(
            _env_value(env, "RATING_INITIAL"), default=DEFAULT_INITIAL_RATING
        ),
        k_factor=DEFAULT_K_FACTOR,
        recent_pair_window=_bounded_int(
            _env_value(env, "MATCHUP_RECENT_PAIR_WINDOW"),
            default=0,
            minimum=0,
            maximum=100,
        ),
    )

    allowed_origins = tuple(_parse_list(_env_value(env, "CORS_ALLOWED_ORIGINS"))) or (
        client_url,
    )

    return AppConfig(
        spotify=spotify,
        session=session,
        rating=rating,
        logging=LoggingConfig(level=(_env_value(env, "LOG_LEVEL") or "INFO").upper()),
        database=DatabaseConfig(url=_resolve_database_url(env)),
        cors=CorsConfig(allowed_origins=allowed_origins),
        client_url=client_url,
    )


__all__ = [
    "AppConfig",
    "CorsConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "RatingConfig",
    "SessionConfig",
    "SpotifyConfig",
    "get_env",
    "get_runtime_env",
    "load_config",
    "load_runtime_env",
    "override_runtime_env",
]
