from __future__ import annotations

from pathlib import Path

from melody.config import (
    DEFAULT_CLIENT_URL,
    DEFAULT_DATABASE_URL,
    get_env,
    load_config,
    load_runtime_env,
    override_runtime_env,
)


def test_load_config_uses_code_defaults_without_env() -> None:
    config = load_config(runtime_env={})

    assert config.database.url == DEFAULT_DATABASE_URL
    assert config.client_url == DEFAULT_CLIENT_URL
    assert config.logging.level == "INFO"
    assert config.spotify.client_id is None
    assert config.spotify.import_max_tracks == 500
    assert config.session.token_bytes == 32
    assert config.session.credential_skew_seconds == 60
    assert config.rating.initial_rating == 1500.0
    assert config.rating.k_factor == 32.0
    assert config.rating.recent_pair_window == 0
    assert config.cors.allowed_origins == (DEFAULT_CLIENT_URL,)


def test_load_config_reads_overrides() -> None:
    config = load_config(
        runtime_env={
            "SPOTIFY_CLIENT_ID": "id",
            "SPOTIFY_CLIENT_SECRET": "secret",
            "IMPORT_MAX_TRACKS": "50",
            "LOG_LEVEL": "debug",
            "MATCHUP_RECENT_PAIR_WINDOW": "5",
            "CORS_ALLOWED_ORIGINS": "https://a.example, https://b.example",
        }
    )

    assert config.spotify.client_id == "id"
    assert config.spotify.import_max_tracks == 50
    assert config.logging.level == "DEBUG"
    assert config.rating.recent_pair_window == 5
    assert config.cors.allowed_origins == ("https://a.example", "https://b.example")


def test_session_token_size_is_clamped_to_a_safe_minimum() -> None:
    config = load_config(runtime_env={"SESSION_TOKEN_BYTES": "4"})

    assert config.session.token_bytes == 16


def test_invalid_numbers_fall_back_to_defaults() -> None:
    config = load_config(
        runtime_env={"IMPORT_MAX_TRACKS": "lots", "CREDENTIAL_SKEW_SECONDS": "soon"}
    )

    assert config.spotify.import_max_tracks == 500
    assert config.session.credential_skew_seconds == 60


def test_environment_overrides_dotenv(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("LOG_LEVEL=DEBUG\nCLIENT_URL='http://dotenv'\n", encoding="utf-8")

    runtime_env = load_runtime_env(env_file=env_file, base_env={"LOG_LEVEL": "WARNING"})

    assert runtime_env["LOG_LEVEL"] == "WARNING"
    assert runtime_env["CLIENT_URL"] == "http://dotenv"


def test_override_runtime_env_feeds_get_env() -> None:
    override_runtime_env({"PORT": "4000"})
    try:
        assert get_env("PORT") == "4000"
        assert get_env("MISSING", "fallback") == "fallback"
    finally:
        override_runtime_env(None)
