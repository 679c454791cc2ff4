"""Tests for configuration helpers."""

from pathlib import Path

from pixel_forge.config import Settings, parse_allowed_origins


def test_parse_allowed_origins_splits_and_dedupes() -> None:
    raw = "http://localhost:5173/, https://forge.example.com ,http://localhost:5173"

    assert parse_allowed_origins(raw) == [
        "http://localhost:5173",
        "https://forge.example.com",
    ]


def test_parse_allowed_origins_wildcard_and_empty() -> None:
    assert parse_allowed_origins("*") == ["*"]
    assert parse_allowed_origins("") == []
    assert parse_allowed_origins(None) == []


def test_settings_defaults(monkeypatch) -> None:
    for name in ("UPLOAD_DIR", "SESSION_MAX_AGE_SECONDS", "SUPABASE_URL"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.upload_dir == Path("uploads")
    assert settings.session_max_age_seconds == 600
    assert settings.cleanup_interval_seconds == 300
    assert settings.supabase_url is None


def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.setenv("SESSION_MAX_AGE_SECONDS", "120")
    monkeypatch.setenv("ORPHAN_SWEEP_ENABLED", "false")

    settings = Settings(_env_file=None)

    assert settings.session_max_age_seconds == 120
    assert settings.orphan_sweep_enabled is False
