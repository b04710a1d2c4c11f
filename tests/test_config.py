"""Unit tests for core/config.py -- environment-driven Settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("TOKEN_LENGTH", "TOKEN_TTL_SECONDS", "BCRYPT_COST"):
        monkeypatch.delenv(name, raising=False)
    s = Settings(_env_file=None)
    assert s.token_length == 26
    assert s.token_ttl_seconds == 86400
    assert s.bcrypt_cost == 12
    assert s.database_url.startswith("sqlite:///")


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TOKEN_LENGTH", "32")
    monkeypatch.setenv("BCRYPT_COST", "10")
    monkeypatch.setenv("TOKEN_TTL_SECONDS", "60")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    s = Settings(_env_file=None)
    assert s.token_length == 32
    assert s.bcrypt_cost == 10
    assert s.token_ttl_seconds == 60
    assert s.database_url == "sqlite:///:memory:"


@pytest.mark.parametrize(
    "name,value",
    [
        ("TOKEN_LENGTH", "0"),
        ("BCRYPT_COST", "3"),
        ("BCRYPT_COST", "32"),
        ("TOKEN_TTL_SECONDS", "0"),
        ("TOKEN_LENGTH", "twenty"),
    ],
)
def test_invalid_values_rejected(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_get_settings_is_cached() -> None:
    assert get_settings() is get_settings()
