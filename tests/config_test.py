"""Tests for the porthor.config package."""

from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError
from safir.logging import LogLevel, Profile

from porthor.config import CacheConfig, Config
from porthor.constants import CACHE_MAX_ENTRIES, DEFAULT_LEEWAY


def test_defaults() -> None:
    config = Config()
    assert config.log_level == LogLevel.INFO
    assert config.log_profile == Profile.production
    assert config.leeway == DEFAULT_LEEWAY
    assert not config.allow_none_algorithm
    assert config.cache.max_entries == CACHE_MAX_ENTRIES
    assert config.cache.leeway == DEFAULT_LEEWAY


def test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORTHOR_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("PORTHOR_LOG_PROFILE", "development")
    monkeypatch.setenv("PORTHOR_LEEWAY", "30s")
    monkeypatch.setenv("PORTHOR_ALLOW_NONE_ALGORITHM", "true")
    monkeypatch.setenv("PORTHOR_CACHE_TTL", "5m")
    monkeypatch.setenv("PORTHOR_CACHE_INTERVAL", "1h30m")
    monkeypatch.setenv("PORTHOR_CACHE_MAX_ENTRIES", "10")

    config = Config()
    assert config.log_level == LogLevel.DEBUG
    assert config.log_profile == Profile.development
    assert config.leeway == timedelta(seconds=30)
    assert config.allow_none_algorithm
    assert config.cache.ttl == timedelta(minutes=5)
    assert config.cache.interval == timedelta(hours=1, minutes=30)
    assert config.cache.max_entries == 10

    config.configure_logging()


def test_invalid(monkeypatch: pytest.MonkeyPatch) -> None:
    with pytest.raises(ValidationError):
        CacheConfig(max_entries=0)
    with pytest.raises(ValidationError):
        CacheConfig(unknown="value")

    monkeypatch.setenv("PORTHOR_CACHE_TTL", "forever")
    with pytest.raises(ValidationError):
        CacheConfig()
