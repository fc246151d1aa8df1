"""Tests for commerce_events.settings.Settings behavior."""

from datetime import timedelta
from typing import Any

import pytest
from pydantic import ValidationError

from commerce_events.settings import Settings, get_settings


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch):
    """Defaults should be stable even if external env or .env sets values.

    We explicitly delete the overridable variables and bypass .env loading
    by passing `_env_file=None`.
    """
    for var in [
        "COMMERCE_EVENTS_BROKER_EXCHANGE",
        "COMMERCE_EVENTS_CACHE_ENABLED",
        "COMMERCE_EVENTS_LOG_LEVEL",
        "COMMERCE_EVENTS_LOG_CHANNEL_ENABLED",
        "COMMERCE_EVENTS_DISPATCHER_MAX_WORKERS",
        "commerce_events_broker_exchange",
    ]:
        monkeypatch.delenv(var, raising=False)
    s = Settings(_env_file=None)
    assert s.broker_exchange == "ecommerce.events"
    assert s.dead_letter_exchange == "ecommerce.events.dlx"
    assert s.dead_letter_queue == "ecommerce.events.dlq"
    assert s.stream_bridge_binding == "eventPublisher-out-0"
    assert s.log_level == "INFO"
    assert s.cache_enabled is True
    assert s.log_channel_enabled is False
    assert s.listener_max_attempts == 3
    assert s.shutdown_grace_period_seconds == 30


def test_ttl_properties():
    s = Settings(_env_file=None)
    assert s.cache_event_ttl == timedelta(hours=24)
    assert s.recent_events_ttl == timedelta(hours=24)
    assert s.processed_event_ttl == timedelta(days=7)


def test_env_overrides(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("COMMERCE_EVENTS_BROKER_EXCHANGE", "shop.events")
    monkeypatch.setenv("COMMERCE_EVENTS_DISPATCHER_MAX_WORKERS", "2")
    monkeypatch.setenv("COMMERCE_EVENTS_CACHE_ENABLED", "false")
    monkeypatch.setenv("COMMERCE_EVENTS_LOG_CHANNEL_ENABLED", "true")
    s = Settings(_env_file=None)
    assert s.broker_exchange == "shop.events"
    assert s.dispatcher_max_workers == 2
    assert s.cache_enabled is False
    assert s.log_channel_enabled is True


def test_case_insensitive_env_name(monkeypatch: pytest.MonkeyPatch):
    # lower-case variable name should still be picked up due to case_sensitive=False
    monkeypatch.setenv("commerce_events_broker_exchange", "lower.events")  # type: ignore[arg-type]
    s = Settings(_env_file=None)
    assert s.broker_exchange == "lower.events"


def test_log_level_normalized():
    assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"


def test_invalid_log_level_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, log_level="verbose")


@pytest.mark.parametrize(
    "override",
    [
        {"dispatcher_max_workers": 0},
        {"listener_multiplier": 0.5},
        {"recent_events_max_length": 0},
        {"retry_base_delay_seconds": -1},
    ],
)
def test_out_of_range_values_rejected(override: dict[str, Any]):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **override)


def test_get_settings_singleton():
    a = get_settings()
    b = get_settings()
    assert a is b


def test_get_settings_cache_not_affected_by_new_env(monkeypatch: pytest.MonkeyPatch):
    # Ensure cache stability: first call caches values
    first = get_settings()
    original_exchange = first.broker_exchange
    monkeypatch.setenv("COMMERCE_EVENTS_BROKER_EXCHANGE", "other.events")
    second = get_settings()
    assert second is first
    assert second.broker_exchange == original_exchange  # cache not invalidated


@pytest.mark.parametrize(
    "override,expected",
    [
        ({"redis_url": "redis://cache:6379/2"}, "redis://cache:6379/2"),
        ({"dispatcher_max_pending": 0}, 0),
    ],
)
def test_direct_instantiation_with_overrides(override: dict[str, Any], expected: Any):
    s = Settings(_env_file=None, **override)
    key = next(iter(override.keys()))
    assert getattr(s, key) == expected
