from datetime import timedelta

import pytest

from core.env import env_bool, env_int
from services.onelink.config import OneLinkSettings, load_encryption_key_setting
from services.onelink.facade import build_cache_and_lock
from services.onelink.lock import InMemoryLinkLock
from services.onelink.status_cache import InMemoryStatusCache


def test_settings_defaults(monkeypatch):
    for name in (
        "ONELINK_BASE_URL",
        "ONELINK_DEFAULT_EXPIRATION_SECONDS",
        "ONELINK_MAX_EXPIRATION_SECONDS",
        "ONELINK_LOCK_LEASE_SECONDS",
        "ONELINK_REDIS_URL",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = OneLinkSettings.load()

    assert settings.base_url == "http://localhost:3000"
    assert settings.default_expiration == timedelta(days=7)
    assert settings.max_expiration == timedelta(days=30)
    assert settings.lock_lease == timedelta(seconds=10)
    assert settings.redis_url is None


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("ONELINK_BASE_URL", "https://forms.example.org/")
    monkeypatch.setenv("ONELINK_DEFAULT_EXPIRATION_SECONDS", "3600")
    monkeypatch.setenv("ONELINK_LOCK_LEASE_SECONDS", "5")
    monkeypatch.setenv("ONELINK_REDIS_URL", "redis://cache:6379/2")

    settings = OneLinkSettings.load()

    assert settings.base_url == "https://forms.example.org"
    assert settings.default_expiration == timedelta(hours=1)
    assert settings.lock_lease == timedelta(seconds=5)
    assert settings.redis_url == "redis://cache:6379/2"


def test_settings_reject_default_beyond_max():
    with pytest.raises(ValueError):
        OneLinkSettings(default_expiration=timedelta(days=31), max_expiration=timedelta(days=30))


def test_missing_encryption_key_raises(monkeypatch):
    monkeypatch.delenv("ONELINK_ENCRYPTION_KEY", raising=False)
    with pytest.raises(RuntimeError):
        load_encryption_key_setting()


def test_env_helpers_fall_back_on_bad_values(monkeypatch):
    monkeypatch.setenv("ONELINK_TEST_INT", "abc")
    monkeypatch.setenv("ONELINK_TEST_SMALL", "0")
    monkeypatch.setenv("ONELINK_TEST_BOOL", "maybe")

    assert env_int("ONELINK_TEST_INT", 7) == 7
    assert env_int("ONELINK_TEST_SMALL", 3, minimum=1) == 3
    assert env_bool("ONELINK_TEST_BOOL", True) is True


def test_without_redis_backends_are_process_local():
    cache, lock = build_cache_and_lock(OneLinkSettings())
    assert isinstance(cache, InMemoryStatusCache)
    assert isinstance(lock, InMemoryLinkLock)
