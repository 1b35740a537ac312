from datetime import timedelta

import pytest

from core import config as config_module
from core import security as security_module


def _reset_settings_cache():
    config_module.get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _fresh_settings():
    _reset_settings_cache()
    yield
    _reset_settings_cache()


def test_non_local_debug_mode_is_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("JWT_SECRET", "real-secret")
    monkeypatch.setenv("DETECTION_API_KEY", "real-key")

    with pytest.raises(ValueError, match="debug=true"):
        config_module.get_settings()


def test_non_local_default_secrets_are_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "staging")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("JWT_SECRET", config_module.DEFAULT_JWT_SECRET)
    monkeypatch.setenv("DETECTION_API_KEY", "real-key")

    with pytest.raises(ValueError, match="default JWT secret"):
        config_module.get_settings()


def test_non_local_requires_detection_key(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("JWT_SECRET", "real-secret")
    monkeypatch.setenv("DETECTION_API_KEY", "")

    with pytest.raises(ValueError, match="DETECTION_API_KEY"):
        config_module.get_settings()


def test_local_allows_dev_defaults(monkeypatch):
    monkeypatch.setenv("APP_ENV", "local")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("JWT_SECRET", config_module.DEFAULT_JWT_SECRET)

    settings = config_module.get_settings()
    assert settings.app_env == "local"
    assert settings.detection_display_min_confidence == pytest.approx(0.95)


def test_access_token_round_trip(monkeypatch):
    monkeypatch.setenv("APP_ENV", "local")
    token = security_module.create_access_token({"sub": "u1", "customer_id": "c1"})
    payload = security_module.decode_access_token(token)
    assert payload["sub"] == "u1"
    assert payload["customer_id"] == "c1"


def test_expired_or_garbage_token_is_rejected(monkeypatch):
    monkeypatch.setenv("APP_ENV", "local")
    expired = security_module.create_access_token({"sub": "u1"}, expires_delta=timedelta(minutes=-5))
    assert security_module.decode_access_token(expired) is None
    assert security_module.decode_access_token("not-a-jwt") is None
