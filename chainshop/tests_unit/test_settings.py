"""
Tests for application settings (core.settings).
"""
import pytest
from pydantic import ValidationError

from chainshop.app.core import settings as settings_module
from chainshop.app.core.settings import Settings, get_settings


def _settings(**overrides) -> Settings:
    values = {"ENVIRONMENT": "production", "LOG_LEVEL": "INFO", "SESSION_BACKEND": "file"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_defaults_target_bsc_testnet():
    settings = _settings()
    assert settings.REQUIRED_CHAIN_ID == 97
    assert settings.CONTRACT_ADDRESS == "0xA39bC71CF47AE2C84C7868b0DE83eeBAddb270Fd"
    assert settings.REFERRAL_POLL_INTERVAL == 30.0
    assert settings.is_production


def test_invalid_environment():
    with pytest.raises(ValidationError):
        _settings(ENVIRONMENT="staging")


def test_log_level_is_normalized():
    assert _settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"
    with pytest.raises(ValidationError):
        _settings(LOG_LEVEL="verbose")


def test_session_backend():
    assert _settings(SESSION_BACKEND="Redis").SESSION_BACKEND == "redis"
    with pytest.raises(ValidationError):
        _settings(SESSION_BACKEND="cookie")


def test_urls_lose_trailing_slash():
    settings = _settings(API_BASE_URL="https://api.example.com/api/", APP_ORIGIN="https://shop.example.com/")
    assert settings.API_BASE_URL == "https://api.example.com/api"
    assert settings.APP_ORIGIN == "https://shop.example.com"


def test_intervals_must_be_positive():
    with pytest.raises(ValidationError):
        _settings(REFERRAL_POLL_INTERVAL=0)
    with pytest.raises(ValidationError):
        _settings(HTTP_TIMEOUT=-1)


def test_production_requires_https_backend():
    assert _settings(API_BASE_URL="http://api.example.com/api").validate_production_settings() == [
        "API_BASE_URL must use https in production"
    ]
    assert _settings(ENVIRONMENT="development", API_BASE_URL="http://localhost:5000/api").validate_production_settings() == []


def test_get_settings_reports_configuration_errors(monkeypatch):
    monkeypatch.setattr(settings_module, "_settings", None)
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("API_BASE_URL", "http://api.example.com/api")

    with pytest.raises(ValueError, match="Configuration errors"):
        get_settings()


def test_get_settings_is_cached(monkeypatch):
    monkeypatch.setattr(settings_module, "_settings", None)
    monkeypatch.setenv("ENVIRONMENT", "development")

    assert get_settings() is get_settings()
