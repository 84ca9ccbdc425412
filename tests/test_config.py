"""Settings tests."""

import pytest
from pydantic import ValidationError

from secretboard.config import Settings


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("SECRETBOARD_PORT", "8123")
    monkeypatch.setenv("SECRETBOARD_SESSION_BACKEND", "redis")
    settings = Settings(_env_file=None)
    assert settings.port == 8123
    assert settings.session_backend == "redis"


def test_default_secret_rejected_outside_development():
    with pytest.raises(ValidationError):
        Settings(environment="production", _env_file=None)


def test_production_with_real_secret():
    settings = Settings(environment="production", session_secret="s3cr3t", _env_file=None)
    assert settings.session_secret == "s3cr3t"


def test_google_configured():
    assert not Settings(_env_file=None).google_configured
    assert Settings(
        google_client_id="id", google_client_secret="secret", _env_file=None
    ).google_configured


def test_unknown_session_backend_rejected():
    with pytest.raises(ValidationError):
        Settings(session_backend="memcached", _env_file=None)
