"""Settings validation tests."""

import pytest
from pydantic import ValidationError

from authcore.config.settings import Settings

VALID_KEY = "k" * 32


def test_defaults():
    settings = Settings(secret_key=VALID_KEY, _env_file=None)

    assert settings.access_token_expire_minutes == 15
    assert settings.refresh_token_expire_days == 7
    assert settings.max_failed_login_attempts == 5
    assert settings.lockout_duration_minutes == 0
    assert settings.jwt_algorithm == "HS256"


def test_short_secret_key_rejected():
    with pytest.raises(ValidationError):
        Settings(secret_key="too-short", _env_file=None)


def test_unknown_environment_rejected():
    with pytest.raises(ValidationError):
        Settings(secret_key=VALID_KEY, environment="qa", _env_file=None)


def test_non_positive_lockout_threshold_rejected():
    with pytest.raises(ValidationError):
        Settings(secret_key=VALID_KEY, max_failed_login_attempts=0, _env_file=None)


def test_verification_keys_current_first():
    settings = Settings(secret_key=VALID_KEY, previous_secret_keys=" old-one , , old-two ", _env_file=None)

    assert settings.verification_keys == [VALID_KEY, "old-one", "old-two"]


def test_sqlite_detection():
    settings = Settings(secret_key=VALID_KEY, database_url="sqlite+aiosqlite:///./x.db", _env_file=None)

    assert settings.is_sqlite


def test_trusted_proxies_parsed_as_networks():
    settings = Settings(secret_key=VALID_KEY, trusted_proxies="10.0.0.0/8, 192.0.2.1", _env_file=None)

    assert [str(network) for network in settings.trusted_proxy_networks] == ["10.0.0.0/8", "192.0.2.1/32"]


def test_invalid_trusted_proxy_rejected():
    with pytest.raises(ValidationError):
        Settings(secret_key=VALID_KEY, trusted_proxies="10.0.0.0/8, proxy.internal", _env_file=None)
