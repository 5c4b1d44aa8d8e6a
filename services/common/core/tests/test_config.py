import pytest
from pydantic import ValidationError

from services.common.core.config import BaseAppConfig


def test_defaults(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("VERIFY_SSL", raising=False)

    config = BaseAppConfig(_env_file=None)

    assert config.LOG_LEVEL == "INFO"
    assert config.VERIFY_SSL is True


@pytest.mark.parametrize("value, expected", [("debug", "DEBUG"), (" Warning ", "WARNING"), ("", "INFO")])
def test_log_level_normalized(monkeypatch, value, expected):
    monkeypatch.setenv("LOG_LEVEL", value)

    assert BaseAppConfig(_env_file=None).LOG_LEVEL == expected


def test_unknown_log_level(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "chatty")

    with pytest.raises(ValidationError):
        BaseAppConfig(_env_file=None)


def test_verify_ssl_from_env(monkeypatch):
    monkeypatch.setenv("VERIFY_SSL", "false")

    assert BaseAppConfig(_env_file=None).VERIFY_SSL is False
