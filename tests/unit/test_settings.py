from __future__ import annotations

import pytest

from streamrelay.config.settings import RelaySettings, get_settings, reset_settings
from streamrelay.services.relay_service import RelayConfig


def test_api_key_read_from_deepseek_env_alias(monkeypatch) -> None:
    monkeypatch.delenv("UPSTREAM_API_KEY", raising=False)
    monkeypatch.setenv("DEEPSEEK_API_KEY", "from-env")
    s = RelaySettings(_env_file=None)
    assert s.upstream_api_key == "from-env"
    assert s.upstream_configured


def test_missing_key_is_not_a_startup_error(monkeypatch) -> None:
    monkeypatch.delenv("UPSTREAM_API_KEY", raising=False)
    monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
    s = RelaySettings(_env_file=None)
    s.validate()
    assert s.upstream_api_key is None
    assert not s.upstream_configured


@pytest.mark.parametrize(
    "overrides",
    [
        {"upstream_idle_timeout_seconds": 0},
        {"default_temperature": 2.5},
        {"default_max_tokens": 0},
        {"upstream_base_url": "ftp://nope"},
        {"upstream_max_record_chars": 0},
    ],
)
def test_validate_rejects_bad_values(overrides: dict) -> None:
    with pytest.raises(ValueError):
        RelaySettings(_env_file=None, **overrides).validate()


def test_get_settings_is_cached_until_reset(monkeypatch) -> None:
    reset_settings()
    monkeypatch.setenv("UPSTREAM_MODEL", "model-a")
    first = get_settings()
    assert first.upstream_model == "model-a"
    monkeypatch.setenv("UPSTREAM_MODEL", "model-b")
    assert get_settings() is first
    reset_settings()
    assert get_settings().upstream_model == "model-b"
    reset_settings()


def test_relay_config_from_settings() -> None:
    s = RelaySettings(
        _env_file=None,
        upstream_api_key="k",
        upstream_idle_timeout_seconds=12,
        reasoning_system_prompt="reason",
    )
    config = RelayConfig.from_settings(s).with_system_prompt(s.reasoning_system_prompt)
    assert config.api_key == "k"
    assert config.idle_timeout_seconds == 12
    assert config.max_record_chars == s.upstream_max_record_chars
    assert config.default_system_prompt == "reason"
    assert RelayConfig.from_settings(s).default_system_prompt == s.blueprint_system_prompt
