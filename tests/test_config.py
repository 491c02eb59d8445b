from __future__ import annotations

import pytest

from pyprov.config import ProvConfig
from pyprov.exceptions import PyprovConfigError
from pyprov.state.policy import ChangeDetection


def test_defaults() -> None:
    config = ProvConfig()
    assert config.change_detection == ChangeDetection.VALUE
    assert config.max_entries == 0
    assert config.log_payloads is False


def test_change_detection_accepts_plain_strings() -> None:
    config = ProvConfig(change_detection="identity")  # type: ignore[arg-type]
    assert config.change_detection is ChangeDetection.IDENTITY


def test_invalid_values_raise_config_error() -> None:
    with pytest.raises(PyprovConfigError):
        ProvConfig(change_detection="deep")  # type: ignore[arg-type]
    with pytest.raises(PyprovConfigError):
        ProvConfig(max_entries=-1)


def test_from_env_reads_pyprov_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PYPROV_CHANGE_DETECTION", " Identity ")
    monkeypatch.setenv("PYPROV_MAX_ENTRIES", "64")
    monkeypatch.setenv("PYPROV_LOG_PAYLOADS", "yes")

    config = ProvConfig.from_env()

    assert config.change_detection is ChangeDetection.IDENTITY
    assert config.max_entries == 64
    assert config.log_payloads is True


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PYPROV_MAX_ENTRIES", "64")
    monkeypatch.setenv("PYPROV_LOG_PAYLOADS", "1")

    config = ProvConfig.from_env(max_entries=8, log_payloads=False)

    assert config.max_entries == 8
    assert config.log_payloads is False


def test_from_env_rejects_non_numeric_bound(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PYPROV_MAX_ENTRIES", "lots")
    with pytest.raises(PyprovConfigError):
        ProvConfig.from_env()


def test_from_env_ignores_unrecognized_booleans(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PYPROV_CHANGE_DETECTION", raising=False)
    monkeypatch.setenv("PYPROV_LOG_PAYLOADS", "maybe")
    assert ProvConfig.from_env().log_payloads is False
