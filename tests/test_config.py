from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from tapeharness.config import Settings, load_settings, parse_toggle


def test_guest_toggle_defaults_to_disabled() -> None:
    assert Settings().guest_test is False


@pytest.mark.parametrize("value", ["1", "true", "TRUE", "Yes", " on "])
def test_guest_toggle_truthy_values(monkeypatch: pytest.MonkeyPatch, value: str) -> None:
    monkeypatch.setenv("TAPEHARNESS_GUEST_TEST", value)
    assert Settings().guest_test is True


@pytest.mark.parametrize("value", ["", "0", "false", "no", "off", "enabled", "2"])
def test_guest_toggle_other_values_disable(monkeypatch: pytest.MonkeyPatch, value: str) -> None:
    monkeypatch.setenv("TAPEHARNESS_GUEST_TEST", value)
    assert Settings().guest_test is False


def test_parse_toggle_accepts_bools_and_none() -> None:
    assert parse_toggle(True) is True
    assert parse_toggle(False) is False
    assert parse_toggle(None) is False


def test_environment_selects_guest_target(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TAPEHARNESS_TARGET", "guest")
    monkeypatch.setenv("TAPEHARNESS_ENV_NAME", "riscv")
    settings = Settings()
    assert settings.target == "guest"
    assert settings.env_name == "riscv"


def test_load_settings_merges_file_and_overrides(tmp_path: Path) -> None:
    config = tmp_path / "harness.json"
    config.write_bytes(
        orjson.dumps(
            {
                "guest_test": "yes",
                "env_name": "valida",
                "guest_runner": ["runner", "{artifact}"],
                "timeout_floor_s": 2.5,
            }
        )
    )
    settings = load_settings(config)
    assert settings.guest_test is True
    assert settings.guest_runner == ["runner", "{artifact}"]
    assert settings.timeout_floor_s == 2.5

    overridden = load_settings(config, guest_test=False, env_name=None)
    assert overridden.guest_test is False
    assert overridden.env_name == "valida"


def test_load_settings_without_file() -> None:
    settings = load_settings()
    assert settings.guest_runner == ["valida", "run", "{artifact}", "{log}"]
    assert settings.timeout_multiplier == 20.0
