"""Tests for AppConfig helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from cosmosui import config as config_module
from cosmosui.config import EMULATOR_ENV_VAR, AppConfig, load_config, save_config


@pytest.fixture(autouse=True)
def _no_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(EMULATOR_ENV_VAR, raising=False)


def test_load_config_returns_defaults_when_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.toml")

    result = load_config()

    assert result == AppConfig()
    assert result.page_size == 10
    assert result.emulator is False


def test_load_config_reads_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """
theme = "light"
emulator = true
page_size = 25
active_connection = "AccountEndpoint=https://b.documents.azure.com:443/;AccountKey=Yg=="
connection_strings = [
    "AccountEndpoint=https://a.documents.azure.com:443/;AccountKey=YQ==",
    "AccountEndpoint=https://b.documents.azure.com:443/;AccountKey=Yg==",
    "",
    42,
]
"""
    )
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result.theme == "light"
    assert result.emulator is True
    assert result.page_size == 25
    assert result.active_connection.startswith("AccountEndpoint=https://b.")
    assert len(result.connection_strings) == 2


def test_load_config_ignores_wrongly_typed_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('theme = 3\nemulator = "yes"\npage_size = true\nconnection_strings = "one"\n')
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    assert load_config() == AppConfig()


def test_load_config_handles_toml_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("theme = [unterminated")
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result == AppConfig()


def test_non_positive_page_size_falls_back_to_default() -> None:
    assert AppConfig(page_size=0).page_size == 10
    assert AppConfig(page_size=-4).page_size == 10


@pytest.mark.parametrize(("raw", "expected"), [("1", True), ("on", True), ("false", False), ("0", False)])
def test_environment_overrides_emulator_flag(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool
) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(f"emulator = {str(not expected).lower()}\n")
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)
    monkeypatch.setenv(EMULATOR_ENV_VAR, raw)

    assert load_config().emulator is expected
    assert load_config(apply_env=False).emulator is (not expected)


def test_unrecognised_environment_value_is_ignored(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.toml")
    monkeypatch.setenv(EMULATOR_ENV_VAR, "maybe")

    assert load_config().emulator is False


def test_save_config_persists_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "nested" / "config.toml"
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)
    saved = AppConfig(
        theme="light",
        emulator=True,
        page_size=5,
        connection_strings=['AccountEndpoint=https://a.documents.azure.com:443/;AccountKey=a"b\\c'],
        active_connection="AccountEndpoint=https://a.documents.azure.com:443/;AccountKey=YQ==",
    )

    save_config(saved)

    content = config_path.read_text()
    assert 'theme = "light"' in content
    assert "emulator = true" in content
    assert "page_size = 5" in content
    assert "connection_strings = [" in content
    assert load_config() == saved


def test_with_helpers_return_updated_copies() -> None:
    config = AppConfig()

    updated = config.with_connection_strings(["one"]).with_active_connection("one").with_emulator(True)

    assert updated.connection_strings == ["one"]
    assert updated.active_connection == "one"
    assert updated.emulator is True
    assert config == AppConfig()


def test_save_config_escapes_control_characters(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.toml")
    saved = AppConfig(
        theme="dark\nmode",
        connection_strings=["line\none", "tab\there\r\x01\x7f", 'quote"back\\slash'],
        active_connection="form\ffeed\bback",
    )

    save_config(saved)

    content = (tmp_path / "config.toml").read_text()
    assert r'theme = "dark\nmode"' in content
    assert r'"tab\there\r\u0001\u007F",' in content
    assert load_config() == saved
