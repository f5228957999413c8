"""App configuration loading helpers."""

from __future__ import annotations

import os
from pathlib import Path

import tomllib

from pydantic import BaseModel, Field, field_validator

CONFIG_FILE = Path.home() / ".config" / "cosmosui" / "config.toml"
EMULATOR_ENV_VAR = "COSMOSUI_EMULATOR"
DEFAULT_PAGE_SIZE = 10

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}
_TOML_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    theme: str = "dark"
    emulator: bool = False
    page_size: int = DEFAULT_PAGE_SIZE
    connection_strings: list[str] = Field(default_factory=list)
    active_connection: str | None = None

    @field_validator("page_size")
    @classmethod
    def _positive_page_size(cls, value: int) -> int:
        return value if value > 0 else DEFAULT_PAGE_SIZE

    def with_connection_strings(self, values: list[str]) -> AppConfig:
        """Return a copy with the saved connection strings replaced."""

        return self.model_copy(update={"connection_strings": list(values)})

    def with_active_connection(self, value: str | None) -> AppConfig:
        """Return a copy with the last used connection string updated."""

        return self.model_copy(update={"active_connection": value})

    def with_emulator(self, enabled: bool) -> AppConfig:
        return self.model_copy(update={"emulator": enabled})


def load_config(*, apply_env: bool = True) -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        data = {}
    except (tomllib.TOMLDecodeError, OSError):
        data = {}

    emulator_override = _emulator_from_env() if apply_env else None
    if emulator_override is not None:
        data["emulator"] = emulator_override
    return AppConfig(**data)


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [
        f"theme = {_quote(config.theme)}",
        f"emulator = {str(config.emulator).lower()}",
        f"page_size = {config.page_size}",
    ]
    if config.active_connection:
        lines.append(f"active_connection = {_quote(config.active_connection)}")
    if config.connection_strings:
        lines.append("connection_strings = [")
        for value in config.connection_strings:
            lines.append(f"    {_quote(value)},")
        lines.append("]")
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    if isinstance(raw, dict):
        theme = raw.get("theme")
        if isinstance(theme, str):
            data["theme"] = theme
        emulator = raw.get("emulator")
        if isinstance(emulator, bool):
            data["emulator"] = emulator
        page_size = raw.get("page_size")
        if isinstance(page_size, int) and not isinstance(page_size, bool):
            data["page_size"] = page_size
        active = raw.get("active_connection")
        if isinstance(active, str):
            data["active_connection"] = active
        values = raw.get("connection_strings")
        if isinstance(values, list):
            data["connection_strings"] = [value for value in values if isinstance(value, str) and value]
    return data


def _emulator_from_env() -> bool | None:
    raw = os.environ.get(EMULATOR_ENV_VAR)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    return None


def _quote(value: str) -> str:
    return '"' + "".join(_escape(char) for char in value) + '"'


def _escape(char: str) -> str:
    if char in _TOML_ESCAPES:
        return _TOML_ESCAPES[char]
    if ord(char) < 0x20 or ord(char) == 0x7F:
        return f"\\u{ord(char):04X}"
    return char


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "DEFAULT_PAGE_SIZE",
    "EMULATOR_ENV_VAR",
    "load_config",
    "save_config",
]
