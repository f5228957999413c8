"""Connection string stores and validation."""

from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable

from . import config as config_module
from .models import ConnectionProfile, ConnectionStringValidationError, account_endpoint


@runtime_checkable
class ConnectionStore(Protocol):
    """Protocol implemented by connection string stores."""

    def list_all(self) -> tuple[str, ...]:
        """Return every saved connection string in insertion order."""

    def append(self, value: str) -> None:
        """Persist a new connection string."""

    def remove(self, value: str) -> None:
        """Forget a connection string (no-op when absent)."""


def is_valid_connection_string(value: str | None, *, allow_emulator: bool = False) -> bool:
    """Return True when ``value`` matches the account connection string format."""

    if not value:
        return False
    try:
        ConnectionProfile.parse(value, allow_emulator=allow_emulator)
    except ConnectionStringValidationError:
        return False
    return True


def validate_connection_string(value: str | None, *, allow_emulator: bool = False) -> ConnectionProfile:
    """Parse ``value`` into a profile or raise ``ConnectionStringValidationError``."""

    if not value:
        raise ConnectionStringValidationError("Provide a connection string.")
    return ConnectionProfile.parse(value, allow_emulator=allow_emulator)


class MemoryConnectionStore:
    """In-process store used by tests and throwaway sessions."""

    def __init__(self, values: Iterable[str] | None = None) -> None:
        self._values: list[str] = list(values or ())

    def list_all(self) -> tuple[str, ...]:
        return tuple(self._values)

    def append(self, value: str) -> None:
        if not value:
            raise ConnectionStringValidationError("Cannot save an empty connection string.")
        self._values.append(value)

    def remove(self, value: str) -> None:
        if value in self._values:
            self._values.remove(value)


class ConfigConnectionStore:
    """Store that keeps connection strings in ``config.toml``.

    Every call re-reads the file so that edits made by another process are not
    clobbered; writes go through ``save_config``.
    """

    def list_all(self) -> tuple[str, ...]:
        return tuple(config_module.load_config(apply_env=False).connection_strings)

    def append(self, value: str) -> None:
        if not value:
            raise ConnectionStringValidationError("Cannot save an empty connection string.")
        config = config_module.load_config(apply_env=False)
        values = list(config.connection_strings)
        values.append(value)
        config_module.save_config(config.with_connection_strings(values))

    def remove(self, value: str) -> None:
        config = config_module.load_config(apply_env=False)
        values = list(config.connection_strings)
        if value not in values:
            return
        values.remove(value)
        config_module.save_config(config.with_connection_strings(values))


def describe_connection(value: str) -> str:
    """Short label for a connection string that does not reveal the account key."""

    endpoint = account_endpoint(value)
    if endpoint:
        return endpoint
    return value[:24] + "…" if len(value) > 24 else value


__all__ = [
    "ConfigConnectionStore",
    "ConnectionStore",
    "MemoryConnectionStore",
    "describe_connection",
    "is_valid_connection_string",
    "validate_connection_string",
]
