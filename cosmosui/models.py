"""Shared dataclasses and errors used across the client/catalog/query modules."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping

Document = Mapping[str, Any]

_ACCOUNT_PATTERN = re.compile(
    r"^AccountEndpoint=(?P<endpoint>https://[a-zA-Z0-9\-]+\.documents\.[a-zA-Z0-9.\-]+:443/);"
    r"AccountKey=(?P<key>[a-zA-Z0-9+=/]+);?$"
)
_EMULATOR_PATTERN = re.compile(
    r"^AccountEndpoint=(?P<endpoint>https://(?:localhost|127\.0\.0\.1):8081/);"
    r"AccountKey=(?P<key>[a-zA-Z0-9+=/]+);?$"
)


class CosmosUiError(RuntimeError):
    """Base class for every recoverable error raised by the core."""


class CosmosConnectionError(CosmosUiError):
    """Raised when the client cannot be constructed or cannot reach the account."""


class ClientDisposedError(CosmosUiError):
    """Raised when a disposed client factory is asked for a client."""


class CatalogError(CosmosUiError):
    """Raised when listing databases or containers fails."""


class QueryExecutionError(CosmosUiError):
    """Raised when a document query is malformed or fails to execute."""


class QueryCancelledError(CosmosUiError):
    """Raised when a fetch is cancelled or superseded by a newer one."""


class ConnectionStringValidationError(CosmosUiError, ValueError):
    """Raised when a connection string does not look like an account connection string."""


def normalize_connection_string(value: str) -> str:
    """Strip whitespace and a single trailing ``;`` for duplicate detection."""

    stripped = value.strip()
    if stripped.endswith(";"):
        stripped = stripped[:-1]
    return stripped


def account_endpoint(value: str) -> str | None:
    """The `AccountEndpoint` value of a connection string, if present."""

    for part in value.split(";"):
        key, sep, rest = part.partition("=")
        if sep and key.strip().lower() == "accountendpoint":
            return rest.strip() or None
    return None


@dataclass(frozen=True, slots=True)
class ConnectionProfile:
    """A connection string that passed the account format check."""

    connection_string: str
    endpoint: str
    account_key: str = field(repr=False)

    @classmethod
    def parse(cls, value: str, *, allow_emulator: bool = False) -> ConnectionProfile:
        candidate = value.strip()
        match = _ACCOUNT_PATTERN.match(candidate)
        if match is None and allow_emulator:
            match = _EMULATOR_PATTERN.match(candidate)
        if match is None:
            raise ConnectionStringValidationError(
                "Expected 'AccountEndpoint=https://<account>.documents.<suffix>:443/;AccountKey=<key>;'"
            )
        return cls(
            connection_string=normalize_connection_string(candidate),
            endpoint=match.group("endpoint"),
            account_key=match.group("key"),
        )


@dataclass(frozen=True, slots=True)
class DatabaseRef:
    """Identifier of a database on the account."""

    id: str

    @classmethod
    def from_resource(cls, resource: Mapping[str, Any]) -> DatabaseRef:
        return cls(id=str(resource["id"]))


@dataclass(frozen=True, slots=True)
class ContainerRef:
    """Identifier of a container inside a database."""

    id: str

    @classmethod
    def from_resource(cls, resource: Mapping[str, Any]) -> ContainerRef:
        return cls(id=str(resource["id"]))


@dataclass(frozen=True, slots=True)
class QueryPage:
    """One page of query results.

    ``continuation_token`` is ``None`` both before the first fetch and once the
    result set is exhausted; callers disambiguate through their own fetch
    history.
    """

    items: tuple[Document, ...] = ()
    continuation_token: str | None = None
    request_charge: float = 0.0

    @classmethod
    def empty(cls) -> QueryPage:
        return cls()

    @property
    def item_count(self) -> int:
        return len(self.items)


__all__ = [
    "CatalogError",
    "ClientDisposedError",
    "ConnectionProfile",
    "ConnectionStringValidationError",
    "ContainerRef",
    "CosmosConnectionError",
    "CosmosUiError",
    "DatabaseRef",
    "Document",
    "QueryCancelledError",
    "QueryExecutionError",
    "QueryPage",
    "account_endpoint",
    "normalize_connection_string",
]
