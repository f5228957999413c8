"""Lazily constructed, disposal-guarded Cosmos client handles."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from azure.core.pipeline.transport import AioHttpTransport
from azure.cosmos.aio import CosmosClient

from .config import AppConfig
from .models import ClientDisposedError, CosmosConnectionError, account_endpoint
from .serialization import DocumentSerializer

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ClientOptions:
    """Construction switches for the SDK client.

    ``emulator`` targets the local emulator: TLS verification is relaxed and
    an explicit aiohttp transport replaces the SDK's default one.
    """

    emulator: bool = False
    camel_case: bool = True

    @classmethod
    def from_config(cls, config: AppConfig) -> ClientOptions:
        return cls(emulator=config.emulator)


@dataclass(frozen=True, slots=True)
class ClientHandle:
    """Borrowed view of a live client; never outlives its factory."""

    client: Any
    serializer: DocumentSerializer = field(default_factory=DocumentSerializer)
    endpoint: str | None = None


class ClientFactory:
    """Owns exactly one SDK client per connection string."""

    def __init__(
        self,
        connection_string: str,
        *,
        options: ClientOptions | None = None,
        client_class: Any = CosmosClient,
    ) -> None:
        self._connection_string = connection_string
        self._options = options or ClientOptions()
        self._client_class = client_class
        self._handle: ClientHandle | None = None
        self._disposed = False
        self._lock = asyncio.Lock()

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def constructed(self) -> bool:
        return self._handle is not None

    @property
    def options(self) -> ClientOptions:
        return self._options

    async def get_client(self) -> ClientHandle:
        """Return the shared handle, constructing the client on first use."""

        async with self._lock:
            if self._disposed:
                raise ClientDisposedError("Client factory has been disposed.")
            if self._handle is None:
                self._handle = await self._build_handle()
            return self._handle

    async def dispose(self) -> None:
        """Release the client; later calls are no-ops."""

        async with self._lock:
            if self._disposed:
                return
            self._disposed = True
            handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await handle.client.close()
        except Exception:
            LOG.exception("Failed to close Cosmos client", extra={"endpoint": handle.endpoint})

    async def __aenter__(self) -> ClientHandle:
        return await self.get_client()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()

    async def _build_handle(self) -> ClientHandle:
        endpoint = account_endpoint(self._connection_string)
        try:
            client = self._client_class.from_connection_string(
                self._connection_string,
                **self._client_kwargs(),
            )
        except Exception as exc:
            raise CosmosConnectionError(f"Invalid connection string: {exc}") from exc
        try:
            await client.__aenter__()
        except Exception as exc:
            try:
                await client.close()
            except Exception:  # pragma: no cover - best effort cleanup
                LOG.debug("Ignoring close failure after connect error", exc_info=True)
            raise CosmosConnectionError(f"Failed to connect to '{endpoint or 'account'}': {exc}") from exc
        LOG.info(
            "Cosmos client ready",
            extra={"endpoint": endpoint, "emulator": self._options.emulator},
        )
        return ClientHandle(
            client=client,
            serializer=DocumentSerializer(camel_case=self._options.camel_case),
            endpoint=endpoint,
        )

    def _client_kwargs(self) -> dict[str, object]:
        kwargs: dict[str, object] = {}
        if self._options.emulator:
            # The emulator ships a self-signed certificate.
            kwargs["connection_verify"] = False
            kwargs["transport"] = AioHttpTransport(connection_verify=False)
        return kwargs


__all__ = [
    "ClientFactory",
    "ClientHandle",
    "ClientOptions",
]
