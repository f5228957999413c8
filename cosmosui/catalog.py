"""Database and container listing over the SDK's paged iterators."""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from azure.cosmos import exceptions

from .clients import ClientHandle
from .models import CatalogError, ContainerRef, DatabaseRef

RefT = TypeVar("RefT")


class CatalogBrowser:
    """Enumerates databases and containers reachable through a client handle."""

    def __init__(self, handle: ClientHandle) -> None:
        self._handle = handle

    async def list_databases(self) -> tuple[DatabaseRef, ...]:
        """Every database on the account, in the order the service returns them."""

        try:
            paged = self._handle.client.list_databases()
            return await _drain(paged, DatabaseRef.from_resource)
        except CatalogError:
            raise
        except Exception as exc:
            raise CatalogError(f"Failed to list databases: {exc}") from exc

    async def list_containers(self, database_id: str) -> tuple[ContainerRef, ...]:
        """Every container in ``database_id``."""

        try:
            database = self._handle.client.get_database_client(database_id)
            return await _drain(database.list_containers(), ContainerRef.from_resource)
        except exceptions.CosmosResourceNotFoundError as exc:
            raise CatalogError(f"Database '{database_id}' not found") from exc
        except CatalogError:
            raise
        except Exception as exc:
            raise CatalogError(f"Failed to list containers of '{database_id}': {exc}") from exc


async def _drain(paged: Any, convert: Callable[[Any], RefT]) -> tuple[RefT, ...]:
    # Nothing is returned unless every page was read.
    refs: list[RefT] = []
    async for page in paged.by_page():
        async for resource in page:
            refs.append(convert(resource))
    return tuple(refs)


__all__ = ["CatalogBrowser"]
