"""Session controller orchestrating connections, catalog browsing and queries."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping

from .catalog import CatalogBrowser
from .clients import ClientFactory, ClientHandle, ClientOptions
from .commands import AsyncCommand, CommandState
from .config import AppConfig
from .connections import ConnectionStore, is_valid_connection_string
from .models import (
    ContainerRef,
    CosmosUiError,
    DatabaseRef,
    QueryCancelledError,
    QueryExecutionError,
    QueryPage,
    normalize_connection_string,
)
from .query import QueryExecutor, QuerySession, SessionPhase

LOG = logging.getLogger(__name__)

SessionListener = Callable[["SessionState"], None]
FactoryBuilder = Callable[[str], ClientFactory]
CatalogBuilder = Callable[[ClientHandle], CatalogBrowser]

SAVE_CONNECTION = "save_connection"
DELETE_CONNECTION = "delete_connection"
CONNECT = "connect"
SELECT_DATABASE = "select_database"
SELECT_CONTAINER = "select_container"
EXECUTE = "execute"
CANCEL_EXECUTION = "cancel_execution"

COMMAND_NAMES = (
    SAVE_CONNECTION,
    DELETE_CONNECTION,
    CONNECT,
    SELECT_DATABASE,
    SELECT_CONTAINER,
    EXECUTE,
    CANCEL_EXECUTION,
)


@dataclass(frozen=True, slots=True)
class SessionState:
    """Immutable snapshot handed to subscribers after every change."""

    connection_string: str | None
    connection_strings: tuple[str, ...]
    connected: bool
    databases: tuple[DatabaseRef, ...]
    containers: tuple[ContainerRef, ...]
    database: str | None
    container: str | None
    query: str | None
    limit: str | None
    output_log: str | None
    status_output: str | None
    phase: SessionPhase
    pages_fetched: int
    last_page: QueryPage | None
    commands: Mapping[str, CommandState]
    last_error: str | None = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))

    @property
    def has_databases(self) -> bool:
        return bool(self.databases)

    @property
    def has_containers(self) -> bool:
        return bool(self.containers)

    @property
    def is_container_selected(self) -> bool:
        return self.container is not None

    @property
    def continuation_token(self) -> str | None:
        return self.last_page.continuation_token if self.last_page else None

    def can(self, command: str) -> bool:
        """Whether ``command`` is currently enabled."""

        state = self.commands.get(command)
        return bool(state and state.enabled)


class SessionController:
    """Exposes the seven user commands and publishes ``SessionState`` snapshots."""

    def __init__(
        self,
        store: ConnectionStore,
        *,
        config: AppConfig | None = None,
        factory_builder: FactoryBuilder | None = None,
        catalog_builder: CatalogBuilder | None = None,
        executor: QueryExecutor | None = None,
    ) -> None:
        self._store = store
        self._config = config or AppConfig()
        self._options = ClientOptions.from_config(self._config)
        self._factory_builder = factory_builder or self._default_factory
        self._catalog_builder = catalog_builder or CatalogBrowser
        self._query = QuerySession(
            executor,
            page_size=self._config.page_size,
            on_phase_change=lambda _phase: self._notify(),
        )
        self._listeners: set[SessionListener] = set()
        self._connection_strings: list[str] = list(store.list_all())
        self._connection_string = self._initial_connection_string()
        self._factory: ClientFactory | None = None
        self._handle: ClientHandle | None = None
        self._databases: tuple[DatabaseRef, ...] = ()
        self._containers: tuple[ContainerRef, ...] = ()
        self._database: str | None = None
        self._container: str | None = None
        self._chosen_database: str | None = None
        self._chosen_container: str | None = None
        self._query_text: str | None = None
        self._limit: str | None = None
        self._output_log: str | None = None
        self._status_output: str | None = None
        self._last_error: str | None = None
        self._epoch = 0
        self._commands: dict[str, AsyncCommand] = {
            SAVE_CONNECTION: AsyncCommand(SAVE_CONNECTION, self._save_connection, self._can_save_connection),
            DELETE_CONNECTION: AsyncCommand(DELETE_CONNECTION, self._delete_connection, self._can_delete_connection),
            CONNECT: AsyncCommand(CONNECT, self._connect, lambda: bool(self._connection_string)),
            SELECT_DATABASE: AsyncCommand(SELECT_DATABASE, self._select_database, self._can_select_database),
            SELECT_CONTAINER: AsyncCommand(SELECT_CONTAINER, self._select_container, self._can_select_container),
            EXECUTE: AsyncCommand(EXECUTE, self._execute, self._container_selected),
            CANCEL_EXECUTION: AsyncCommand(CANCEL_EXECUTION, self._cancel_execution, self._container_selected),
        }
        for command in self._commands.values():
            command.subscribe(lambda _command: self._notify())

    # -- observable state -------------------------------------------------

    @property
    def state(self) -> SessionState:
        """Current session snapshot."""

        return SessionState(
            connection_string=self._connection_string,
            connection_strings=tuple(self._connection_strings),
            connected=self._handle is not None,
            databases=self._databases,
            containers=self._containers,
            database=self._database,
            container=self._container,
            query=self._query_text,
            limit=self._limit,
            output_log=self._output_log,
            status_output=self._status_output,
            phase=self._query.phase,
            pages_fetched=self._query.pages_fetched,
            last_page=self._query.last_page,
            commands={name: command.state for name, command in self._commands.items()},
            last_error=self._last_error,
        )

    @property
    def query_session(self) -> QuerySession:
        return self._query

    def command(self, name: str) -> AsyncCommand:
        return self._commands[name]

    def can_execute(self, name: str) -> bool:
        return self._commands[name].can_execute()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Subscribe to session updates; returns an unsubscribe handle."""

        self._listeners.add(listener)
        listener(self.state)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    # -- inputs -----------------------------------------------------------

    def set_connection_string(self, value: str | None) -> None:
        if value == self._connection_string:
            return
        self._connection_string = value
        self._refresh_commands(CONNECT, SAVE_CONNECTION, DELETE_CONNECTION)

    def set_query(self, text: str | None) -> None:
        if text == self._query_text:
            return
        self._query_text = text
        self._notify()

    def set_limit(self, raw: str | None) -> None:
        if raw == self._limit:
            return
        self._limit = raw
        self._notify()

    # -- commands ---------------------------------------------------------

    async def save_connection(self) -> bool:
        return await self._run(SAVE_CONNECTION)

    async def delete_connection(self) -> bool:
        return await self._run(DELETE_CONNECTION)

    async def connect(self) -> bool:
        return await self._run(CONNECT)

    async def select_database(self, database_id: str | None) -> bool:
        self._chosen_database = database_id
        return await self._run(SELECT_DATABASE)

    async def select_container(self, container_id: str | None) -> bool:
        self._chosen_container = container_id
        return await self._run(SELECT_CONTAINER)

    async def execute(self) -> bool:
        return await self._run(EXECUTE)

    async def cancel_execution(self) -> bool:
        return await self._run(CANCEL_EXECUTION)

    async def aclose(self) -> None:
        """Cancel in-flight work and release the client."""

        self._query.cancel("Session closed")
        await self._dispose_client()

    # -- command bodies ---------------------------------------------------

    async def _run(self, name: str) -> bool:
        try:
            return await self._commands[name].run()
        except Exception as exc:
            LOG.exception("Command failed", extra={"command": name})
            self._last_error = str(exc)
            self._output_log = f"{exc}\n"
            self._notify()
            return True

    async def _save_connection(self) -> None:
        value = normalize_connection_string(self._connection_string or "")
        try:
            self._store.append(value)
        except (CosmosUiError, OSError) as exc:
            self._report_error("Failed to save connection string", exc)
            return
        self._connection_strings.append(value)
        self._refresh_commands(SAVE_CONNECTION, DELETE_CONNECTION)

    async def _delete_connection(self) -> None:
        value = normalize_connection_string(self._connection_string or "")
        try:
            self._store.remove(value)
        except OSError as exc:
            self._report_error("Failed to delete connection string", exc)
            return
        if value in self._connection_strings:
            self._connection_strings.remove(value)
        self._refresh_commands(SAVE_CONNECTION, DELETE_CONNECTION)

    async def _connect(self) -> None:
        self._reset()
        connection_string = self._connection_string
        if not connection_string:
            return
        self._output_log = f'Connecting to\n"{connection_string}"\n\n'
        self._notify()
        await self._dispose_client()
        factory = self._factory_builder(connection_string)
        self._factory = factory
        try:
            handle = await factory.get_client()
            databases = await self._catalog_builder(handle).list_databases()
        except CosmosUiError as exc:
            self._report_error("Connect failed", exc, append=True)
            return
        self._handle = handle
        self._databases = databases
        self._append_log(f"Loaded {len(databases)} database(s)\n\n")
        LOG.info("Connected", extra={"endpoint": handle.endpoint, "databases": len(databases)})
        self._refresh_commands(SELECT_DATABASE)

    async def _select_database(self) -> None:
        database_id = self._chosen_database
        handle = self._handle
        if database_id is None or handle is None:
            return
        self._epoch += 1
        self._database = database_id
        self._container = None
        self._containers = ()
        self._query.select_database(database_id)
        self._append_log(f"Retrieving '{database_id}' containers\n")
        try:
            containers = await self._catalog_builder(handle).list_containers(database_id)
        except CosmosUiError as exc:
            self._report_error("Listing containers failed", exc, append=True)
            return
        if self._database != database_id:
            return
        self._containers = containers
        self._append_log(f"Loaded {len(containers)} container(s)\n\n")
        self._refresh_commands(SELECT_CONTAINER, EXECUTE, CANCEL_EXECUTION)

    async def _select_container(self) -> None:
        container_id = self._chosen_container
        if container_id is None:
            return
        self._epoch += 1
        self._container = container_id
        self._query.select_container(container_id)
        self._append_log(f"'{container_id}' selected\n")
        self._refresh_commands(EXECUTE, CANCEL_EXECUTION)

    async def _execute(self) -> None:
        self._output_log = "Loading Documents"
        self._status_output = None
        self._last_error = None
        self._refresh_commands(CANCEL_EXECUTION)
        started = time.perf_counter()
        epoch = self._epoch
        error: str | None = None
        self._query.set_query(self._query_text)
        self._query.set_page_size(self._limit)
        try:
            if self._handle is None:
                raise QueryExecutionError("Connect to an account first.")
            page = await self._query.execute(self._handle)
            output = self._handle.serializer.dumps_items(page.items)
        except QueryCancelledError as exc:
            LOG.info("Query cancelled", extra={"container": self._container, "reason": str(exc)})
            output = str(exc)
        except CosmosUiError as exc:
            LOG.warning("Query failed: %s", exc, extra={"container": self._container})
            error = output = str(exc)
        if epoch != self._epoch:
            LOG.debug("Dropping result of a superseded query", extra={"container": self._container})
            return
        self._last_error = error
        elapsed = time.perf_counter() - started
        shown = self._query.last_page or QueryPage.empty()
        self._status_output = (
            f"Execution time: {_format_elapsed(elapsed)}. "
            f"Request Charge: {shown.request_charge:g} RU/s. "
            f"Loaded: {shown.item_count} documents"
        )
        self._output_log = f"{output}\n"

    async def _cancel_execution(self) -> None:
        self._query.cancel()

    # -- enablement -------------------------------------------------------

    def _can_save_connection(self) -> bool:
        value = self._connection_string
        if not value or not is_valid_connection_string(value, allow_emulator=self._options.emulator):
            return False
        return not self._is_saved(value)

    def _can_delete_connection(self) -> bool:
        value = self._connection_string
        return bool(value) and self._is_saved(value)

    def _can_select_database(self) -> bool:
        return self._handle is not None and bool(self._chosen_database)

    def _can_select_container(self) -> bool:
        return self._database is not None and bool(self._chosen_container)

    def _container_selected(self) -> bool:
        return bool(self._container)

    def _is_saved(self, value: str) -> bool:
        normalized = normalize_connection_string(value)
        return any(normalize_connection_string(entry) == normalized for entry in self._connection_strings)

    # -- helpers ----------------------------------------------------------

    def _default_factory(self, connection_string: str) -> ClientFactory:
        return ClientFactory(connection_string, options=self._options)

    def _initial_connection_string(self) -> str | None:
        active = self._config.active_connection
        if active and active in self._connection_strings:
            return active
        return self._connection_strings[0] if self._connection_strings else None

    def _reset(self) -> None:
        self._epoch += 1
        self._query.reset()
        self._status_output = None
        self._databases = ()
        self._containers = ()
        self._database = None
        self._container = None
        self._chosen_database = None
        self._chosen_container = None
        self._output_log = None
        self._last_error = None
        self._refresh_commands(EXECUTE, CANCEL_EXECUTION)

    async def _dispose_client(self) -> None:
        factory, self._factory = self._factory, None
        self._handle = None
        if factory is not None:
            await factory.dispose()

    def _append_log(self, text: str) -> None:
        self._output_log = (self._output_log or "") + text
        self._notify()

    def _report_error(self, message: str, exc: Exception, *, append: bool = False) -> None:
        LOG.warning("%s: %s", message, exc, extra={"error_type": type(exc).__name__})
        self._last_error = str(exc)
        if append:
            self._append_log(f"{exc}\n\n")
        else:
            self._status_output = str(exc)
            self._notify()

    def _refresh_commands(self, *names: str) -> None:
        for name in names:
            self._commands[name].raise_can_execute_changed()
        if not names:
            self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        state = self.state
        for listener in tuple(self._listeners):
            listener(state)


def _format_elapsed(seconds: float) -> str:
    return str(timedelta(seconds=seconds))


__all__ = [
    "CANCEL_EXECUTION",
    "COMMAND_NAMES",
    "CONNECT",
    "DELETE_CONNECTION",
    "EXECUTE",
    "SAVE_CONNECTION",
    "SELECT_CONTAINER",
    "SELECT_DATABASE",
    "SessionController",
    "SessionState",
]
