"""Tests for the session controller wiring."""

from __future__ import annotations

import asyncio
import json
import re

import pytest

from cosmosui.clients import ClientFactory
from cosmosui.config import AppConfig
from cosmosui.connections import MemoryConnectionStore
from cosmosui.models import QueryPage
from cosmosui.query import SessionPhase
from cosmosui.session import (
    CANCEL_EXECUTION,
    CONNECT,
    DELETE_CONNECTION,
    EXECUTE,
    SAVE_CONNECTION,
    SELECT_CONTAINER,
    SELECT_DATABASE,
    SessionController,
    SessionState,
)
from cosmosui.widgets.status_bar import render_status
from tests.fakes import FakeClientClass, FakeContainer, FakeCosmosClient, FakeDatabase

CONNECTION = "AccountEndpoint=https://acct.documents.azure.com:443/;AccountKey=a2V5;"
OTHER = "AccountEndpoint=https://other.documents.azure.com:443/;AccountKey=b3RoZXI="
EMULATOR = "AccountEndpoint=https://localhost:8081/;AccountKey=a2V5;"
STATUS_PATTERN = re.compile(
    r"^Execution time: \d+:\d{2}:\d{2}(\.\d+)?\. Request Charge: (?P<charge>[\d.]+) RU/s\. "
    r"Loaded: (?P<count>\d+) documents$"
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _documents(count: int) -> list[dict[str, object]]:
    return [{"id": str(idx), "type": "order"} for idx in range(count)]


def _shop_client(count: int = 25) -> FakeCosmosClient:
    orders = FakeContainer(_documents(count), charge=2.5)
    return FakeCosmosClient(
        {"shop": FakeDatabase({"orders": orders, "payments": FakeContainer()}), "audit": FakeDatabase()}
    )


def _controller(
    client: FakeCosmosClient | None = None,
    *,
    store: MemoryConnectionStore | None = None,
    config: AppConfig | None = None,
    **kwargs,  # type: ignore[no-untyped-def]
) -> SessionController:
    client_class = FakeClientClass(client or _shop_client())
    controller = SessionController(
        store or MemoryConnectionStore(),
        config=config,
        factory_builder=lambda value: ClientFactory(value, client_class=client_class),
        **kwargs,
    )
    controller.set_connection_string(CONNECTION)
    return controller


async def _open_orders(controller: SessionController) -> None:
    await controller.connect()
    await controller.select_database("shop")
    await controller.select_container("orders")


def test_initial_state_uses_active_or_first_saved_connection() -> None:
    store = MemoryConnectionStore([CONNECTION, OTHER])

    assert SessionController(store).state.connection_string == CONNECTION
    assert SessionController(store, config=AppConfig(active_connection=OTHER)).state.connection_string == OTHER
    assert SessionController(MemoryConnectionStore()).state.connection_string is None


def test_only_connect_and_save_start_enabled() -> None:
    state = _controller().state

    assert state.can(CONNECT) is True
    assert state.can(SAVE_CONNECTION) is True
    for command in (DELETE_CONNECTION, SELECT_DATABASE, SELECT_CONTAINER, EXECUTE, CANCEL_EXECUTION):
        assert state.can(command) is False


@pytest.mark.anyio
async def test_save_and_delete_follow_the_saved_list() -> None:
    store = MemoryConnectionStore()
    controller = _controller(store=store)

    assert await controller.save_connection() is True

    assert store.list_all() == (CONNECTION[:-1],)
    assert controller.can_execute(SAVE_CONNECTION) is False
    assert controller.can_execute(DELETE_CONNECTION) is True

    controller.set_connection_string(CONNECTION[:-1])
    assert controller.can_execute(SAVE_CONNECTION) is False

    assert await controller.delete_connection() is True
    assert store.list_all() == ()
    assert controller.state.connection_strings == ()
    assert controller.can_execute(SAVE_CONNECTION) is True
    assert controller.can_execute(DELETE_CONNECTION) is False


def test_save_requires_a_well_formed_string() -> None:
    controller = _controller()

    controller.set_connection_string("AccountEndpoint=https://acct.documents.azure.com/;AccountKey=x")
    assert controller.can_execute(SAVE_CONNECTION) is False
    assert controller.can_execute(CONNECT) is True

    controller.set_connection_string("")
    assert controller.can_execute(CONNECT) is False


def test_emulator_strings_are_saveable_only_in_emulator_mode() -> None:
    controller = _controller()
    controller.set_connection_string(EMULATOR)
    assert controller.can_execute(SAVE_CONNECTION) is False

    emulator = _controller(config=AppConfig(emulator=True))
    emulator.set_connection_string(EMULATOR)
    assert emulator.can_execute(SAVE_CONNECTION) is True


@pytest.mark.anyio
async def test_connect_to_an_empty_account() -> None:
    controller = _controller(FakeCosmosClient())

    await controller.connect()

    state = controller.state
    assert state.connected is True
    assert state.has_databases is False
    assert state.output_log == f'Connecting to\n"{CONNECTION}"\n\nLoaded 0 database(s)\n\n'


@pytest.mark.anyio
async def test_connect_lists_databases_in_service_order() -> None:
    controller = _controller()

    await controller.connect()

    assert [ref.id for ref in controller.state.databases] == ["shop", "audit"]
    assert controller.state.output_log.endswith("Loaded 2 database(s)\n\n")
    assert controller.can_execute(SELECT_DATABASE) is False


@pytest.mark.anyio
async def test_connect_failure_is_written_to_the_log() -> None:
    controller = SessionController(
        MemoryConnectionStore(),
        factory_builder=lambda value: ClientFactory(value, client_class=FakeClientClass(error=ValueError("bad key"))),
    )
    controller.set_connection_string("nonsense")

    assert await controller.connect() is True

    state = controller.state
    assert state.connected is False
    assert state.output_log == 'Connecting to\n"nonsense"\n\nInvalid connection string: bad key\n\n'
    assert state.last_error == "Invalid connection string: bad key"


@pytest.mark.anyio
async def test_select_database_then_container() -> None:
    controller = _controller()
    await controller.connect()

    await controller.select_database("shop")

    state = controller.state
    assert state.database == "shop"
    assert [ref.id for ref in state.containers] == ["orders", "payments"]
    assert state.output_log.endswith("Retrieving 'shop' containers\nLoaded 2 container(s)\n\n")
    assert state.can(EXECUTE) is False

    await controller.select_container("orders")

    state = controller.state
    assert state.is_container_selected is True
    assert state.output_log.endswith("'orders' selected\n")
    assert state.can(EXECUTE) is True
    assert state.can(CANCEL_EXECUTION) is True


@pytest.mark.anyio
async def test_select_missing_database_reports_error() -> None:
    controller = _controller()
    await controller.connect()

    await controller.select_database("gone")

    state = controller.state
    assert state.containers == ()
    assert state.output_log.endswith("Retrieving 'gone' containers\nDatabase 'gone' not found\n\n")
    assert state.last_error == "Database 'gone' not found"


@pytest.mark.anyio
async def test_select_database_requires_connection() -> None:
    controller = _controller()

    assert await controller.select_database("shop") is False
    assert controller.state.database is None


@pytest.mark.anyio
async def test_execute_pages_through_documents() -> None:
    controller = _controller()
    await _open_orders(controller)
    controller.set_query("WHERE c.type = 'order'")
    controller.set_limit("abc")

    await controller.execute()

    state = controller.state
    assert json.loads(state.output_log) == _documents(10)
    assert state.output_log.endswith("\n")
    status = STATUS_PATTERN.match(state.status_output or "")
    assert status is not None
    assert status.group("charge") == "2.5"
    assert status.group("count") == "10"
    assert state.continuation_token == "1"
    assert state.phase is SessionPhase.IDLE

    controller.set_limit("10")
    await controller.execute()
    await controller.execute()

    assert json.loads(controller.state.output_log) == _documents(25)[20:]
    assert controller.state.continuation_token is None
    assert controller.query_session.exhausted is True


@pytest.mark.anyio
async def test_execute_on_empty_container_reports_zero_documents() -> None:
    controller = _controller()
    await controller.connect()
    await controller.select_database("shop")
    await controller.select_container("payments")

    await controller.execute()

    state = controller.state
    assert state.output_log == "[]\n"
    status = STATUS_PATTERN.match(state.status_output or "")
    assert status is not None
    assert status.group("charge") == "0"
    assert status.group("count") == "0"


@pytest.mark.anyio
async def test_query_errors_become_output_text() -> None:
    controller = _controller()
    await controller.connect()
    await controller.select_database("shop")
    await controller.select_container("ghost")

    assert await controller.execute() is True

    state = controller.state
    assert state.output_log == "Container 'shop/ghost' not found\n"
    assert state.last_error == "Container 'shop/ghost' not found"
    assert state.status_output.endswith("Loaded: 0 documents")


class _BlockingExecutor:
    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def execute(self, handle, database_id, container_id, query, *, limit, continuation_token, cancel_token):  # type: ignore[no-untyped-def]
        self.started.set()
        while not cancel_token.cancelled:
            await asyncio.sleep(0)
        cancel_token.raise_if_cancelled()
        return QueryPage.empty()


@pytest.mark.anyio
async def test_cancel_execution_stops_the_running_query() -> None:
    executor = _BlockingExecutor()
    controller = _controller(executor=executor)
    await _open_orders(controller)

    task = asyncio.create_task(controller.execute())
    await executor.started.wait()
    assert controller.state.phase is SessionPhase.FETCHING
    assert controller.can_execute(EXECUTE) is False
    assert controller.can_execute(CANCEL_EXECUTION) is True

    await controller.cancel_execution()
    await task

    state = controller.state
    assert state.phase is SessionPhase.CANCELLED
    assert state.output_log == "Query cancelled\n"
    assert state.last_error is None
    assert state.continuation_token is None


@pytest.mark.anyio
async def test_reconnect_resets_state_and_disposes_previous_client() -> None:
    clients = [_shop_client(), FakeCosmosClient({"fresh": FakeDatabase()})]
    classes = iter(FakeClientClass(client) for client in clients)
    controller = SessionController(
        MemoryConnectionStore(),
        factory_builder=lambda value: ClientFactory(value, client_class=next(classes)),
    )
    controller.set_connection_string(CONNECTION)
    await _open_orders(controller)
    await controller.execute()

    controller.set_connection_string(OTHER)
    await controller.connect()

    state = controller.state
    assert clients[0].closed == 1
    assert clients[1].closed == 0
    assert [ref.id for ref in state.databases] == ["fresh"]
    assert state.database is None and state.container is None
    assert state.containers == ()
    assert state.status_output is None
    assert state.last_page is None
    assert state.can(EXECUTE) is False


@pytest.mark.anyio
async def test_aclose_releases_the_client() -> None:
    client = _shop_client()
    controller = _controller(client)
    await controller.connect()

    await controller.aclose()

    assert client.closed == 1
    assert controller.state.connected is False


def test_subscribe_replays_state_and_unsubscribes() -> None:
    controller = _controller()
    seen: list[SessionState] = []

    unsubscribe = controller.subscribe(seen.append)
    controller.set_query("WHERE c.id = '1'")
    unsubscribe()
    controller.set_query("WHERE c.id = '2'")

    assert len(seen) == 2
    assert seen[0].query is None
    assert seen[1].query == "WHERE c.id = '1'"


@pytest.mark.anyio
async def test_listeners_see_command_running_flags() -> None:
    controller = _controller()
    running: list[bool] = []
    controller.subscribe(lambda state: running.append(state.commands[CONNECT].running))

    await controller.connect()

    assert True in running
    assert running[-1] is False


@pytest.mark.anyio
async def test_connect_during_execute_keeps_the_new_session_output() -> None:
    executor = _BlockingExecutor()
    controller = _controller(executor=executor)
    await _open_orders(controller)

    task = asyncio.create_task(controller.execute())
    await executor.started.wait()
    assert controller.can_execute(CONNECT) is True
    await controller.connect()
    await task

    state = controller.state
    assert state.output_log == f'Connecting to\n"{CONNECTION}"\n\nLoaded 2 database(s)\n\n'
    assert state.status_output is None
    assert state.last_error is None
    assert state.phase is SessionPhase.IDLE
    assert state.container is None


@pytest.mark.anyio
async def test_reselecting_container_during_execute_keeps_selection_log() -> None:
    executor = _BlockingExecutor()
    controller = _controller(executor=executor)
    await _open_orders(controller)

    task = asyncio.create_task(controller.execute())
    await executor.started.wait()
    await controller.select_container("payments")
    await task

    state = controller.state
    assert state.output_log.endswith("'payments' selected\n")
    assert state.status_output is None
    assert state.container == "payments"


@pytest.mark.anyio
async def test_subscribers_see_the_fetching_phase() -> None:
    controller = _controller()
    await _open_orders(controller)
    phases: list[SessionPhase] = []
    summaries: list[str] = []

    def _listener(state: SessionState) -> None:
        phases.append(state.phase)
        summaries.append(render_status(state))

    controller.subscribe(_listener)
    await controller.execute()

    assert SessionPhase.FETCHING in phases
    assert any("Fetching…" in summary for summary in summaries)
    assert phases[-1] is SessionPhase.IDLE
