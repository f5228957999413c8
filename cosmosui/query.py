"""Paged document queries with cooperative cancellation."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Protocol

from azure.cosmos import exceptions

from .clients import ClientHandle
from .config import DEFAULT_PAGE_SIZE
from .models import QueryCancelledError, QueryExecutionError, QueryPage

LOG = logging.getLogger(__name__)

SELECT_ALL = "SELECT * FROM c"
REQUEST_CHARGE_HEADER = "x-ms-request-charge"


def build_effective_query(user_text: str | None) -> str:
    """Turn the query pad text into a full query.

    Empty text selects everything, text starting with ``SELECT`` is used
    verbatim, anything else is appended to ``SELECT * FROM c`` as a trailing
    clause (``WHERE c.age > 10`` and friends). No validation happens here.
    """

    if not user_text or not user_text.strip():
        return SELECT_ALL
    if user_text.lstrip()[:6].upper() == "SELECT":
        return user_text
    return f"{SELECT_ALL} {user_text}"


def parse_limit(raw: object, default: int = DEFAULT_PAGE_SIZE) -> int:
    """Parse a page size typed by the user; non-positive or junk input gives ``default``."""

    if raw is None or isinstance(raw, bool):
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        return default
    return value if value > 0 else default


class CancellationToken:
    """Cooperative cancellation flag checked at every page boundary."""

    __slots__ = ("_cancelled", "_reason")

    def __init__(self) -> None:
        self._cancelled = False
        self._reason = "Query cancelled"

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if reason:
            self._reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise QueryCancelledError(self._reason)


class QueryExecutor(Protocol):
    """Interface implemented by query executors."""

    async def execute(
        self,
        handle: ClientHandle,
        database_id: str,
        container_id: str,
        query: str,
        *,
        limit: int,
        continuation_token: str | None,
        cancel_token: CancellationToken,
    ) -> QueryPage: ...


class CosmosQueryExecutor:
    """Runs one page of a document query through the SDK."""

    async def execute(
        self,
        handle: ClientHandle,
        database_id: str,
        container_id: str,
        query: str,
        *,
        limit: int,
        continuation_token: str | None,
        cancel_token: CancellationToken,
    ) -> QueryPage:
        try:
            container = handle.client.get_database_client(database_id).get_container_client(container_id)
            count = await self._count(container, query, cancel_token)
            if count == 0:
                return QueryPage.empty()
            # The pre-check charge is not part of the reported page cost.
            pager = container.query_items(query=query, max_item_count=limit).by_page(continuation_token)
            cancel_token.raise_if_cancelled()
            page = await anext(pager, None)
            if page is None:
                return QueryPage.empty()
            charge = _request_charge(container)
            items = [item async for item in page]
            cancel_token.raise_if_cancelled()
            return QueryPage(
                items=tuple(items),
                continuation_token=getattr(pager, "continuation_token", None) or None,
                request_charge=charge,
            )
        except QueryCancelledError:
            raise
        except Exception as exc:
            # A client torn down under a cancelled fetch surfaces as an arbitrary SDK error.
            if cancel_token.cancelled:
                raise QueryCancelledError(cancel_token.reason) from exc
            raise _query_error(exc, database_id, container_id) from exc

    async def _count(self, container: Any, query: str, cancel_token: CancellationToken) -> int:
        count = 0
        charge = 0.0
        async for page in container.query_items(query=query).by_page():
            cancel_token.raise_if_cancelled()
            charge += _request_charge(container)
            async for _ in page:
                count += 1
        cancel_token.raise_if_cancelled()
        LOG.debug("Count pre-check finished", extra={"count": count, "request_charge": charge})
        return count


def _query_error(exc: Exception, database_id: str, container_id: str) -> QueryExecutionError:
    if isinstance(exc, exceptions.CosmosResourceNotFoundError):
        return QueryExecutionError(f"Container '{database_id}/{container_id}' not found")
    if isinstance(exc, exceptions.CosmosHttpResponseError):
        return QueryExecutionError(exc.message or str(exc))
    return QueryExecutionError(str(exc))


def _request_charge(container: Any) -> float:
    connection = getattr(container, "client_connection", None)
    headers = getattr(connection, "last_response_headers", None) or {}
    raw = headers.get(REQUEST_CHARGE_HEADER)
    if raw is None:
        return 0.0
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


class SessionPhase(str, Enum):
    """Lifecycle of the session's current fetch."""

    IDLE = "idle"
    FETCHING = "fetching"
    CANCELLED = "cancelled"


PhaseListener = Callable[[SessionPhase], None]


class QuerySession:
    """Selection, cursor and the single in-flight fetch for one container.

    At most one fetch runs at a time. A new ``execute`` cancels the running
    one and waits for it to settle before starting; a cancelled fetch never
    moves the cursor. Changing the selection or resetting also cancels, and a
    fetch settling after that leaves the phase alone.
    """

    def __init__(
        self,
        executor: QueryExecutor | None = None,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        on_phase_change: PhaseListener | None = None,
    ) -> None:
        self._executor = executor or CosmosQueryExecutor()
        self._default_page_size = page_size
        self._page_size = page_size
        self._on_phase_change = on_phase_change
        self._database_id: str | None = None
        self._container_id: str | None = None
        self._query_text: str | None = None
        self._cursor_query: str | None = None
        self._continuation_token: str | None = None
        self._pages_fetched = 0
        self._last_page: QueryPage | None = None
        self._phase = SessionPhase.IDLE
        self._cancel_token: CancellationToken | None = None
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def database_id(self) -> str | None:
        return self._database_id

    @property
    def container_id(self) -> str | None:
        return self._container_id

    @property
    def query_text(self) -> str | None:
        return self._query_text

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def continuation_token(self) -> str | None:
        return self._continuation_token

    @property
    def pages_fetched(self) -> int:
        """Successful fetches since the cursor was last reset.

        Together with ``continuation_token`` this tells "not fetched yet"
        (0 pages) apart from "exhausted" (>0 pages, no token).
        """

        return self._pages_fetched

    @property
    def exhausted(self) -> bool:
        return self._pages_fetched > 0 and self._continuation_token is None

    @property
    def last_page(self) -> QueryPage | None:
        return self._last_page

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def is_fetching(self) -> bool:
        return self._phase is SessionPhase.FETCHING

    def select_database(self, database_id: str | None) -> None:
        self._abandon()
        self._database_id = database_id
        self._container_id = None
        self._reset_cursor()

    def select_container(self, container_id: str | None) -> None:
        self._abandon()
        self._container_id = container_id
        self._reset_cursor()

    def set_query(self, text: str | None) -> None:
        self._query_text = text

    def set_page_size(self, raw: object) -> int:
        self._page_size = parse_limit(raw, self._default_page_size)
        return self._page_size

    def reset(self) -> None:
        """Forget the selection and cursor (used when reconnecting)."""

        self._abandon()
        self._database_id = None
        self._container_id = None
        self._reset_cursor()
        self._set_phase(SessionPhase.IDLE)

    def cancel(self, reason: str | None = None) -> bool:
        """Signal the in-flight fetch; returns False when nothing is running."""

        token = self._cancel_token
        if token is None or token.cancelled:
            return False
        token.cancel(reason)
        LOG.debug("Cancellation requested", extra={"container": self._container_id})
        return True

    async def execute(self, handle: ClientHandle) -> QueryPage:
        """Fetch the next page for the current selection and query text."""

        if not self._database_id or not self._container_id:
            raise QueryExecutionError("Select a container before running a query.")
        self._generation += 1
        generation = self._generation
        self.cancel("Superseded by a newer query")
        async with self._lock:
            if generation != self._generation:
                raise QueryCancelledError("Superseded by a newer query")
            query = build_effective_query(self._query_text)
            if query != self._cursor_query:
                self._reset_cursor()
                self._cursor_query = query
            token = CancellationToken()
            self._cancel_token = token
            self._set_phase(SessionPhase.FETCHING)
            try:
                page = await self._executor.execute(
                    handle,
                    self._database_id,
                    self._container_id,
                    query,
                    limit=self._page_size,
                    continuation_token=self._continuation_token,
                    cancel_token=token,
                )
                token.raise_if_cancelled()
            except QueryCancelledError:
                self._settle(generation, token, SessionPhase.CANCELLED)
                raise
            except Exception as exc:
                if token.cancelled:
                    self._settle(generation, token, SessionPhase.CANCELLED)
                    raise QueryCancelledError(token.reason) from exc
                self._settle(generation, token, SessionPhase.IDLE)
                raise
            except BaseException:
                self._settle(generation, token, SessionPhase.IDLE)
                raise
            self._continuation_token = page.continuation_token
            self._pages_fetched += 1
            self._last_page = page
            self._settle(generation, token, SessionPhase.IDLE)
            return page

    def _abandon(self) -> None:
        # Whatever is in flight now belongs to a previous selection.
        self._generation += 1
        self.cancel()

    def _settle(self, generation: int, token: CancellationToken, phase: SessionPhase) -> None:
        if self._cancel_token is token:
            self._cancel_token = None
        if generation == self._generation:
            self._set_phase(phase)

    def _set_phase(self, phase: SessionPhase) -> None:
        if phase is self._phase:
            return
        self._phase = phase
        if self._on_phase_change is not None:
            self._on_phase_change(phase)

    def _reset_cursor(self) -> None:
        self._continuation_token = None
        self._pages_fetched = 0
        self._last_page = None
        self._cursor_query = None


__all__ = [
    "CancellationToken",
    "CosmosQueryExecutor",
    "QueryExecutor",
    "QuerySession",
    "SELECT_ALL",
    "SessionPhase",
    "build_effective_query",
    "parse_limit",
]
