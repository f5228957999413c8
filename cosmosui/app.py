"""Textual application entry point for cosmosui."""

from __future__ import annotations

import logging
from typing import Callable

from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.css.query import NoMatches
from textual.widgets import Footer, Header, Input

from .config import AppConfig, load_config, save_config
from .connections import ConfigConnectionStore, ConnectionStore
from .providers import SavedConnectionProvider, SessionActionProvider
from .session import CANCEL_EXECUTION, CONNECT, EXECUTE, SessionController, SessionState
from .widgets import CatalogSidebar, ConnectionBar, QueryPad, StatusBar

LOG = logging.getLogger(__name__)


def _load_app_config() -> AppConfig:
    """Load configuration with a small wrapper for future overrides."""

    return load_config()


class CosmosUiApp(App[None]):
    """Textual shell over the session controller."""

    COMMANDS = App.COMMANDS | {SavedConnectionProvider, SessionActionProvider}
    CSS = """
    Screen {
        layout: vertical;
    }
    #content {
        layout: horizontal;
        height: 1fr;
    }
    #main-column {
        layout: vertical;
        padding: 0 1;
        height: 1fr;
    }
    """

    BINDINGS = [
        ("ctrl+c", "quit", "Quit"),
        ("ctrl+r", "execute", "Run Query"),
        ("ctrl+k", "cancel_query", "Cancel Query"),
        ("ctrl+p", "command_palette", "Command Palette"),
    ]

    def __init__(
        self,
        *,
        store: ConnectionStore | None = None,
        controller: SessionController | None = None,
    ) -> None:
        super().__init__()
        self._config = _load_app_config()
        self._store = store or ConfigConnectionStore()
        self._controller = controller or SessionController(self._store, config=self._config)
        self._session_unsubscribe: Callable[[], None] | None = None
        self._last_session_state: SessionState | None = None

    def compose(self) -> ComposeResult:
        """Compose the root layout."""

        yield Header(show_clock=True)
        main_column = Vertical(ConnectionBar(self._controller), QueryPad(self._controller), id="main-column")
        yield Horizontal(CatalogSidebar(self._controller), main_column, id="content")
        yield StatusBar(self._controller)
        yield Footer()

    async def on_mount(self) -> None:
        self.theme = "textual-light" if self._config.theme == "light" else "textual-dark"
        self._session_unsubscribe = self._controller.subscribe(self._handle_session_state)

    async def on_unmount(self) -> None:
        if self._session_unsubscribe:
            self._session_unsubscribe()
            self._session_unsubscribe = None
        await self._controller.aclose()

    @property
    def controller(self) -> SessionController:
        """Expose the session controller for widgets, providers and tests."""

        return self._controller

    @property
    def config(self) -> AppConfig:
        return self._config

    def action_connect(self) -> None:
        if self._controller.can_execute(CONNECT):
            self.run_worker(self.connect_and_remember(), group="connection", exit_on_error=False)

    def action_execute(self) -> None:
        if self._controller.can_execute(EXECUTE):
            self.run_worker(self._controller.execute(), group="query", exit_on_error=False)

    def action_cancel_query(self) -> None:
        if self._controller.can_execute(CANCEL_EXECUTION):
            self.run_worker(self._controller.cancel_execution(), group="cancel", exit_on_error=False)

    def use_connection(self, value: str) -> None:
        """Switch the connection input to ``value`` and connect."""

        self._controller.set_connection_string(value)
        try:
            self.query_one("#connection-input", Input).value = value
        except NoMatches:
            LOG.debug("Connection input not mounted yet")
        self.action_connect()

    async def connect_and_remember(self) -> None:
        """Connect, then remember the connection string when it is a saved one."""

        await self._controller.connect()
        state = self._controller.state
        if state.connected and state.connection_string in state.connection_strings:
            self.remember_connection(state.connection_string)

    def remember_connection(self, value: str) -> None:
        """Persist the last used saved connection string."""

        if self._config.active_connection == value:
            return
        self._config = self._config.with_active_connection(value)
        try:
            save_config(load_config(apply_env=False).with_active_connection(value))
        except OSError:
            LOG.exception("Failed to persist active connection")

    def _handle_session_state(self, state: SessionState) -> None:
        previous = self._last_session_state
        self._last_session_state = state
        if not state.last_error or (previous and previous.last_error == state.last_error):
            return
        self._safe_notify(state.last_error.splitlines()[0][:120], severity="error")

    def _safe_notify(self, message: str, *, severity: str = "information") -> None:
        if not self.is_running:
            return
        try:
            self.notify(message, severity=severity)
        except Exception:
            LOG.exception("Failed to display notification", extra={"message": message})


def main() -> None:
    """Invoke the Textual application."""

    CosmosUiApp().run()


if __name__ == "__main__":
    main()
