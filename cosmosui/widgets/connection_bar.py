"""Connection string input, saved connections and connect/save/delete buttons."""

from __future__ import annotations

from typing import Callable

from textual import on
from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import Button, Input, Label, ListItem, ListView, Static

from cosmosui.connections import describe_connection
from cosmosui.session import CONNECT, DELETE_CONNECTION, SAVE_CONNECTION, SessionController, SessionState

_BUTTONS = {
    "save-connection": SAVE_CONNECTION,
    "delete-connection": DELETE_CONNECTION,
    "connect": CONNECT,
}


class ConnectionBar(Container):
    """Top panel driving the connection commands."""

    DEFAULT_CSS = """
    ConnectionBar {
        layout: vertical;
        height: auto;
        padding: 0 1;
        border-bottom: solid $surface-darken-1;
    }

    ConnectionBar .panel-title {
        text-style: bold;
    }

    ConnectionBar .connection-actions {
        height: auto;
    }

    ConnectionBar .connection-actions > * {
        margin-right: 1;
    }

    #saved-connections {
        height: 5;
        border: round $primary 30%;
    }
    """

    def __init__(self, controller: SessionController) -> None:
        super().__init__(id="connection-bar")
        self._controller = controller
        self._input: Input | None = None
        self._saved: ListView | None = None
        self._rendered_saved: tuple[str, ...] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def compose(self) -> ComposeResult:
        yield Static("Connection", classes="panel-title")
        yield Input(
            value=self._controller.state.connection_string or "",
            placeholder="AccountEndpoint=https://<account>.documents.azure.com:443/;AccountKey=<key>;",
            password=True,
            id="connection-input",
        )
        yield Horizontal(
            Button("Connect", id="connect", variant="primary"),
            Button("Save", id="save-connection"),
            Button("Delete", id="delete-connection", variant="error"),
            classes="connection-actions",
        )
        yield ListView(id="saved-connections")

    async def on_mount(self) -> None:
        self._input = self.query_one("#connection-input", Input)
        self._saved = self.query_one("#saved-connections", ListView)
        self._unsubscribe = self._controller.subscribe(self._handle_session_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "connection-input":
            self._controller.set_connection_string(event.value or None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "connection-input":
            self._dispatch(CONNECT)
            event.stop()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        command = _BUTTONS.get(event.button.id or "")
        if command:
            self._dispatch(command)
            event.stop()

    @on(ListView.Selected, "#saved-connections")
    def _handle_saved_selected(self, event: ListView.Selected) -> None:
        item = event.item
        if isinstance(item, _SavedConnectionItem) and self._input is not None:
            self._input.value = item.connection_string
            self._controller.set_connection_string(item.connection_string)
        event.stop()

    def _dispatch(self, command: str) -> None:
        if command == CONNECT:
            connect = getattr(self.app, "connect_and_remember", None)
            work = connect() if connect is not None else self._controller.connect()
        elif command == SAVE_CONNECTION:
            work = self._controller.save_connection()
        else:
            work = self._controller.delete_connection()
        self.app.run_worker(work, group="connection", exit_on_error=False)

    def _handle_session_update(self, state: SessionState) -> None:
        for button_id, command in _BUTTONS.items():
            self.query_one(f"#{button_id}", Button).disabled = not state.can(command)
        if state.connection_strings != self._rendered_saved and self._saved is not None:
            self._rendered_saved = state.connection_strings
            self._saved.clear()
            if state.connection_strings:
                self._saved.extend(_SavedConnectionItem(value) for value in state.connection_strings)


class _SavedConnectionItem(ListItem):
    """Saved connection shown by endpoint only."""

    def __init__(self, connection_string: str) -> None:
        super().__init__(Label(describe_connection(connection_string)))
        self.connection_string = connection_string


__all__ = ["ConnectionBar"]
