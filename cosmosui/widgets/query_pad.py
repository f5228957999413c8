"""Query pad: query text, page size, run/cancel buttons and the output log."""

from __future__ import annotations

from typing import Callable

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.widgets import Button, Input, Static, TextArea

from cosmosui.session import CANCEL_EXECUTION, EXECUTE, SessionController, SessionState


class QueryPad(Container):
    """Editor surface for document queries."""

    DEFAULT_CSS = """
    QueryPad {
        layout: vertical;
        border: round $primary 40%;
        padding: 1 2;
        height: 1fr;
        background: $surface;
    }

    QueryPad .panel-title {
        text-style: bold;
    }

    QueryPad Input {
        border: heavy $primary;
    }

    QueryPad #limit-input {
        width: 16;
    }

    QueryPad:focus-within {
        border: round $primary;
        background: $surface-lighten-1;
    }

    QueryPad .query-actions {
        height: auto;
        margin-top: 1;
        align-horizontal: left;
    }

    QueryPad .query-actions > * {
        margin-right: 1;
    }

    QueryPad #query-output {
        height: 1fr;
        margin-top: 1;
    }
    """

    BINDINGS = Container.BINDINGS + [
        Binding("ctrl+enter", "run_query", "Run query", show=False, priority=True),
    ]

    def __init__(self, controller: SessionController) -> None:
        super().__init__(id="query-pad")
        self._controller = controller
        self._unsubscribe: Callable[[], None] | None = None
        self._run_button: Button | None = None
        self._cancel_button: Button | None = None
        self._output: TextArea | None = None
        self._rendered_output: str | None = None

    def compose(self) -> ComposeResult:
        yield Static("Query", classes="panel-title")
        yield Input(placeholder="WHERE c.type = 'order'  or  SELECT * FROM c", id="query-input")
        yield Horizontal(
            Input(placeholder="Page size (10)", id="limit-input"),
            Button("Run", id="run-query", variant="primary", disabled=True),
            Button("Cancel", id="cancel-query", variant="warning", disabled=True),
            classes="query-actions",
        )
        yield TextArea("", id="query-output", read_only=True)

    async def on_mount(self) -> None:
        self._run_button = self.query_one("#run-query", Button)
        self._cancel_button = self.query_one("#cancel-query", Button)
        self._output = self.query_one("#query-output", TextArea)
        self._unsubscribe = self._controller.subscribe(self._handle_session_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "query-input":
            self._controller.set_query(event.value)
        elif event.input.id == "limit-input":
            self._controller.set_limit(event.value)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id in {"query-input", "limit-input"}:
            self._request_run()
            event.stop()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "run-query":
            self._request_run()
        elif event.button.id == "cancel-query":
            self.app.run_worker(self._controller.cancel_execution(), group="cancel", exit_on_error=False)

    def action_run_query(self) -> None:
        self._request_run()

    def _request_run(self) -> None:
        if not self._controller.can_execute(EXECUTE):
            return
        self.app.run_worker(self._controller.execute(), group="query", exit_on_error=False)

    def _handle_session_update(self, state: SessionState) -> None:
        if self._run_button:
            self._run_button.disabled = not state.can(EXECUTE)
        if self._cancel_button:
            self._cancel_button.disabled = not state.can(CANCEL_EXECUTION)
        output = state.output_log or ""
        if self._output and output != self._rendered_output:
            self._rendered_output = output
            self._output.load_text(output)


__all__ = ["QueryPad"]
