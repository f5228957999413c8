"""Status bar widget that mirrors session information."""

from __future__ import annotations

from typing import Callable

from textual.widgets import Static

from cosmosui.query import SessionPhase
from cosmosui.session import SessionController, SessionState


class StatusBar(Static):
    """Compact status strip rendered above Textual's footer."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $surface-darken-3;
        color: $text;
    }
    """

    def __init__(self, controller: SessionController) -> None:
        super().__init__("", id="status-bar")
        self._controller = controller
        self._unsubscribe: Callable[[], None] | None = None

    async def on_mount(self) -> None:
        self._unsubscribe = self._controller.subscribe(self._handle_session_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_session_update(self, state: SessionState) -> None:
        self.update(render_status(state))


def render_status(state: SessionState) -> str:
    """Single-line summary of a session snapshot."""

    if not state.connected:
        return state.last_error.splitlines()[0][:120] if state.last_error else "Not connected"
    parts = [f"Databases: {len(state.databases)}"]
    if state.database:
        parts.append(f"Database: {state.database}")
    if state.container:
        parts.append(f"Container: {state.container}")
    if state.phase is SessionPhase.FETCHING:
        parts.append("Fetching…")
    elif state.pages_fetched:
        more = "more available" if state.continuation_token else "end of results"
        parts.append(f"Pages: {state.pages_fetched} ({more})")
    if state.status_output:
        parts.append(state.status_output)
    if state.last_error:
        parts.append(f"Error: {state.last_error.splitlines()[0][:80]}")
    return " | ".join(parts)


__all__ = ["StatusBar", "render_status"]
