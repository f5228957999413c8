"""Command palette providers for core app features."""

from __future__ import annotations

from textual.command import DiscoveryHit, Hit, Hits, Provider
from textual.types import IgnoreReturnCallbackType

from .connections import describe_connection
from .session import CANCEL_EXECUTION, CONNECT, EXECUTE, SessionController


class SavedConnectionProvider(Provider):
    """Expose saved connection strings to the command palette."""

    async def search(self, query: str) -> Hits:
        controller = self._controller
        if controller is None:
            return
        matcher = self.matcher(query)
        for value in controller.state.connection_strings:
            label = describe_connection(value)
            match = matcher.match(label)
            if match > 0:
                yield Hit(
                    score=match,
                    match_display=f"Connect to: {matcher.highlight(label)}",
                    command=self._build_callback(value),
                    help="Connect using a saved connection string.",
                )

    async def discover(self) -> Hits:
        controller = self._controller
        if controller is None:
            return
        for value in controller.state.connection_strings:
            yield DiscoveryHit(
                display=f"Connect to: {describe_connection(value)}",
                command=self._build_callback(value),
                help="Connect using a saved connection string.",
            )

    @property
    def _controller(self) -> SessionController | None:
        controller = getattr(self.app, "controller", None)
        if isinstance(controller, SessionController):
            return controller
        return None

    def _build_callback(self, value: str) -> IgnoreReturnCallbackType:
        async def _run() -> None:
            switcher = getattr(self.app, "use_connection", None)
            if switcher is None:
                return
            switcher(value)

        return _run


class SessionActionProvider(Provider):
    """Expose connect/run/cancel for the current session."""

    _ACTIONS = (
        (CONNECT, "Connect to the current connection string", "action_connect"),
        (EXECUTE, "Run query (next page)", "action_execute"),
        (CANCEL_EXECUTION, "Cancel running query", "action_cancel_query"),
    )

    async def search(self, query: str) -> Hits:
        controller = self._controller
        if controller is None:
            return
        matcher = self.matcher(query)
        for command, label, action in self._ACTIONS:
            if not controller.can_execute(command):
                continue
            score = matcher.match(label)
            if score > 0:
                yield Hit(
                    score=score,
                    match_display=matcher.highlight(label),
                    command=self._build_callback(action),
                )

    async def discover(self) -> Hits:
        controller = self._controller
        if controller is None:
            return
        for command, label, action in self._ACTIONS:
            if controller.can_execute(command):
                yield DiscoveryHit(display=label, command=self._build_callback(action))

    @property
    def _controller(self) -> SessionController | None:
        controller = getattr(self.app, "controller", None)
        if isinstance(controller, SessionController):
            return controller
        return None

    def _build_callback(self, action: str) -> IgnoreReturnCallbackType:
        async def _run() -> None:
            handler = getattr(self.app, action, None)
            if handler is None:
                return
            handler()

        return _run


__all__ = ["SavedConnectionProvider", "SessionActionProvider"]
