"""Async commands with enablement predicates and a running flag."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

CommandHandler = Callable[[], Awaitable[None]]
CommandListener = Callable[["AsyncCommand"], None]


@dataclass(frozen=True, slots=True)
class CommandState:
    """Snapshot of a command for the presentation layer."""

    enabled: bool
    running: bool


class AsyncCommand:
    """Runs ``handler`` when ``can_execute`` allows it, refusing re-entry while running."""

    def __init__(self, name: str, handler: CommandHandler, can_execute: Callable[[], bool]) -> None:
        self.name = name
        self._handler = handler
        self._can_execute = can_execute
        self._running = False
        self._listeners: set[CommandListener] = set()

    @property
    def is_running(self) -> bool:
        return self._running

    def can_execute(self) -> bool:
        return not self._running and self._can_execute()

    @property
    def state(self) -> CommandState:
        return CommandState(enabled=self.can_execute(), running=self._running)

    async def run(self) -> bool:
        """Run the handler; returns False when the command was disabled."""

        if not self.can_execute():
            return False
        self._set_running(True)
        try:
            await self._handler()
        finally:
            self._set_running(False)
        return True

    def raise_can_execute_changed(self) -> None:
        for listener in tuple(self._listeners):
            listener(self)

    def subscribe(self, listener: CommandListener) -> Callable[[], None]:
        """Subscribe to enablement changes; returns an unsubscribe handle."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    def _set_running(self, value: bool) -> None:
        if value == self._running:
            return
        self._running = value
        self.raise_can_execute_changed()


__all__ = ["AsyncCommand", "CommandState"]
