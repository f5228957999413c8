"""Sidebar listing the account's databases and the selected database's containers."""

from __future__ import annotations

from typing import Callable

from textual import on
from textual.app import ComposeResult
from textual.containers import Container
from textual.widgets import Label, ListItem, ListView, Static

from cosmosui.session import SessionController, SessionState


class CatalogSidebar(Container):
    """Displays databases and containers pulled from the session controller."""

    DEFAULT_CSS = """
    CatalogSidebar {
        width: 30;
        min-width: 22;
        border-right: solid $surface-darken-1;
        padding: 1;
        height: 1fr;
        background: $surface-darken-2;
    }

    CatalogSidebar .sidebar-heading {
        text-style: bold;
        margin-bottom: 1;
    }

    CatalogSidebar ListView {
        height: 1fr;
        border: round $primary 30%;
        margin-bottom: 1;
    }

    CatalogSidebar .active {
        text-style: bold;
    }
    """

    def __init__(self, controller: SessionController) -> None:
        super().__init__(id="catalog-sidebar")
        self._controller = controller
        self._database_list: ListView | None = None
        self._container_list: ListView | None = None
        self._rendered_databases: tuple[str, ...] = ()
        self._rendered_containers: tuple[str, ...] = ()
        self._unsubscribe: Callable[[], None] | None = None

    def compose(self) -> ComposeResult:
        yield Static("Databases", classes="sidebar-heading")
        self._database_list = ListView(id="database-list")
        yield self._database_list
        yield Static("Containers", classes="sidebar-heading")
        self._container_list = ListView(id="container-list")
        yield self._container_list

    async def on_mount(self) -> None:
        self._unsubscribe = self._controller.subscribe(self._handle_session_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_session_update(self, state: SessionState) -> None:
        databases = tuple(ref.id for ref in state.databases)
        if databases != self._rendered_databases and self._database_list is not None:
            self._rendered_databases = databases
            self._replace_items(self._database_list, databases)
        containers = tuple(ref.id for ref in state.containers)
        if containers != self._rendered_containers and self._container_list is not None:
            self._rendered_containers = containers
            self._replace_items(self._container_list, containers)
        self._mark_active(self._database_list, state.database)
        self._mark_active(self._container_list, state.container)

    @on(ListView.Selected)
    def _handle_selected(self, event: ListView.Selected) -> None:
        item = event.item
        if not isinstance(item, _CatalogItem):
            return
        if event.list_view.id == "database-list":
            self.app.run_worker(
                self._controller.select_database(item.ref_id),
                group="catalog",
                exit_on_error=False,
            )
        elif event.list_view.id == "container-list":
            self.app.run_worker(
                self._controller.select_container(item.ref_id),
                group="catalog",
                exit_on_error=False,
            )
        event.stop()

    @staticmethod
    def _replace_items(view: ListView, ids: tuple[str, ...]) -> None:
        view.clear()
        if ids:
            view.extend(_CatalogItem(ref_id) for ref_id in ids)

    @staticmethod
    def _mark_active(view: ListView | None, active: str | None) -> None:
        if view is None:
            return
        for child in view.children:
            if isinstance(child, _CatalogItem):
                child.set_class(child.ref_id == active, "active")


class _CatalogItem(ListItem):
    """List item remembering the database/container id it represents."""

    def __init__(self, ref_id: str) -> None:
        super().__init__(Label(ref_id))
        self.ref_id = ref_id


__all__ = ["CatalogSidebar"]
