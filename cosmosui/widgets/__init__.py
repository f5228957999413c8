"""Widget library for the Textual UI."""

from __future__ import annotations

from .catalog_sidebar import CatalogSidebar
from .connection_bar import ConnectionBar
from .query_pad import QueryPad
from .status_bar import StatusBar

__all__ = ["CatalogSidebar", "ConnectionBar", "QueryPad", "StatusBar"]
