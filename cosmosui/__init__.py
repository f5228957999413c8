"""Browse Cosmos DB accounts and page through document queries."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
