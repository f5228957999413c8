"""JSON rendering for query results."""

from __future__ import annotations

import dataclasses
import json
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class DocumentSerializer:
    """Serialize documents with camelCase field names and enums as strings.

    Raw documents (plain dicts returned by the service) keep their keys as-is;
    only typed objects such as pydantic models and dataclasses have their
    field names converted, at any nesting depth.
    """

    def __init__(self, *, indent: int | None = 2, camel_case: bool = True) -> None:
        self._indent = indent
        self._camel_case = camel_case

    def dumps(self, value: Any) -> str:
        return json.dumps(self._convert(value), indent=self._indent, ensure_ascii=False)

    def dumps_items(self, items: Iterable[Any]) -> str:
        return self.dumps(list(items))

    def _field_name(self, name: str) -> str:
        return to_camel(name) if self._camel_case else name

    def _convert(self, value: Any) -> Any:
        # Enums first: str and int mixins would otherwise pass through as their value.
        if isinstance(value, Enum):
            return value.name
        if isinstance(value, BaseModel):
            return {
                self._field_name(name): self._convert(getattr(value, name))
                for name in type(value).model_fields
            }
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return {
                self._field_name(entry.name): self._convert(getattr(value, entry.name))
                for entry in dataclasses.fields(value)
            }
        if isinstance(value, Mapping):
            return {key: self._convert(item) for key, item in value.items()}
        if isinstance(value, (list, tuple, set, frozenset)):
            return [self._convert(item) for item in value]
        if isinstance(value, (datetime, date, time)):
            return value.isoformat()
        if isinstance(value, Decimal):
            return float(value)
        return value


__all__ = ["DocumentSerializer"]
