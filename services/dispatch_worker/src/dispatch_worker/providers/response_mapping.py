"""Declarative extraction of results from arbitrary vendor JSON responses.

A mapping names dotted field paths (``data.messages.0.id``) and one of a
fixed set of predicates; nothing in a tenant-supplied config is ever
evaluated as code.
"""

from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

MISSING = object()

Predicate = Literal["equals", "not_equals", "in", "exists", "truthy"]

PREDICATES: dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda value, expected: value == expected,
    "not_equals": lambda value, expected: value != expected,
    "in": lambda value, expected: value in (expected or ()),
    "exists": lambda value, _: value is not MISSING and value is not None,
    "truthy": lambda value, _: value is not MISSING and bool(value),
}


def extract_path(data: Any, path: str) -> Any:
    """Walk *path* through nested dicts and lists.

    Dict segments are keys, list segments are integer indexes. Returns
    ``MISSING`` as soon as a segment cannot be resolved.
    """
    current = data
    for segment in path.split("."):
        if isinstance(current, dict):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, list):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return current


class ResponseMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    message_id_path: str = "id"
    success_path: str | None = None
    success_predicate: Predicate = "truthy"
    success_value: Any = None
    error_path: str | None = None

    def is_success(self, body: Any) -> bool:
        if self.success_path is None:
            return extract_path(body, self.message_id_path) not in (MISSING, None, "")
        value = extract_path(body, self.success_path)
        if value is MISSING and self.success_predicate not in ("exists", "truthy"):
            return False
        return PREDICATES[self.success_predicate](value, self.success_value)

    def message_id(self, body: Any) -> str | None:
        value = extract_path(body, self.message_id_path)
        if value is MISSING or value is None or value == "":
            return None
        return str(value)

    def error(self, body: Any) -> str | None:
        if self.error_path is None:
            return None
        value = extract_path(body, self.error_path)
        if value is MISSING or value is None:
            return None
        return str(value)
