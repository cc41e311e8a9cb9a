"""Run-scoped user data store."""

import copy
import json
from typing import Any, Iterator, Optional, Union

import structlog

logger = structlog.get_logger()


# JSON-compatible values held by the context
ContextValue = Union[str, int, float, bool, None, list, dict]

_MISSING = object()


def stringify(value: Any) -> str:
    """
    String form of a context value as used in template substitution.

    Booleans and null follow JSON spelling, integral floats drop the
    fractional part, containers are rendered as compact JSON.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(value)


class UserContext:
    """
    Mutable string-keyed store of user data for one workflow run.

    Lookups are exact-key; a key containing dots is just a key. The
    resolver decides whether to walk nested maps.
    """

    def __init__(self, data: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = data if data is not None else {}
        logger.debug("context_created", keys=sorted(self._data))

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> "UserContext":
        """Build a context from a JSON object document."""
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"context document must be a JSON object, got {type(data).__name__}")
        return cls(data)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def lookup(self, key: str) -> tuple[bool, Any]:
        """Return ``(found, value)`` for an exact key."""
        value = self._data.get(key, _MISSING)
        if value is _MISSING:
            return False, None
        return True, value

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def has(self, key: str) -> bool:
        return key in self._data

    def clear(self, key: str) -> None:
        """Unbind a key's value by setting it to None."""
        self._data[key] = None

    def keys(self) -> list[str]:
        return list(self._data)

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of the current data."""
        return copy.deepcopy(self._data)

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)
