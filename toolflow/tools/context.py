from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Any, Iterator


class ExecutionContext(Mapping):
    """Shared key/value state threaded through one graph invocation.

    Every tool records its output under its own name. Keys are never removed
    and the last write to a key wins.
    """

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(values or {})
        self._lock = threading.Lock()

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            keys = list(self._values)
        return iter(keys)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ExecutionContext({self._values!r})"

    def set(self, key: str, value: Any) -> None:
        self[key] = value

    def record_result(self, tool_name: str, value: Any) -> None:
        self[tool_name] = value

    def try_get(self, key: str) -> tuple[Any, bool]:
        if key in self._values:
            return self._values[key], True
        return None, False

    def try_get_result(self, tool_name: str) -> tuple[Any, bool]:
        return self.try_get(tool_name)

    def copy(self) -> "ExecutionContext":
        with self._lock:
            return ExecutionContext(self._values)

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._values)
