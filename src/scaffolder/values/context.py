from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from scaffolder.util.errors import ContextError


class ResolvedContext(Mapping[str, Any]):
    """Append-only mapping of resolved prompt and variable values.

    Once an id is bound it keeps its value for the rest of the run.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = {}
        if initial:
            self.update_from(initial)

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ResolvedContext({self._values!r})"

    def add(self, key: str, value: Any) -> None:
        if key in self._values:
            raise ContextError(f"'{key}' is already bound in the resolved context")
        self._values[key] = value

    def update_from(self, values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            self.add(key, value)

    def snapshot(self) -> dict[str, Any]:
        return dict(self._values)
