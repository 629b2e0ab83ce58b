"""Per-round ambient data handed to action handlers."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Mapping, Union

ContextProvider = Union[Mapping[str, Any], Callable[[], Mapping[str, Any]], None]


def _freeze(data: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(data))


@dataclass(frozen=True)
class Context:
    """Read-only ambient data for one dispatch.

    now: wall-clock milliseconds, taken once per top-level dispatch.
    generation: increases with every handled batch; deferred work captures
        it at schedule time and compares on fire.
    data: injected configuration from the context provider plus per-call extras.
    """

    now: float = 0.0
    generation: int = 0
    data: Mapping[str, Any] = field(default_factory=lambda: _freeze({}))

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def next_generation(self, generation: int) -> Context:
        return replace(self, generation=generation)


def build_context(
    provider: ContextProvider,
    extra: Mapping[str, Any] | None = None,
    *,
    generation: int = 0,
) -> Context:
    """Resolve the provider (value or thunk) and merge extras over it."""
    base = provider() if callable(provider) else provider
    data: dict[str, Any] = dict(base or {})
    if extra:
        data.update(extra)
    return Context(now=time.time() * 1000, generation=generation, data=_freeze(data))
