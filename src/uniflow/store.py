"""StateStore — single owner of the state reference, with commit observers.

The dispatcher is the only writer: it calls _commit() exactly once per
handled batch. Everything else reads the current reference.

Observers follow the reaction pattern:
- autorun(fn): runs fn(state) immediately and after every commit.
- react(data_fn, effect_fn): re-evaluates data_fn(state) after every commit
  and calls effect_fn only when the result changes.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Hashable, Mapping, Sequence, TypeVar, Union

logger = logging.getLogger("uniflow.store")

T = TypeVar("T")

Path = Union[Hashable, Sequence[Hashable]]

_MISSING = object()


def _keys(path: Path) -> tuple:
    return tuple(path) if isinstance(path, (tuple, list)) else (path,)


def get_in(state: Mapping, path: Path, default: Any = None) -> Any:
    """Read a key or a tuple/list path of keys. Missing segments give default."""
    value: Any = state
    for key in _keys(path):
        if not isinstance(value, Mapping):
            return default
        value = value.get(key, _MISSING)
        if value is _MISSING:
            return default
    return value


def assoc_in(state: Mapping, path: Path, value: Any) -> dict:
    """Return a copy of state with value stored at path."""
    keys = _keys(path)
    head, rest = keys[0], keys[1:]
    new_state = dict(state)
    if rest:
        child = state.get(head)
        new_state[head] = assoc_in(child if isinstance(child, Mapping) else {}, rest, value)
    else:
        new_state[head] = value
    return new_state


class Reaction:
    """A commit observer. Call dispose() to stop it."""

    __slots__ = ("_store", "_data_fn", "_effect_fn", "_last_value", "_initialized", "_disposed")

    def __init__(self, store: StateStore, data_fn: Callable, effect_fn: Callable | None) -> None:
        self._store = store
        self._data_fn = data_fn
        self._effect_fn = effect_fn
        self._last_value = None
        self._initialized = False
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _run(self, state: Mapping) -> None:
        if self._disposed:
            return
        if self._effect_fn is None:
            # autorun: every commit
            self._data_fn(state)
            return
        new_value = self._data_fn(state)
        if not self._initialized or new_value != self._last_value:
            self._last_value = new_value
            self._initialized = True
            self._effect_fn(new_value)

    def _prime(self, state: Mapping) -> None:
        """Record data_fn's current value without firing the effect."""
        self._last_value = self._data_fn(state)
        self._initialized = True

    def dispose(self) -> None:
        """Stop this reaction."""
        self._disposed = True
        self._store._remove(self)

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"Reaction({getattr(self._data_fn, '__name__', self._data_fn)!r}, {state})"


class StateStore:
    """Holds the current state and notifies observers on commit."""

    def __init__(self, initial: Mapping | None = None) -> None:
        self._state: Mapping = dict(initial) if initial else {}
        self._reactions: list[Reaction] = []
        self._commits = 0

    @property
    def state(self) -> Mapping:
        return self._state

    def get(self, path: Path, default: Any = None) -> Any:
        return get_in(self._state, path, default)

    @property
    def commit_count(self) -> int:
        return self._commits

    def autorun(self, fn: Callable[[Mapping], None]) -> Reaction:
        """Run fn(state) now and after every commit."""
        r = Reaction(self, fn, None)
        self._reactions.append(r)
        r._run(self._state)
        return r

    def react(
        self,
        data_fn: Callable[[Mapping], T],
        effect_fn: Callable[[T], None],
        *,
        fire_immediately: bool = False,
    ) -> Reaction:
        """Call effect_fn whenever data_fn(state) changes after a commit.

        Usage:
            store.react(lambda s: s.get("count"), lambda n: render_badge(n))
        """
        r = Reaction(self, data_fn, effect_fn)
        self._reactions.append(r)
        if fire_immediately:
            r._run(self._state)
        else:
            r._prime(self._state)
        return r

    def _commit(self, new_state: Mapping) -> None:
        """Replace the state reference. Called only by the dispatcher."""
        self._state = new_state
        self._commits += 1
        for r in list(self._reactions):
            try:
                r._run(new_state)
            except Exception:
                logger.exception("State observer %r failed", r)

    def _remove(self, reaction: Reaction) -> None:
        try:
            self._reactions.remove(reaction)
        except ValueError:
            pass  # already removed

    def dispose(self) -> None:
        for r in list(self._reactions):
            r.dispose()
