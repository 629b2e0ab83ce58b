"""Effect descriptors — immutable data describing a side effect.

An Effect is a call value: a kind plus positional args. It is wrapped as
either Fire (run and move on) or Await (block the sequence on its result).
The executor unwraps the marker before handing the Effect to a handler, so
handlers only ever see the Effect itself.

Args equal to PREV_RESULT are replaced at execution time with the result of
the most recent awaited effect in the same run.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Iterator, Union


class Placeholder(enum.Enum):
    """Argument placeholders resolved by the executor."""

    PREV_RESULT = "uf/prev-result"

    def __repr__(self) -> str:
        return f"<{self.value}>"


PREV_RESULT = Placeholder.PREV_RESULT


def _check_kind(kind: object) -> str:
    if not isinstance(kind, str) or not kind:
        raise TypeError(f"Effect/action kind must be a non-empty str, got {kind!r}")
    return kind


@dataclass(frozen=True)
class Effect:
    """A side effect request: ``kind`` plus positional ``args``.

    Iterable like a tuple so handlers can write ``kind, *args = effect``.
    """

    kind: str
    args: tuple = ()

    def __post_init__(self) -> None:
        _check_kind(self.kind)
        if not isinstance(self.args, tuple):
            object.__setattr__(self, "args", tuple(self.args))

    def __iter__(self) -> Iterator[Any]:
        yield self.kind
        yield from self.args

    def __len__(self) -> int:
        return 1 + len(self.args)

    def with_prev_result(self, value: Any) -> Effect:
        """Return a copy with PREV_RESULT args replaced by value."""
        if not any(arg is PREV_RESULT for arg in self.args):
            return self
        return Effect(self.kind, substitute_prev_result(self.args, value))

    def __repr__(self) -> str:
        return f"Effect({self.kind!r}, {', '.join(repr(a) for a in self.args)})"


@dataclass(frozen=True)
class Fire:
    """Run the effect; do not wait for its result."""

    effect: Effect


@dataclass(frozen=True)
class Await:
    """Run the effect and block the sequence until its result is available."""

    effect: Effect


EffectDescriptor = Union[Fire, Await]


def fx(kind: str, *args: Any) -> Fire:
    """Build a fire-and-forget descriptor."""
    return Fire(Effect(kind, args))


def await_fx(kind: str, *args: Any) -> Await:
    """Build an awaited descriptor."""
    return Await(Effect(kind, args))


def as_descriptor(value: Any) -> EffectDescriptor:
    """Coerce a handler-supplied value into a descriptor.

    Fire and Await pass through, a bare Effect becomes Fire, and a plain
    tuple ``(kind, *args)`` becomes Fire.
    """
    if isinstance(value, (Fire, Await)):
        return value
    if isinstance(value, Effect):
        return Fire(value)
    if isinstance(value, (tuple, list)) and value:
        return Fire(Effect(value[0], tuple(value[1:])))
    raise TypeError(f"Not an effect descriptor: {value!r}")


def is_await(descriptor: EffectDescriptor) -> bool:
    return isinstance(descriptor, Await)


def substitute_prev_result(args: tuple, value: Any) -> tuple:
    """Replace top-level PREV_RESULT entries in args with value."""
    return tuple(value if arg is PREV_RESULT else arg for arg in args)


def substitute_in_actions(actions, value: Any) -> list[tuple]:
    """Replace PREV_RESULT args inside each action tuple."""
    return [
        action if action is None else substitute_prev_result(tuple(action), value)
        for action in actions
    ]
