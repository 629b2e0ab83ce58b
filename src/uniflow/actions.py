"""Action handler contract.

An action is a tuple ``(kind, *args)``. A handler is a pure function

    handler(state, context, action) -> ActionResult | None | UNHANDLED

It decides what should happen and never does it: anything effectful is
returned as a descriptor in ``fxs``. Returning None means "handled, nothing
to do". Returning UNHANDLED passes the action on to the generic handler.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence, TYPE_CHECKING

from uniflow.effects import EffectDescriptor, as_descriptor

if TYPE_CHECKING:
    from uniflow.context import Context

Action = tuple
State = Mapping[str, Any]


class Unhandled(enum.Enum):
    """Returned by a handler that does not recognise the action/effect kind."""

    UNHANDLED = "uf/unhandled"

    def __repr__(self) -> str:
        return "UNHANDLED"


UNHANDLED = Unhandled.UNHANDLED


@dataclass(frozen=True)
class ActionResult:
    """What a handler wants to happen.

    db: the new state, or None for no change.
    fxs: effect descriptors to run, in order, after the commit.
    dxs: follow-up actions dispatched once this round's effects finish.
    """

    db: State | None = None
    fxs: tuple[EffectDescriptor, ...] = ()
    dxs: tuple[Action, ...] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "fxs", tuple(as_descriptor(f) for f in self.fxs))
        if self.dxs is not None:
            object.__setattr__(self, "dxs", tuple(self.dxs))


ActionHandler = Callable[[State, "Context", Action], "ActionResult | Unhandled | None"]
EffectHandler = Callable[[Any, Any], Any]


def action_kind(action: Sequence) -> str:
    """Validate an action tuple and return its kind."""
    if not isinstance(action, (tuple, list)) or not action:
        raise TypeError(f"Action must be a non-empty tuple, got {action!r}")
    kind = action[0]
    if not isinstance(kind, str) or not kind:
        raise TypeError(f"Action kind must be a non-empty str, got {kind!r}")
    return kind


def unhandled_action(state: State, context: Context, action: Action) -> Unhandled:
    """Action handler that recognises nothing. Useful as a default."""
    return UNHANDLED


def unhandled_effect(dispatch, effect) -> Unhandled:
    """Effect handler that recognises nothing. Useful as a default."""
    return UNHANDLED
