"""Built-in handlers tried after the module's own handlers.

Every execution context gets these for free:

Actions
    db/ax.assoc k v [k v ...]          assign keys into state
    uf/ax.defer-dispatch actions delay  re-dispatch actions after delay seconds
    log/ax.log level subsystem *msgs    structured log
    uf/ax.sync-shadow watcher change    default shadow-list consumer
    uf/ax.clear-entering watcher tags
    uf/ax.remove-leaving watcher tags

Effects
    uf/fx.dispatch actions
    uf/fx.defer-dispatch actions delay
    log/fx.log level subsystem *msgs
"""

from __future__ import annotations

from typing import Any, Mapping

from uniflow import log
from uniflow.actions import UNHANDLED, ActionResult, Unhandled
from uniflow.effects import Effect, fx
from uniflow.watchers import (
    CLEAR_ENTERING,
    DEFER_DISPATCH_FX,
    REMOVE_LEAVING,
    SYNC_SHADOW,
    apply_shadow_change,
    clear_entering,
    remove_leaving,
)

ASSOC = "db/ax.assoc"
DEFER_DISPATCH = "uf/ax.defer-dispatch"
LOG = "log/ax.log"

DISPATCH_FX = "uf/fx.dispatch"
LOG_FX = "log/fx.log"


def handle_generic_action(state: Mapping, context, action: tuple) -> ActionResult | Unhandled:
    kind, *args = action

    if kind == ASSOC:
        if len(args) % 2:
            raise ValueError(f"{ASSOC} expects key/value pairs, got {args!r}")
        new_state = dict(state)
        for key, value in zip(args[::2], args[1::2]):
            new_state[key] = value
        return ActionResult(db=new_state)

    if kind == DEFER_DISPATCH:
        actions, delay = args
        return ActionResult(fxs=(fx(DEFER_DISPATCH_FX, actions, delay),))

    if kind == LOG:
        return ActionResult(fxs=(fx(LOG_FX, *args),))

    if kind == SYNC_SHADOW:
        watcher, change = args
        return apply_shadow_change(state, context, watcher, change)

    if kind == CLEAR_ENTERING:
        watcher, tags = args
        return clear_entering(state, watcher, tags)

    if kind == REMOVE_LEAVING:
        watcher, tags = args
        return remove_leaving(state, watcher, tags)

    return UNHANDLED


def perform_generic_effect(dispatch, effect: Effect) -> Any:
    """Run a built-in effect.

    ``dispatch(actions)`` schedules a dispatch and returns its task;
    ``dispatch.later(delay, actions)`` schedules one after a delay.
    """
    kind, *args = effect

    if kind == DISPATCH_FX:
        (actions,) = args
        return dispatch(actions)

    if kind == DEFER_DISPATCH_FX:
        actions, delay = args
        dispatch.later(delay, actions)
        return None

    if kind == LOG_FX:
        level, subsystem, *messages = args
        log.log(level, subsystem, *messages)
        return None

    return UNHANDLED
