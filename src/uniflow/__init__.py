"""uniflow: action/effect dispatch for single-writer application state."""

from importlib.metadata import version as _version

__version__ = _version("uniflow")

from uniflow.actions import UNHANDLED, ActionResult, Unhandled
from uniflow.context import Context
from uniflow.effects import PREV_RESULT, Await, Effect, Fire, Placeholder, await_fx, fx
from uniflow.errors import ActionHandlerError, EffectError, UniflowError, WatcherLoopError
from uniflow.executor import execute_effects
from uniflow.dispatcher import Dispatcher, handle_actions
from uniflow.generic import handle_generic_action, perform_generic_effect
from uniflow.log import set_debug_enabled
from uniflow.store import StateStore, assoc_in, get_in
from uniflow.watchers import (
    ListChange,
    ListWatcher,
    ShadowChange,
    ShadowItem,
    apply_shadow_change,
    get_list_watcher_actions,
)
# textual NOT auto-imported — opt-in only

__all__ = [
    "Dispatcher",
    "handle_actions",
    "ActionResult",
    "UNHANDLED",
    "Unhandled",
    "Context",
    "Effect",
    "Fire",
    "Await",
    "fx",
    "await_fx",
    "PREV_RESULT",
    "Placeholder",
    "execute_effects",
    "handle_generic_action",
    "perform_generic_effect",
    "StateStore",
    "get_in",
    "assoc_in",
    "ListWatcher",
    "ListChange",
    "ShadowChange",
    "ShadowItem",
    "apply_shadow_change",
    "get_list_watcher_actions",
    "set_debug_enabled",
    "UniflowError",
    "ActionHandlerError",
    "EffectError",
    "WatcherLoopError",
]
