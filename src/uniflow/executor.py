"""Effect executor — run descriptors strictly in order.

Fire effects never block the sequence. If one raises, the failure is logged
with the full descriptor and execution moves on; prev-result is untouched.
If it returns an awaitable, the awaitable is spawned as a background task.

Await effects block the sequence. Their result becomes the new prev-result.
They are not guarded: an exception aborts the rest of the run and propagates
to whoever awaited the executor.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable

from uniflow.actions import UNHANDLED, EffectHandler
from uniflow.effects import Await, Effect, as_descriptor
from uniflow.errors import EffectError
from uniflow.generic import LOG_FX, perform_generic_effect
from uniflow.log import is_debug_enabled

logger = logging.getLogger("uniflow.executor")

Spawn = Callable[[Awaitable, Effect], Any]

# Keeps fire-and-forget tasks alive when no dispatcher supplies a spawn.
_background: set[asyncio.Future] = set()


def spawn_background(awaitable: Awaitable, effect: Effect) -> asyncio.Future:
    """Run an awaitable returned by a fire effect without waiting for it."""
    task = asyncio.ensure_future(awaitable)
    _background.add(task)
    task.add_done_callback(lambda t: _finish_background(t, effect))
    return task


def _finish_background(task: asyncio.Future, effect: Effect) -> None:
    _background.discard(task)
    report_background_failure(task, effect)


def report_background_failure(task: asyncio.Future, effect: Effect) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("%s", EffectError(effect, error), exc_info=error)


def perform_effect(
    dispatch,
    handler: EffectHandler,
    effect: Effect,
    fallback: EffectHandler = perform_generic_effect,
) -> Any:
    """Run one unwrapped effect: module handler first, then the fallback."""
    if effect.kind != LOG_FX and is_debug_enabled():
        logger.debug("Triggered effect %r", effect)
    result = handler(dispatch, effect)
    if result is not UNHANDLED:
        return result
    result = fallback(dispatch, effect)
    if result is UNHANDLED:
        logger.warning("Unhandled effect: %r", effect)
    return result


async def execute_effects(
    dispatch,
    handler: EffectHandler,
    fxs: Iterable,
    *,
    fallback: EffectHandler = perform_generic_effect,
    spawn: Spawn = spawn_background,
) -> Any:
    """Execute fxs in order and return the last awaited result (None if none)."""
    prev_result = None
    for raw in fxs:
        descriptor = as_descriptor(raw)
        effect = descriptor.effect.with_prev_result(prev_result)

        if isinstance(descriptor, Await):
            result = perform_effect(dispatch, handler, effect, fallback)
            if inspect.isawaitable(result):
                result = await result
            prev_result = None if result is UNHANDLED else result
            continue

        try:
            result = perform_effect(dispatch, handler, effect, fallback)
        except Exception as e:
            logger.exception("%s", EffectError(effect, e))
            continue
        if inspect.isawaitable(result):
            spawn(result, effect)

    return prev_result
