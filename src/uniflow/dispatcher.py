"""Dispatcher — the single writer of an execution context's state.

One dispatch round:

    handle   reduce the batch through the action handler (generic fallback)
    commit   replace the state reference once, if any action produced db
    watch    diff list watchers; their actions run as a new round right away
    effect   run the round's fxs through the executor
    follow   dispatch dxs with PREV_RESULT bound to the last awaited result

Handling, committing and watching run without suspension. Watcher rounds
and follow-ups go through a work queue instead of recursing.

Re-entry is allowed: effects receive a ``dispatch`` callable that starts a
new top-level dispatch as a task. Independent dispatches interleave at
awaited effects; there is no ordering between them.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import itertools
import logging
from collections import deque
from typing import Any, Awaitable, Iterable, Mapping, Sequence

from uniflow.actions import (
    UNHANDLED,
    ActionHandler,
    ActionResult,
    EffectHandler,
    action_kind,
    unhandled_action,
    unhandled_effect,
)
from uniflow.context import Context, ContextProvider, build_context
from uniflow.effects import Effect, EffectDescriptor, fx, substitute_in_actions
from uniflow.errors import ActionHandlerError, WatcherLoopError
from uniflow.executor import execute_effects, report_background_failure
from uniflow.generic import LOG_FX, handle_generic_action
from uniflow.log import is_debug_enabled
from uniflow.store import StateStore
from uniflow.watchers import ListWatcher, get_list_watcher_actions

logger = logging.getLogger("uniflow.dispatcher")


def handle_actions(
    state: Mapping,
    context: Context,
    handler: ActionHandler,
    actions: Iterable,
) -> ActionResult:
    """Reduce a batch of actions.

    Each action sees the state left by the previous one. fxs accumulate
    across the batch, the last db and the last dxs win. A handler that
    raises contributes only an error log effect; the rest of the batch
    still runs.
    """
    current = state
    changed = False
    fxs: list[EffectDescriptor] = []
    dxs = None

    for action in actions:
        if action is None:
            continue
        action = tuple(action)
        try:
            kind = action_kind(action)
            if is_debug_enabled():
                logger.debug("Triggered action %s %r", kind, action)
            result = handler(current, context, action)
            if result is UNHANDLED:
                result = handle_generic_action(current, context, action)
                if result is UNHANDLED:
                    logger.warning("Unhandled action: %r", action)
                    continue
            if result is not None and not isinstance(result, ActionResult):
                raise TypeError(f"Action handler returned {type(result).__name__}, expected ActionResult")
        except Exception as e:
            error = ActionHandlerError(action, e)
            error.__cause__ = e
            fxs.append(fx(LOG_FX, "error", "Uniflow", error))
            continue

        if result is None:
            continue
        if result.db is not None:
            current = result.db
            changed = True
        if result.dxs is not None:
            dxs = result.dxs
        fxs.extend(result.fxs)

    return ActionResult(db=current if changed else None, fxs=tuple(fxs), dxs=dxs)


class _BoundDispatch:
    """The ``dispatch`` callable handed to effect handlers."""

    __slots__ = ("_dispatcher", "_extra")

    def __init__(self, dispatcher: Dispatcher, extra: Mapping[str, Any] | None = None) -> None:
        self._dispatcher = dispatcher
        self._extra = extra

    def __call__(self, actions: Sequence) -> asyncio.Task:
        return self._dispatcher.dispatch_soon(actions, self._extra)

    def later(self, delay: float, actions: Sequence) -> asyncio.TimerHandle:
        return self._dispatcher.dispatch_later(delay, actions, self._extra)

    @property
    def state(self) -> Mapping:
        """Read-only view of the current state."""
        return self._dispatcher.state


class Dispatcher:
    """Owns the state of one execution context and runs dispatch rounds.

    Usage:
        def handle(state, ctx, action):
            kind, *args = action
            if kind == "counter/ax.inc":
                return ActionResult(db={**state, "count": state["count"] + 1})
            return UNHANDLED

        d = Dispatcher({"count": 5}, action_handler=handle)
        await d.dispatch([("counter/ax.inc",)])
        d.state  # {"count": 6}
    """

    def __init__(
        self,
        initial_state: Mapping | None = None,
        *,
        action_handler: ActionHandler = unhandled_action,
        effect_handler: EffectHandler = unhandled_effect,
        context: ContextProvider = None,
        list_watchers: Iterable[ListWatcher] = (),
        max_watcher_depth: int = 100,
    ) -> None:
        self._store = StateStore(initial_state)
        self._action_handler = action_handler
        self._effect_handler = effect_handler
        self._context_provider = context
        self._watchers: list[ListWatcher] = list(list_watchers)
        self._max_watcher_depth = max_watcher_depth
        self._generations = itertools.count(1)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Future] = set()
        self._timers: set[asyncio.TimerHandle] = set()
        self._closed = False

    # --- Reads ---

    @property
    def state(self) -> Mapping:
        return self._store.state

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def list_watchers(self) -> tuple[ListWatcher, ...]:
        return tuple(self._watchers)

    def add_list_watcher(self, watcher: ListWatcher) -> None:
        self._watchers.append(watcher)

    # --- Dispatch ---

    async def dispatch(self, actions: Sequence, extra: Mapping[str, Any] | None = None) -> None:
        """Run one top-level dispatch, including watcher rounds and follow-ups.

        An exception from an awaited effect propagates from here; the
        remaining effects and follow-ups of that dispatch are skipped.
        """
        self._remember_loop()
        context = build_context(self._context_provider, extra)
        bound = _BoundDispatch(self, extra)
        queue: deque[list] = deque([list(actions)])

        while queue:
            batch = queue.popleft()
            for fxs, dxs in self._settle(batch, context):
                prev_result = None
                if fxs:
                    prev_result = await execute_effects(
                        bound, self._effect_handler, fxs, spawn=self._spawn
                    )
                if dxs:
                    queue.append(substitute_in_actions(dxs, prev_result))

    def _settle(self, actions: list, context: Context) -> list[tuple[tuple, tuple | None]]:
        """Handle, commit and watch until the list watchers are quiet.

        Returns (fxs, dxs) jobs, deepest watcher round first.
        """
        jobs = []
        depth = 0
        while actions:
            round_context = context.next_generation(next(self._generations))
            old_state = self._store.state
            result = handle_actions(old_state, round_context, self._action_handler, actions)
            if result.db is not None:
                self._store._commit(result.db)
            jobs.append((result.fxs, result.dxs))

            actions = get_list_watcher_actions(self._watchers, old_state, self._store.state)
            if actions:
                depth += 1
                if depth > self._max_watcher_depth:
                    raise WatcherLoopError(depth, actions)
        jobs.reverse()
        return jobs

    def dispatch_soon(self, actions: Sequence, extra: Mapping[str, Any] | None = None) -> asyncio.Task:
        """Start a dispatch as a task on the running loop and return it.

        Failures are logged even when nobody awaits the task.
        """
        if self._closed:
            raise RuntimeError("Dispatcher is closed")
        self._remember_loop()
        task = asyncio.ensure_future(self.dispatch(list(actions), extra))
        self._track(task, Effect("uf/fx.dispatch", (list(actions),)))
        return task

    def dispatch_later(
        self, delay: float, actions: Sequence, extra: Mapping[str, Any] | None = None
    ) -> asyncio.TimerHandle:
        """Dispatch actions after delay seconds. Cannot be cancelled individually."""
        loop = self._remember_loop()
        actions = list(actions)
        handle: asyncio.TimerHandle | None = None

        def _fire() -> None:
            self._timers.discard(handle)
            if not self._closed:
                self.dispatch_soon(actions, extra)

        handle = loop.call_later(delay, _fire)
        self._timers.add(handle)
        return handle

    def dispatch_threadsafe(self, actions: Sequence) -> concurrent.futures.Future:
        """Dispatch from another thread onto the dispatcher's loop."""
        if self._loop is None:
            raise RuntimeError("Dispatcher has no event loop yet; dispatch once from the loop first")
        return asyncio.run_coroutine_threadsafe(self.dispatch(list(actions)), self._loop)

    # --- Lifecycle ---

    async def drain(self) -> None:
        """Wait until no background dispatch or effect task is running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """Cancel pending timers and background tasks. The state is kept."""
        self._closed = True
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()
        for task in list(self._tasks):
            task.cancel()

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    def _remember_loop(self) -> asyncio.AbstractEventLoop:
        loop = asyncio.get_running_loop()
        self._loop = loop
        return loop

    def _spawn(self, awaitable: Awaitable, effect: Effect) -> asyncio.Future:
        task = asyncio.ensure_future(awaitable)
        if task not in self._tasks:
            self._track(task, effect)
        return task

    def _track(self, task: asyncio.Future, effect: Effect) -> None:
        self._tasks.add(task)

        def _done(t: asyncio.Future) -> None:
            self._tasks.discard(t)
            report_background_failure(t, effect)

        task.add_done_callback(_done)

    def __repr__(self) -> str:
        return f"Dispatcher(keys={sorted(map(str, self._store.state))}, watchers={len(self._watchers)})"
