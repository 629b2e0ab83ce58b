"""List watchers — detect changes to a source list between commits.

Classic mode compares the ids in the old and new source list and reports
``ListChange(added, removed)``.

Shadow mode keeps a parallel list of ShadowItem in state that drives
enter/leave animations. The diff runs against the shadow, not against the
old state:

    source_ids = ids of the new source list
    active_ids = ids of shadow items that are not leaving
    added      = source_ids - active_ids
    removed    = active_ids - source_ids

and additionally fires when an active shadow copy differs from its source
item. Removal is two-phase: items are first marked leaving, then purged
after ``leave_delay`` if they are still leaving with the same generation.
"""

from __future__ import annotations

import operator
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Hashable, Iterable, Mapping

from uniflow.actions import ActionResult
from uniflow.effects import fx
from uniflow.store import Path, assoc_in, get_in

SYNC_SHADOW = "uf/ax.sync-shadow"
CLEAR_ENTERING = "uf/ax.clear-entering"
REMOVE_LEAVING = "uf/ax.remove-leaving"
DEFER_DISPATCH_FX = "uf/fx.defer-dispatch"

_NO_TAG = object()


@dataclass(frozen=True)
class ListWatcher:
    """Watch the list at ``path`` and dispatch ``on_change`` when it changes.

    id_fn: callable returning an item's identity, or a key to read from it.
    shadow_path: where the ShadowItem list lives. Enables shadow mode.
    on_change: action kind to dispatch. Optional in shadow mode, where the
        built-in ``uf/ax.sync-shadow`` consumer is used instead.
    enter_delay / leave_delay: seconds before entering is cleared and
        before leaving items are purged.
    """

    path: Path
    id_fn: Callable[[Any], Hashable] | Hashable
    on_change: str | None = None
    shadow_path: Path | None = None
    enter_delay: float = 0.05
    leave_delay: float = 0.25
    _get_id: Callable[[Any], Hashable] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.shadow_path is None and self.on_change is None:
            raise ValueError(f"Classic list watcher on {self.path!r} requires on_change")
        get_id = self.id_fn if callable(self.id_fn) else operator.itemgetter(self.id_fn)
        object.__setattr__(self, "_get_id", get_id)

    @property
    def shadow_mode(self) -> bool:
        return self.shadow_path is not None

    def item_id(self, item: Any) -> Hashable:
        return self._get_id(item)


@dataclass(frozen=True)
class ShadowItem:
    """A rendered copy of a source item plus its animation lifecycle flags."""

    item: Any
    entering: bool = True
    leaving: bool = False
    generation: int = 0


@dataclass(frozen=True)
class ListChange:
    added: frozenset = frozenset()
    removed: frozenset = frozenset()


@dataclass(frozen=True)
class ShadowChange:
    added_items: tuple = ()
    removed_ids: frozenset = frozenset()


def _ids(watcher: ListWatcher, items: Iterable) -> set:
    return {watcher.item_id(item) for item in items}


def classic_change(watcher: ListWatcher, old_state: Mapping, new_state: Mapping) -> ListChange | None:
    old_ids = _ids(watcher, get_in(old_state, watcher.path) or ())
    new_ids = _ids(watcher, get_in(new_state, watcher.path) or ())
    added = new_ids - old_ids
    removed = old_ids - new_ids
    if added or removed:
        return ListChange(frozenset(added), frozenset(removed))
    return None


def shadow_change(watcher: ListWatcher, state: Mapping) -> ShadowChange | None:
    """Diff the source list against the active shadow items.

    Every source item whose id is active in the shadow is deep-compared
    against the stored copy, so this is linear in the source list on every
    call.
    """
    source = list(get_in(state, watcher.path) or ())
    shadow = get_in(state, watcher.shadow_path) or ()
    active = {watcher.item_id(s.item): s.item for s in shadow if not s.leaving}

    source_ids = _ids(watcher, source)
    added_ids = source_ids - active.keys()
    removed_ids = active.keys() - source_ids
    content_changed = False
    for item in source:
        item_id = watcher.item_id(item)
        if item_id in active and active[item_id] != item:
            content_changed = True
            break
    added_items = tuple(item for item in source if watcher.item_id(item) in added_ids)

    if added_items or removed_ids or content_changed:
        return ShadowChange(added_items, frozenset(removed_ids))
    return None


def get_list_watcher_actions(
    watchers: Iterable[ListWatcher], old_state: Mapping, new_state: Mapping
) -> list[tuple]:
    """Return the actions for every watcher that saw a change."""
    actions = []
    for watcher in watchers:
        if watcher.shadow_mode:
            change = shadow_change(watcher, new_state)
            if change is None:
                continue
            if watcher.on_change is None:
                actions.append((SYNC_SHADOW, watcher, change))
            else:
                actions.append((watcher.on_change, change))
        else:
            change = classic_change(watcher, old_state, new_state)
            if change is not None:
                actions.append((watcher.on_change, change))
    return actions


def apply_shadow_change(state: Mapping, context, watcher: ListWatcher, change: ShadowChange) -> ActionResult:
    """Fold a ShadowChange into the shadow list.

    - removed ids are marked leaving (never deleted here)
    - surviving items get their stored copy refreshed from the source
    - added items are appended with entering=True
    Then schedules clearing of ``entering`` and purging of leaving items.
    """
    generation = context.generation
    shadow = list(get_in(state, watcher.shadow_path) or ())
    source_by_id = {watcher.item_id(item): item for item in get_in(state, watcher.path) or ()}

    updated = []
    leaving_tags: dict[Hashable, int] = {}
    for s in shadow:
        item_id = watcher.item_id(s.item)
        if s.leaving:
            updated.append(s)
        elif item_id in change.removed_ids:
            updated.append(replace(s, leaving=True, generation=generation))
            leaving_tags[item_id] = generation
        elif item_id in source_by_id and source_by_id[item_id] != s.item:
            updated.append(replace(s, item=source_by_id[item_id]))
        else:
            updated.append(s)
    updated.extend(
        ShadowItem(item, entering=True, leaving=False, generation=generation)
        for item in change.added_items
    )

    entering_tags = {watcher.item_id(item): generation for item in change.added_items}
    fxs = []
    if entering_tags:
        fxs.append(fx(DEFER_DISPATCH_FX, [(CLEAR_ENTERING, watcher, entering_tags)], watcher.enter_delay))
    if leaving_tags:
        fxs.append(fx(DEFER_DISPATCH_FX, [(REMOVE_LEAVING, watcher, leaving_tags)], watcher.leave_delay))

    return ActionResult(db=assoc_in(state, watcher.shadow_path, tuple(updated)), fxs=tuple(fxs))


def clear_entering(state: Mapping, watcher: ListWatcher, tags: Mapping[Hashable, int]) -> ActionResult:
    """Flip entering off for items added with the tagged generation.

    An item removed and added again before this fires carries a newer
    generation and keeps entering until its own timer.
    """
    shadow = get_in(state, watcher.shadow_path) or ()

    def due(s: ShadowItem) -> bool:
        return s.entering and tags.get(watcher.item_id(s.item), _NO_TAG) == s.generation

    if not any(due(s) for s in shadow):
        return ActionResult()
    updated = tuple(replace(s, entering=False) if due(s) else s for s in shadow)
    return ActionResult(db=assoc_in(state, watcher.shadow_path, updated))


def remove_leaving(state: Mapping, watcher: ListWatcher, tags: Mapping[Hashable, int]) -> ActionResult:
    """Purge shadow items that are still leaving with the generation they were tagged with.

    Timers cannot be cancelled, so an item that was re-added (or removed
    again later) in the meantime has a different generation and stays.
    """
    shadow = get_in(state, watcher.shadow_path) or ()

    def stale(s: ShadowItem) -> bool:
        return s.leaving and tags.get(watcher.item_id(s.item), _NO_TAG) == s.generation

    kept = tuple(s for s in shadow if not stale(s))
    if len(kept) == len(shadow):
        return ActionResult()
    return ActionResult(db=assoc_in(state, watcher.shadow_path, kept))

