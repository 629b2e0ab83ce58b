"""Textual integration for uniflow. Opt-in — requires textual.

Renders from committed state into Textual widgets. Guards, NoMatches
handling and thread marshaling live here so render callbacks stay plain.
Pause state is owned by this module and keyed by id(app); an id is present
exactly while its app is inside a pause() block.
"""

import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

_paused_apps: set[int] = set()


def _store_of(source):
    """Accept a Dispatcher or a StateStore."""
    return getattr(source, "store", source)


@contextmanager
def pause(app):
    """Suspend guarded observers during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def _guard(app, fn):
    main = threading.get_ident()

    def _safe(*args):
        try:
            fn(*args)
        except NoMatches:
            pass

    def _guarded(*args):
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(_safe, *args)
        else:
            _safe(*args)

    return _guarded


def reaction(app, source, data_fn, effect_fn, *, fire_immediately=False):
    """StateStore.react() that safely bridges to Textual widgets.

    Usage:
        stx.reaction(app, dispatcher, lambda s: s.get("ui/scripts-shadow"), render_scripts)
    """
    return _store_of(source).react(data_fn, _guard(app, effect_fn), fire_immediately=fire_immediately)


def autorun(app, source, fn):
    """StateStore.autorun() that safely bridges to Textual widgets."""
    return _store_of(source).autorun(_guard(app, fn))
