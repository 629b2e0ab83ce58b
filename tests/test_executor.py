"""Tests for the effect executor: ordering, result threading, failure policy."""

import asyncio
import logging

import pytest

from uniflow import PREV_RESULT, UNHANDLED, await_fx, execute_effects, fx


class _FakeDispatch:
    def __init__(self):
        self.dispatched = []
        self.deferred = []

    def __call__(self, actions):
        self.dispatched.append(actions)

    def later(self, delay, actions):
        self.deferred.append((delay, actions))


class _Recorder:
    """Effect handler that records calls and returns per-kind results."""

    def __init__(self, results=None, raises=None):
        self.calls = []
        self.results = results or {}
        self.raises = raises or {}

    def __call__(self, dispatch, effect):
        kind, *args = effect
        if not kind.startswith("t/"):
            return UNHANDLED
        self.calls.append((kind, *args))
        if kind in self.raises:
            raise self.raises[kind]
        result = self.results.get(kind)
        return result(*args) if callable(result) else result


async def _resolved(value):
    await asyncio.sleep(0)
    return value


async def _rejected(error):
    await asyncio.sleep(0)
    raise error


class TestOrdering:
    @pytest.mark.asyncio
    async def test_runs_in_order(self):
        handler = _Recorder(results={
            "t/b": lambda *a: _resolved("B"),
            "t/d": lambda *a: _resolved("D"),
        })
        await execute_effects(
            _FakeDispatch(), handler,
            [fx("t/a"), await_fx("t/b"), fx("t/c", PREV_RESULT), await_fx("t/d")],
        )
        assert [c[0] for c in handler.calls] == ["t/a", "t/b", "t/c", "t/d"]

    @pytest.mark.asyncio
    async def test_later_effect_does_not_see_future_result(self):
        handler = _Recorder(results={
            "t/b": lambda *a: _resolved("B"),
            "t/d": lambda *a: _resolved("D"),
        })
        await execute_effects(
            _FakeDispatch(), handler,
            [fx("t/a"), await_fx("t/b"), fx("t/c", PREV_RESULT), await_fx("t/d")],
        )
        assert ("t/c", "B") in handler.calls

    @pytest.mark.asyncio
    async def test_empty_returns_none(self):
        assert await execute_effects(_FakeDispatch(), _Recorder(), []) is None


class TestResultThreading:
    @pytest.mark.asyncio
    async def test_prev_result_is_exactly_last_awaited(self):
        handler = _Recorder(results={
            "t/a": "A",
            "t/b": lambda *a: _resolved({"from": "B"}),
            "t/c": "C",
        })
        await execute_effects(
            _FakeDispatch(), handler,
            [fx("t/a"), await_fx("t/b"), fx("t/c"), fx("t/use", PREV_RESULT)],
        )
        assert handler.calls[-1] == ("t/use", {"from": "B"})

    @pytest.mark.asyncio
    async def test_before_any_await_prev_result_is_none(self):
        handler = _Recorder()
        await execute_effects(_FakeDispatch(), handler, [fx("t/use", PREV_RESULT)])
        assert handler.calls == [("t/use", None)]

    @pytest.mark.asyncio
    async def test_chained_awaits(self):
        handler = _Recorder(results={
            "t/fetch": lambda *a: _resolved(10),
            "t/double": lambda n: _resolved(n * 2),
        })
        result = await execute_effects(
            _FakeDispatch(), handler,
            [await_fx("t/fetch"), await_fx("t/double", PREV_RESULT), fx("t/noise")],
        )
        assert result == 20

    @pytest.mark.asyncio
    async def test_sync_result_can_be_awaited_effect(self):
        handler = _Recorder(results={"t/now": 5})
        assert await execute_effects(_FakeDispatch(), handler, [await_fx("t/now")]) == 5


class TestFailurePolicy:
    @pytest.mark.asyncio
    async def test_fire_failure_is_swallowed(self, caplog):
        handler = _Recorder(raises={"t/bad": RuntimeError("boom")})
        with caplog.at_level(logging.ERROR, logger="uniflow.executor"):
            await execute_effects(_FakeDispatch(), handler, [fx("t/bad", 1), fx("t/next")])
        assert [c[0] for c in handler.calls] == ["t/bad", "t/next"]
        assert "t/bad" in caplog.text
        assert "boom" in caplog.text

    @pytest.mark.asyncio
    async def test_fire_failure_keeps_prev_result(self):
        handler = _Recorder(
            results={"t/a": lambda *a: _resolved("A")},
            raises={"t/bad": RuntimeError("boom")},
        )
        result = await execute_effects(
            _FakeDispatch(), handler,
            [await_fx("t/a"), fx("t/bad"), fx("t/use", PREV_RESULT)],
        )
        assert handler.calls[-1] == ("t/use", "A")
        assert result == "A"

    @pytest.mark.asyncio
    async def test_await_rejection_aborts_remaining(self):
        handler = _Recorder(results={"t/b": lambda *a: _rejected(ValueError("nope"))})
        with pytest.raises(ValueError, match="nope"):
            await execute_effects(
                _FakeDispatch(), handler, [fx("t/a"), await_fx("t/b"), fx("t/c")]
            )
        assert [c[0] for c in handler.calls] == ["t/a", "t/b"]

    @pytest.mark.asyncio
    async def test_await_sync_raise_aborts_remaining(self):
        handler = _Recorder(raises={"t/b": KeyError("k")})
        with pytest.raises(KeyError):
            await execute_effects(_FakeDispatch(), handler, [await_fx("t/b"), fx("t/c")])
        assert [c[0] for c in handler.calls] == ["t/b"]

    @pytest.mark.asyncio
    async def test_fire_awaitable_is_spawned_not_awaited(self):
        handler = _Recorder(results={"t/bg": lambda *a: _rejected(RuntimeError("late"))})
        spawned = []

        def spawn(awaitable, effect):
            task = asyncio.ensure_future(awaitable)
            spawned.append(task)
            return task

        await execute_effects(_FakeDispatch(), handler, [fx("t/bg"), fx("t/next")], spawn=spawn)
        assert [c[0] for c in handler.calls] == ["t/bg", "t/next"]
        with pytest.raises(RuntimeError):
            await spawned[0]

    @pytest.mark.asyncio
    async def test_default_spawn_logs_background_failure(self, caplog):
        handler = _Recorder(results={"t/bg": lambda *a: _rejected(RuntimeError("late"))})
        with caplog.at_level(logging.ERROR, logger="uniflow.executor"):
            await execute_effects(_FakeDispatch(), handler, [fx("t/bg")])
            for _ in range(5):
                await asyncio.sleep(0)
        assert "late" in caplog.text


class TestFallback:
    @pytest.mark.asyncio
    async def test_generic_dispatch_effect(self):
        dispatch = _FakeDispatch()
        await execute_effects(dispatch, _Recorder(), [fx("uf/fx.dispatch", [("a/ax",)])])
        assert dispatch.dispatched == [[("a/ax",)]]

    @pytest.mark.asyncio
    async def test_generic_defer_dispatch_effect(self):
        dispatch = _FakeDispatch()
        await execute_effects(dispatch, _Recorder(), [fx("uf/fx.defer-dispatch", [("a/ax",)], 0.5)])
        assert dispatch.deferred == [(0.5, [("a/ax",)])]

    @pytest.mark.asyncio
    async def test_generic_log_effect(self, caplog):
        with caplog.at_level(logging.INFO, logger="uniflow"):
            await execute_effects(_FakeDispatch(), _Recorder(), [fx("log/fx.log", "info", "Popup", "hi")])
        assert "[Popup] hi" in caplog.text

    @pytest.mark.asyncio
    async def test_unknown_effect_warns_and_continues(self, caplog):
        handler = _Recorder()
        with caplog.at_level(logging.WARNING, logger="uniflow.executor"):
            result = await execute_effects(
                _FakeDispatch(), handler, [await_fx("x/fx.unknown"), fx("t/next", PREV_RESULT)]
            )
        assert "Unhandled effect" in caplog.text
        assert handler.calls == [("t/next", None)]
        assert result is None

    @pytest.mark.asyncio
    async def test_module_handler_wins(self):
        calls = []

        def handler(dispatch, effect):
            calls.append(effect.kind)
            return "mine"

        result = await execute_effects(_FakeDispatch(), handler, [await_fx("log/fx.log", "info", "X")])
        assert calls == ["log/fx.log"]
        assert result == "mine"
