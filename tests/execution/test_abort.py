"""Tests for AbortSignal, AbortManager and ProxyAbortManager."""

import asyncio
import math
from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from corekit.core.errors import AbortError, DuplicateAbortIdError
from corekit.core.settings import CorekitSettings
from corekit.execution.abort import (
    AbortConfig,
    AbortController,
    AbortManager,
    AbortSignal,
    ProxyAbortManager,
    is_valid_timeout,
)


class TestAbortSignal:
    """Tests for the cancellation token."""

    def test_starts_live(self):
        signal = AbortSignal()
        assert not signal.aborted
        assert signal.reason is None
        signal.throw_if_aborted()

    def test_controller_aborts_with_default_reason(self):
        controller = AbortController()
        controller.abort()
        assert controller.signal.aborted
        assert isinstance(controller.signal.reason, AbortError)

    def test_abort_is_one_way(self):
        controller = AbortController()
        controller.abort("first")
        controller.abort("second")
        assert controller.signal.reason == "first"

    def test_listeners_called_once_with_reason(self):
        controller = AbortController()
        listener = MagicMock()
        controller.signal.add_listener(listener)

        controller.abort("why")
        controller.abort("again")

        listener.assert_called_once_with("why")
        assert controller.signal.listener_count == 0

    def test_removed_listener_not_called(self):
        controller = AbortController()
        listener = MagicMock()
        controller.signal.add_listener(listener)
        controller.signal.remove_listener(listener)
        controller.signal.remove_listener(listener)

        controller.abort()

        listener.assert_not_called()

    def test_failing_listener_does_not_block_others(self):
        controller = AbortController()
        second = MagicMock()
        controller.signal.add_listener(MagicMock(side_effect=RuntimeError("bad listener")))
        controller.signal.add_listener(second)

        controller.abort()

        second.assert_called_once()

    def test_throw_if_aborted_raises_reason(self):
        controller = AbortController()
        reason = AbortError("stop", "op-1")
        controller.abort(reason)
        with pytest.raises(AbortError) as exc_info:
            controller.signal.throw_if_aborted()
        assert exc_info.value is reason

    @pytest.mark.asyncio
    async def test_wait(self):
        controller = AbortController()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, controller.abort, "done")

        assert await asyncio.wait_for(controller.signal.wait(), 1) == "done"
        assert controller.signal.listener_count == 0


class TestIsValidTimeout:
    """Tests for deadline validation."""

    @pytest.mark.parametrize("value", [1, 0.5, 5000])
    def test_valid(self, value):
        assert is_valid_timeout(value)

    @pytest.mark.parametrize("value", [None, 0, -1, math.nan, math.inf, True, "100"])
    def test_invalid(self, value):
        assert not is_valid_timeout(value)


class TestAbortManager:
    """Tests for the base registration table."""

    def test_generated_ids_are_pool_prefixed(self):
        manager = AbortManager("requests")
        first = manager.register()
        second = manager.register({})
        assert first.abort_id == "requests-1"
        assert second.abort_id == "requests-2"

    def test_generated_id_written_back_to_config(self):
        manager = AbortManager("pool")
        config = {}
        handle = manager.register(config)
        assert config["abort_id"] == handle.abort_id
        assert manager.abort(config) is True

    def test_duplicate_id_rejected(self):
        """The error names both the pool and the id."""
        manager = AbortManager("requests")
        manager.register({"abort_id": "user-1"})

        with pytest.raises(DuplicateAbortIdError) as exc_info:
            manager.register({"abort_id": "user-1"})

        message = str(exc_info.value)
        assert "requests" in message
        assert "user-1" in message
        assert isinstance(exc_info.value, ValueError)

    def test_id_reusable_after_cleanup_or_abort(self):
        manager = AbortManager()
        manager.register({"abort_id": "op"})
        manager.cleanup("op")
        manager.register({"abort_id": "op"})
        manager.abort("op")
        manager.register({"abort_id": "op"})
        assert len(manager) == 1

    def test_abort_fires_callback_once(self):
        on_aborted = MagicMock()
        manager = AbortManager()
        config = AbortConfig(abort_id="op", on_aborted=on_aborted)
        _, signal = manager.register(config)

        assert manager.abort("op") is True
        assert manager.abort("op") is False

        on_aborted.assert_called_once_with(config)
        assert signal.aborted
        assert isinstance(signal.reason, AbortError)
        assert signal.reason.abort_id == "op"
        assert str(signal.reason) == "The operation was aborted"

    def test_abort_unknown_returns_false(self):
        assert AbortManager().abort("missing") is False
        assert AbortManager().abort({}) is False

    def test_callback_failure_does_not_break_bookkeeping(self):
        manager = AbortManager()
        manager.register({"abort_id": "op", "on_aborted": MagicMock(side_effect=RuntimeError("cb"))})

        with capture_logs() as logs:
            assert manager.abort("op") is True

        assert len(manager) == 0
        assert any(log["event"] == "abort.callback_failed" for log in logs)

    def test_cleanup_is_idempotent_and_silent(self):
        on_aborted = MagicMock()
        manager = AbortManager()
        _, signal = manager.register({"abort_id": "op", "on_aborted": on_aborted})

        manager.cleanup("op")
        manager.cleanup("op")
        manager.cleanup("never-registered")

        assert not signal.aborted
        on_aborted.assert_not_called()
        assert len(manager) == 0

    def test_abort_all_skips_callbacks(self):
        callback = MagicMock()
        manager = AbortManager()
        signals = [
            manager.register({"abort_id": f"op-{n}", "on_aborted": callback}).signal for n in range(3)
        ]

        manager.abort_all()
        manager.abort_all()

        assert all(s.aborted for s in signals)
        callback.assert_not_called()
        assert len(manager) == 0

    def test_get_signal(self):
        manager = AbortManager()
        handle = manager.register({"abort_id": "op"})
        assert manager.get_signal("op") is handle.signal
        manager.cleanup("op")
        assert manager.get_signal("op") is None

    @pytest.mark.asyncio
    async def test_auto_cleanup(self):
        manager = AbortManager()

        async def work(handle):
            assert handle.abort_id in manager
            return "result"

        assert await manager.auto_cleanup(work) == "result"
        assert len(manager) == 0

    @pytest.mark.asyncio
    async def test_auto_cleanup_on_failure(self):
        manager = AbortManager()

        async def work(handle):
            raise ValueError("failed")

        with pytest.raises(ValueError):
            await manager.auto_cleanup(work)
        assert len(manager) == 0


class TestProxyTimeout:
    """Tests for deadline-only registrations."""

    @pytest.mark.asyncio
    async def test_timeout_aborts_and_fires_callback_once(self):
        on_timeout = MagicMock()
        on_aborted = MagicMock()
        manager = ProxyAbortManager()
        handle = manager.register(
            {"abort_timeout": 50, "on_aborted_timeout": on_timeout, "on_aborted": on_aborted}
        )

        await asyncio.sleep(0.02)
        assert not handle.signal.aborted
        on_timeout.assert_not_called()

        await asyncio.sleep(0.08)
        assert handle.signal.aborted
        assert isinstance(handle.signal.reason, AbortError)
        assert handle.signal.reason.timeout == 50
        on_timeout.assert_called_once()
        on_aborted.assert_not_called()
        assert len(manager) == 0
        assert manager.pending_timers == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeout", [0, -10, math.nan, None])
    async def test_invalid_timeout_creates_no_timer(self, timeout):
        manager = ProxyAbortManager()
        handle = manager.register({"abort_timeout": timeout})

        assert manager.pending_timers == 0
        assert not handle.signal.aborted
        manager.cleanup(handle.abort_id)

    @pytest.mark.asyncio
    async def test_manual_abort_cancels_timer(self):
        on_timeout = MagicMock()
        manager = ProxyAbortManager()
        handle = manager.register({"abort_timeout": 20, "on_aborted_timeout": on_timeout})

        assert manager.abort(handle.abort_id) is True
        await asyncio.sleep(0.05)

        on_timeout.assert_not_called()
        assert manager.pending_timers == 0

    @pytest.mark.asyncio
    async def test_timeout_callback_failure_still_cleans_up(self):
        manager = ProxyAbortManager()
        handle = manager.register(
            {"abort_timeout": 10, "on_aborted_timeout": MagicMock(side_effect=RuntimeError("cb"))}
        )

        await asyncio.sleep(0.05)

        assert handle.signal.aborted
        assert len(manager) == 0
        assert manager.pending_timers == 0

    @pytest.mark.asyncio
    async def test_default_timeout_applies(self):
        manager = ProxyAbortManager(default_timeout=10)
        handle = manager.register({})
        assert manager.pending_timers == 1

        await asyncio.sleep(0.05)

        assert handle.signal.aborted


class TestProxyExternalSignal:
    """Tests for composition with an externally owned signal."""

    @pytest.mark.asyncio
    async def test_external_abort_mirrors_reason_without_callbacks(self):
        external = AbortController()
        on_aborted = MagicMock()
        on_timeout = MagicMock()
        manager = ProxyAbortManager()
        handle = manager.register(
            {"signal": external.signal, "on_aborted": on_aborted, "on_aborted_timeout": on_timeout}
        )

        external.abort("upstream cancelled")

        assert handle.signal.aborted
        assert handle.signal.reason == "upstream cancelled"
        on_aborted.assert_not_called()
        on_timeout.assert_not_called()
        assert len(manager) == 0
        assert external.signal.listener_count == 0

    @pytest.mark.asyncio
    async def test_external_signal_is_not_mutated(self):
        external = AbortController()
        manager = ProxyAbortManager()
        handle = manager.register({"signal": external.signal})

        manager.abort(handle.abort_id)

        assert handle.signal.aborted
        assert not external.signal.aborted
        assert external.signal.listener_count == 0

    @pytest.mark.asyncio
    async def test_already_aborted_external_signal(self):
        external = AbortController()
        external.abort("too late")
        manager = ProxyAbortManager()

        handle = manager.register({"abort_id": "op", "signal": external.signal, "abort_timeout": 1000})

        assert handle.signal.aborted
        assert handle.signal.reason == "too late"
        assert len(manager) == 0
        assert manager.pending_timers == 0
        manager.register({"abort_id": "op"})

    @pytest.mark.asyncio
    async def test_external_wins_race(self):
        """External abort at 20ms beats a 100ms deadline; no timeout callback."""
        external = AbortController()
        on_timeout = MagicMock()
        manager = ProxyAbortManager()
        handle = manager.register(
            {"abort_timeout": 100, "signal": external.signal, "on_aborted_timeout": on_timeout}
        )
        asyncio.get_running_loop().call_later(0.02, external.abort, "external")

        await asyncio.sleep(0.04)
        assert handle.signal.aborted
        assert handle.signal.reason == "external"
        assert manager.pending_timers == 0

        await asyncio.sleep(0.1)
        on_timeout.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout_wins_race(self):
        external = AbortController()
        on_timeout = MagicMock()
        manager = ProxyAbortManager()
        handle = manager.register(
            {"abort_timeout": 10, "signal": external.signal, "on_aborted_timeout": on_timeout}
        )

        await asyncio.sleep(0.05)
        external.abort("late")

        assert isinstance(handle.signal.reason, AbortError)
        on_timeout.assert_called_once()
        assert external.signal.listener_count == 0


class TestProxyResourceSafety:
    """Stress tests for leak-free bookkeeping."""

    @pytest.mark.asyncio
    async def test_register_cleanup_cycles_leave_nothing(self):
        external = AbortController()
        manager = ProxyAbortManager()

        for n in range(1000):
            config = {"abort_timeout": 5000 if n % 2 else None, "signal": external.signal}
            handle = manager.register(config)
            manager.cleanup(handle.abort_id)

        assert len(manager) == 0
        assert manager.pending_timers == 0
        assert external.signal.listener_count == 0

    @pytest.mark.asyncio
    async def test_register_abort_cycles_leave_nothing(self):
        manager = ProxyAbortManager()

        for _ in range(1000):
            handle = manager.register({"abort_id": "same", "abort_timeout": 5000})
            assert manager.abort(handle.abort_id)

        assert len(manager) == 0
        assert manager.pending_timers == 0

    def test_timeout_outside_event_loop_leaves_id_free(self):
        external = AbortController()
        manager = ProxyAbortManager()

        with pytest.raises(RuntimeError):
            manager.register({"abort_id": "op", "abort_timeout": 1000, "signal": external.signal})

        assert len(manager) == 0
        assert "op" not in manager
        assert manager.pending_timers == 0
        assert external.signal.listener_count == 0

        handle = manager.register({"abort_id": "op"})
        assert handle.abort_id == "op"
        manager.cleanup("op")

    @pytest.mark.asyncio
    async def test_abort_all_releases_timers(self):
        manager = ProxyAbortManager()
        for _ in range(10):
            manager.register({"abort_timeout": 5000})

        manager.abort_all()

        assert len(manager) == 0
        assert manager.pending_timers == 0

    @pytest.mark.asyncio
    async def test_from_settings(self):
        settings = CorekitSettings(abort_pool_name="api", abort_default_timeout_ms=250)
        manager = ProxyAbortManager.from_settings(settings)

        handle = manager.register()

        assert handle.abort_id == "api-1"
        assert manager.default_timeout == 250
        assert manager.pending_timers == 1
        manager.cleanup(handle.abort_id)
