"""Tests for CancelToken and ChangeSignal."""

import asyncio
import threading

import pytest

from pulse_core.cancel import CancelToken
from pulse_core.change_signal import ChangeSignal
from pulse_core.errors import WatcherError


class TestCancelToken:
    """Tests for CancelToken."""

    def test_cancel_is_idempotent(self):
        token = CancelToken()
        assert token.cancelled is False

        token.cancel()
        token.cancel()

        assert token.cancelled is True

    def test_parent_cancels_children(self):
        parent = CancelToken()
        child = parent.child()
        grandchild = child.child()

        parent.cancel()

        assert child.cancelled
        assert grandchild.cancelled

    def test_child_does_not_cancel_parent(self):
        parent = CancelToken()
        child = parent.child()

        child.cancel()

        assert child.cancelled
        assert not parent.cancelled
        assert parent._children == []

    def test_child_of_cancelled_parent_is_cancelled(self):
        parent = CancelToken()
        parent.cancel()

        assert parent.child().cancelled

    @pytest.mark.asyncio
    async def test_wait_returns_on_cancel(self):
        token = CancelToken()
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        token.cancel()
        await asyncio.wait_for(waiter, 1.0)


class TestChangeSignal:
    """Tests for ChangeSignal."""

    @pytest.mark.asyncio
    async def test_pending_pulses_coalesce(self):
        signal = ChangeSignal(asyncio.get_running_loop())
        signal.fire()
        signal.fire()
        signal.fire()

        assert await asyncio.wait_for(signal.wait(), 1.0) is True
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(signal.wait(), 0.1)

    @pytest.mark.asyncio
    async def test_fire_from_other_thread(self):
        signal = ChangeSignal(asyncio.get_running_loop())
        thread = threading.Thread(target=signal.fire)
        thread.start()
        thread.join()

        assert await asyncio.wait_for(signal.wait(), 1.0) is True

    @pytest.mark.asyncio
    async def test_close_wakes_waiter(self):
        signal = ChangeSignal(asyncio.get_running_loop())
        waiter = asyncio.create_task(signal.wait())
        await asyncio.sleep(0)

        signal.close()

        assert await asyncio.wait_for(waiter, 1.0) is False
        assert signal.closed
        assert signal.error is None

    @pytest.mark.asyncio
    async def test_close_records_error_and_stays_closed(self):
        signal = ChangeSignal(asyncio.get_running_loop())
        error = WatcherError("inotify limit reached")

        signal.close(error)
        signal.fire()

        assert await signal.wait() is False
        assert await signal.wait() is False
        assert signal.error is error
