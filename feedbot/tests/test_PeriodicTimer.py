"""Unit tests for PeriodicTimer."""

import asyncio

import pytest

from feedbot.src.PeriodicTimer import PeriodicTimer


class TestPeriodicTimer:
    """Test PeriodicTimer scheduling and cancellation."""

    def test_invalid_period(self) -> None:
        """Period must be positive."""
        with pytest.raises(ValueError, match="period must be positive"):
            PeriodicTimer(0, lambda: asyncio.sleep(0))

    @pytest.mark.asyncio
    async def test_ticks_until_cancelled(self) -> None:
        """Callback runs repeatedly and stops after cancel()."""
        calls = []

        async def tick() -> None:
            calls.append(1)

        timer = PeriodicTimer(0.01, tick)
        timer.start()
        await asyncio.sleep(0.055)
        await timer.cancel()

        assert not timer.running
        assert len(calls) >= 3
        count = len(calls)
        await asyncio.sleep(0.03)
        assert len(calls) == count
        assert timer.ticks == count

    @pytest.mark.asyncio
    async def test_first_tick_is_immediate(self) -> None:
        """The first tick does not wait a full period."""
        ticked = asyncio.Event()

        async def tick() -> None:
            ticked.set()

        timer = PeriodicTimer(60, tick)
        timer.start()
        await asyncio.wait_for(ticked.wait(), timeout=1)
        await timer.cancel()

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_stop_timer(self) -> None:
        """A failing tick is logged and the timer keeps going."""
        calls = []

        async def tick() -> None:
            calls.append(1)
            raise RuntimeError("tick failed")

        timer = PeriodicTimer(0.01, tick)
        timer.start()
        await asyncio.sleep(0.035)
        assert timer.running
        await timer.cancel()

        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_start_twice_rejected(self) -> None:
        """A running timer cannot be started again."""
        timer = PeriodicTimer(60, lambda: asyncio.sleep(0))
        timer.start()
        try:
            with pytest.raises(RuntimeError, match="already running"):
                timer.start()
        finally:
            await timer.cancel()

    @pytest.mark.asyncio
    async def test_cancel_before_start(self) -> None:
        """Cancelling an unstarted timer is a no-op."""
        timer = PeriodicTimer(1, lambda: asyncio.sleep(0))
        await timer.cancel()
        assert timer.ticks == 0

    @pytest.mark.asyncio
    async def test_cancelled_waiter_propagates(self) -> None:
        """Cancelling a task blocked in wait() cancels that task only."""
        timer = PeriodicTimer(60, lambda: asyncio.sleep(0))
        timer.start()
        waiter = asyncio.create_task(timer.wait())
        await asyncio.sleep(0)
        waiter.cancel()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert timer.running
        await timer.cancel()
