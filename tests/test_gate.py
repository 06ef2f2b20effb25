"""
Tests for the monitoring loop's cancellation gate.
"""

import asyncio

import pytest

from roundup_trader.gate import CancellationGate, TradeStatus
from roundup_trader.utils import AlreadyRunningError, NotRunningError


class TestCancellationGate:
    """Tests for the single-slot stop signal."""

    def test_trigger_resolves_handle(self):
        async def scenario():
            gate = CancellationGate()
            handle = gate.start()
            assert gate.is_running
            assert not handle.done()

            assert gate.trigger() is TradeStatus.OK
            assert handle.done()
            assert await handle is TradeStatus.OK
            assert not gate.is_running

        asyncio.run(scenario())

    def test_trigger_when_idle(self):
        gate = CancellationGate()
        with pytest.raises(NotRunningError):
            gate.trigger()

    def test_second_trigger_fails(self):
        async def scenario():
            gate = CancellationGate()
            gate.start()
            gate.trigger()
            with pytest.raises(NotRunningError):
                gate.trigger()

        asyncio.run(scenario())

    def test_start_twice(self):
        async def scenario():
            gate = CancellationGate()
            gate.start()
            with pytest.raises(AlreadyRunningError):
                gate.start()

        asyncio.run(scenario())

    def test_stale_handle_cannot_stop_new_run(self):
        async def scenario():
            gate = CancellationGate()
            old = gate.start()
            gate.trigger(old)

            new = gate.start()
            with pytest.raises(NotRunningError):
                gate.trigger(old)
            assert not new.done()
            assert gate.trigger(new) is TradeStatus.OK

        asyncio.run(scenario())

    def test_discard_clears_without_resolving(self):
        async def scenario():
            gate = CancellationGate()
            handle = gate.start()
            gate.discard(handle)
            assert not gate.is_running
            assert not handle.done()

            # A fresh run can start afterwards
            gate.start()

        asyncio.run(scenario())

    def test_discard_ignores_other_handle(self):
        async def scenario():
            gate = CancellationGate()
            old = gate.start()
            gate.trigger()
            gate.start()
            gate.discard(old)
            assert gate.is_running

        asyncio.run(scenario())

    def test_start_needs_running_loop(self):
        with pytest.raises(RuntimeError):
            CancellationGate().start()
