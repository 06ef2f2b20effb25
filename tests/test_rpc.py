"""
Tests for the command router.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from roundup_trader.gate import TradeStatus
from roundup_trader.rpc import CommandRouter, MethodNotFoundError, get_message
from roundup_trader.utils import AlreadyRunningError, NotRunningError, RoundupError


TOKEN_A = "0x0000000000000000000000000000000000000002"
TOKEN_B = "0x0000000000000000000000000000000000000001"


@pytest.fixture
def trader():
    trader = MagicMock()
    trader.host.confirm = AsyncMock(return_value=True)
    trader.execute = AsyncMock(return_value=TradeStatus.OK)
    trader.stop = MagicMock(return_value=TradeStatus.OK)
    trader.get_executed = AsyncMock(return_value=[{"spent": 1}])
    return trader


@pytest.fixture
def router(trader):
    return CommandRouter(trader)


def dispatch(router, method, params=None):
    return asyncio.run(router.dispatch("https://example.org", method, params))


class TestCommandRouter:
    """Tests for request dispatch."""

    def test_methods(self, router):
        assert router.methods == ["execute", "get_executed", "hello", "stop"]

    def test_unknown_method(self, router):
        with pytest.raises(MethodNotFoundError, match="Method not found."):
            dispatch(router, "withdraw")

    def test_unknown_method_is_roundup_error(self):
        assert issubclass(MethodNotFoundError, RoundupError)

    def test_hello(self, router, trader):
        assert dispatch(router, "hello") is True
        kwargs = trader.host.confirm.call_args.kwargs
        assert kwargs["prompt"] == "Hello, https://example.org!"
        assert get_message("x") == "Hello, x!"

    def test_execute(self, router, trader):
        assert dispatch(router, "execute", {"tokenA": TOKEN_A, "tokenB": TOKEN_B}) == "ok"
        trader.execute.assert_awaited_once_with(TOKEN_A, TOKEN_B)

    def test_execute_fail(self, router, trader):
        trader.execute.return_value = TradeStatus.FAIL
        assert dispatch(router, "execute", {"tokenA": TOKEN_A, "tokenB": TOKEN_B}) == "fail"

    def test_execute_while_running(self, router, trader):
        trader.execute.side_effect = AlreadyRunningError("running")
        assert dispatch(router, "execute", {"tokenA": TOKEN_A, "tokenB": TOKEN_B}) == "fail"

    @pytest.mark.parametrize("params", [
        {},
        {"tokenA": TOKEN_A},
        {"tokenA": TOKEN_A, "tokenB": "0x1234"},
    ])
    def test_execute_bad_params(self, router, trader, params):
        with pytest.raises(ValueError):
            dispatch(router, "execute", params)
        trader.execute.assert_not_called()

    def test_stop(self, router):
        assert dispatch(router, "stop") == "ok"

    def test_stop_when_idle(self, router, trader):
        trader.stop.side_effect = NotRunningError("idle")
        assert dispatch(router, "stop") == "fail"

    def test_get_executed(self, router):
        assert dispatch(router, "get_executed") == [{"spent": 1}]

    def test_register_custom_method(self, router):
        async def ping(origin, params):
            return f"pong {origin}"

        router.register("ping", ping)
        assert dispatch(router, "ping") == "pong https://example.org"
