"""
Command router: maps request method names to trader operations.

Methods:
    hello         - greeting confirmation for the requesting origin
    execute       - start round-up trading (params: tokenA, tokenB)
    stop          - stop the running monitoring loop
    get_executed  - list executed round-ups
"""

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from .gate import TradeStatus
from .trader import RoundupTrader
from .utils import logger, validate_address, RoundupError, AlreadyRunningError, NotRunningError


Handler = Callable[[str, Mapping[str, Any]], Awaitable[Any]]


class MethodNotFoundError(RoundupError):
    """The requested method is not registered."""
    pass


def get_message(origin: str) -> str:
    return f"Hello, {origin}!"


class CommandRouter:
    """Dispatch table from method name to async handler."""

    def __init__(self, trader: RoundupTrader):
        self.trader = trader
        self._handlers: Dict[str, Handler] = {}

        self.register("hello", self._hello)
        self.register("execute", self._execute)
        self.register("stop", self._stop)
        self.register("get_executed", self._get_executed)

    def register(self, method: str, handler: Handler) -> None:
        self._handlers[method] = handler

    @property
    def methods(self):
        return sorted(self._handlers)

    async def dispatch(self, origin: str, method: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        handler = self._handlers.get(method)
        if handler is None:
            raise MethodNotFoundError("Method not found.")

        logger.debug(f"Dispatching '{method}' from {origin}")
        return await handler(origin, params or {})

    async def _hello(self, origin: str, params: Mapping[str, Any]) -> bool:
        return await self.trader.host.confirm(
            prompt=get_message(origin),
            description="This custom confirmation is just for display purposes.",
            text="But you can edit the trader source code to make it do something, if you want to!",
        )

    async def _execute(self, origin: str, params: Mapping[str, Any]) -> str:
        token_a = params.get("tokenA")
        token_b = params.get("tokenB")
        if not validate_address(token_a) or not validate_address(token_b):
            raise ValueError("execute requires valid 'tokenA' and 'tokenB' addresses")

        try:
            result = await self.trader.execute(token_a, token_b)
        except AlreadyRunningError:
            logger.warning("Execute requested while round-up trading is running")
            return TradeStatus.FAIL.value
        return result.value

    async def _stop(self, origin: str, params: Mapping[str, Any]) -> str:
        try:
            return self.trader.stop().value
        except NotRunningError:
            return TradeStatus.FAIL.value

    async def _get_executed(self, origin: str, params: Mapping[str, Any]) -> list:
        return await self.trader.get_executed()
