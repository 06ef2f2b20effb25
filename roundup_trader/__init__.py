"""
Round-up Trader for Uniswap V2

Watches a token pair's pool and rounds up part of the token A balance into
token B every time the pool reserves change.

Usage:
    from roundup_trader import RoundupTrader, ConsoleHost, CommandRouter

    # See roundup_trader.cli for the command line entry point
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .config import Config, ConfigManager
from .gate import CancellationGate, StopHandle, TradeStatus
from .host import ConsoleHost, HostRuntime, JsonFileStateStore, MemoryStateStore, StateStore
from .rpc import CommandRouter, MethodNotFoundError
from .trader import RoundupRecord, RoundupTrader, TokenPair
from .utils import (
    logger,
    sort_addresses,
    RoundupError,
    DerivationError,
    AlreadyRunningError,
    NotRunningError,
    TransactionError,
)
from .wallet import CoinTypeNode, Signer, derive_signer

__all__ = [
    "Config",
    "ConfigManager",
    "CancellationGate",
    "StopHandle",
    "TradeStatus",
    "ConsoleHost",
    "HostRuntime",
    "JsonFileStateStore",
    "MemoryStateStore",
    "StateStore",
    "CommandRouter",
    "MethodNotFoundError",
    "RoundupRecord",
    "RoundupTrader",
    "TokenPair",
    "logger",
    "sort_addresses",
    "RoundupError",
    "DerivationError",
    "AlreadyRunningError",
    "NotRunningError",
    "TransactionError",
    "CoinTypeNode",
    "Signer",
    "derive_signer",
]
