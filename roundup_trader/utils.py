"""
Utility Module

Logging, exceptions, address ordering and formatting helpers.

- Console logging through Rich, optional plain file log
- Log messages are sanitized so private keys and seed material never leak
- Canonical ordering of token addresses for pair lookups
"""

import os
import re
import logging
from typing import Tuple, Union

from web3 import Web3
from rich.logging import RichHandler
from rich.console import Console


# Global console for Rich output
console = Console()


AddressLike = Union[str, bytes]


class RoundupError(Exception):
    """Base class for round-up trader errors."""
    pass


class DerivationError(RoundupError):
    """Seed entropy is malformed or derived key material is unusable."""
    pass


class AlreadyRunningError(RoundupError):
    """A monitoring loop is already active on this executor."""
    pass


class NotRunningError(RoundupError):
    """Stop requested while no monitoring loop is active."""
    pass


class TransactionError(RoundupError):
    """Custom exception for transaction failures."""
    pass


class SubscriptionClosedError(RoundupError):
    """The contract event stream ended unexpectedly."""
    pass


class SecureLogger:
    """
    Logger that sanitizes sensitive data from log messages.

    Private keys, chain codes and mnemonic phrases must never reach a log sink.
    """

    # Patterns to redact from logs
    SENSITIVE_PATTERNS = [
        (r'0x[a-fA-F0-9]{128}', '[KEY_MATERIAL_REDACTED]'),  # key || chain code
        (r'0x[a-fA-F0-9]{64}', '[PRIVATE_KEY_REDACTED]'),
        (r'mnemonic["\']?\s*[:=]\s*["\'][^"\']+["\']', 'mnemonic=[REDACTED]'),
        (r'password["\']?\s*[:=]\s*["\'][^"\']+["\']', 'password=[REDACTED]'),
    ]

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def level(self) -> int:
        return self._logger.level

    def _sanitize(self, msg: str) -> str:
        """Remove sensitive data from log message."""
        if not isinstance(msg, str):
            msg = str(msg)

        sanitized = msg
        for pattern, replacement in self.SENSITIVE_PATTERNS:
            sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)
        return sanitized

    def debug(self, msg: str, *args, **kwargs):
        self._logger.debug(self._sanitize(msg), *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._logger.info(self._sanitize(msg), *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._logger.warning(self._sanitize(msg), *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._logger.error(self._sanitize(msg), *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        self._logger.exception(self._sanitize(msg), *args, **kwargs)

    def critical(self, msg: str, *args, **kwargs):
        self._logger.critical(self._sanitize(msg), *args, **kwargs)


def setup_logging(log_level: str = "INFO", log_file: str = "") -> SecureLogger:
    """
    Setup logging with Rich console output and an optional file log.

    Calling it again reconfigures the same underlying logger, so the
    module-level ``logger`` stays valid after the CLI loads its config.
    """
    base = logging.getLogger("roundup_trader")
    base.setLevel(getattr(logging, log_level.upper()))

    # Remove existing handlers
    for handler in list(base.handlers):
        base.removeHandler(handler)
        handler.close()

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True
    )
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    base.addHandler(rich_handler)

    if log_file:
        log_path = os.path.abspath(log_file)
        os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        base.addHandler(file_handler)

    return SecureLogger(base)


# Initialize global secure logger
logger = setup_logging()


# Address utilities

def _address_value(address: AddressLike) -> int:
    if isinstance(address, (bytes, bytearray)):
        return int.from_bytes(address, "big")
    return int(address, 16)


def sort_addresses(token_a: AddressLike, token_b: AddressLike) -> Tuple[AddressLike, AddressLike]:
    """
    Return two addresses in canonical (numeric) order.

    Uniswap V2 pairs are keyed by the numerically lower token first, so this
    keeps pool lookups stable whatever order the caller supplied. Equal
    values come back in their original order.
    """
    if _address_value(token_b) < _address_value(token_a):
        return token_b, token_a
    return token_a, token_b


def validate_address(address: str) -> bool:
    """Validate Ethereum address format (hex, 20 bytes, valid checksum if mixed case)."""
    if not address:
        return False

    try:
        return Web3.is_address(address)
    except (TypeError, ValueError):
        return False


# Formatting utilities

def format_address(address: str, length: int = 6) -> str:
    """Format Ethereum address with ellipsis."""
    if len(address) <= length * 2 + 2:
        return address
    return f"{address[:length + 2]}...{address[-length:]}"


def format_units(amount: int, decimals: int = 18) -> str:
    """Format raw token units to a human-readable string."""
    if amount == 0:
        return "0"

    value = amount / (10 ** decimals)

    if value < 0.0001:
        return f"{value:.8f}"
    elif value < 1:
        return f"{value:.6f}"
    elif value < 1000:
        return f"{value:.4f}"
    else:
        return f"{value:,.2f}"


def mask_sensitive(value: str, visible_chars: int = 4) -> str:
    """Mask sensitive data, showing only first and last few characters."""
    if len(value) <= visible_chars * 2:
        return "*" * len(value)

    return value[:visible_chars] + "***" + value[-visible_chars:]
