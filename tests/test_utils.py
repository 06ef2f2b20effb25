"""
Tests for address ordering, formatting and log sanitizing.

Run with: pytest tests/ -v
"""

import logging

import pytest

from roundup_trader.utils import (
    SecureLogger,
    sort_addresses,
    validate_address,
    format_address,
    format_units,
    mask_sensitive,
)


LOW = "0x0000000000000000000000000000000000000001"
HIGH = "0x0000000000000000000000000000000000000002"
WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"


class TestSortAddresses:
    """Tests for canonical token ordering."""

    def test_already_ordered(self):
        assert sort_addresses(LOW, HIGH) == (LOW, HIGH)

    def test_reversed_input(self):
        assert sort_addresses(HIGH, LOW) == (LOW, HIGH)

    def test_order_independent(self):
        """Both argument orders give the same pair."""
        assert sort_addresses(WETH, USDC) == sort_addresses(USDC, WETH)
        assert sort_addresses(WETH, USDC) == (USDC, WETH)

    def test_idempotent(self):
        once = sort_addresses(WETH, USDC)
        assert sort_addresses(*once) == once

    def test_equal_values_keep_input_order(self):
        """Same address in different case compares equal numerically."""
        lower = WETH.lower()
        assert sort_addresses(WETH, lower) == (WETH, lower)
        assert sort_addresses(lower, WETH) == (lower, WETH)

    def test_compares_numerically_not_lexically(self):
        """Upper-case hex digits must not sort before lower-case ones."""
        a = "0x00000000000000000000000000000000000000aa"
        b = "0x00000000000000000000000000000000000000BB"
        assert sort_addresses(b, a) == (a, b)

    def test_bytes_addresses(self):
        low = bytes.fromhex(LOW[2:])
        high = bytes.fromhex(HIGH[2:])
        assert sort_addresses(high, low) == (low, high)


class TestValidateAddress:
    def test_valid(self):
        assert validate_address(WETH)
        assert validate_address(WETH.lower())

    def test_invalid(self):
        assert not validate_address("")
        assert not validate_address(None)
        assert not validate_address("0x1234")
        assert not validate_address("not an address")


class TestFormatting:
    """Tests for display helpers."""

    def test_format_address(self):
        assert format_address(WETH) == "0xC02aaA...756Cc2"
        assert format_address("0x1234") == "0x1234"

    def test_format_units(self):
        assert format_units(0) == "0"
        assert format_units(10 ** 18) == "1.0000"
        assert format_units(5 * 10 ** 17) == "0.500000"
        assert format_units(1_500_000 * 10 ** 6, decimals=6) == "1,500,000.00"

    def test_mask_sensitive(self):
        assert mask_sensitive("abcdefghijkl") == "abcd***ijkl"
        assert mask_sensitive("short") == "*****"


class TestSecureLogger:
    """Tests that key material never reaches a log record."""

    @pytest.fixture
    def capture(self):
        records = []

        class ListHandler(logging.Handler):
            def emit(self, record):
                records.append(record.getMessage())

        base = logging.getLogger("roundup_trader.test_secure")
        base.setLevel(logging.DEBUG)
        base.propagate = False
        handler = ListHandler()
        base.addHandler(handler)
        yield SecureLogger(base), records
        base.removeHandler(handler)

    def test_private_key_redacted(self, capture):
        secure, records = capture
        secure.info("key is 0x" + "ab" * 32)
        assert records == ["key is [PRIVATE_KEY_REDACTED]"]

    def test_key_and_chain_code_redacted(self, capture):
        secure, records = capture
        secure.error("material 0x" + "cd" * 64)
        assert records == ["material [KEY_MATERIAL_REDACTED]"]

    def test_mnemonic_redacted(self, capture):
        secure, records = capture
        secure.warning("mnemonic='test test test junk'")
        assert "test test" not in records[0]
        assert "mnemonic=[REDACTED]" in records[0]

    def test_address_not_redacted(self, capture):
        secure, records = capture
        secure.debug(f"signer {WETH}")
        assert records == [f"signer {WETH}"]
