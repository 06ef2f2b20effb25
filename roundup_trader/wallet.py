"""
Wallet Module - Deterministic Signer Derivation
===============================================
Derives the trading account from the host wallet's BIP-44 entropy.

The host hands over the coin-type node ``m/44'/60'`` (private key plus chain
code). The trading account is the first address below it,
``m/44'/60'/0'/0/0``, which is the account most wallets show first.

Security:
- Only the eth_account account is kept; no raw key is stored on the signer
- Derived material must be exactly ``key || chain code``; anything else fails
"""

import gc
import hmac
import hashlib
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from eth_account import Account
from eth_account.hdaccount import seed_from_mnemonic
from eth_account.hdaccount.deterministic import HardNode, SoftNode, derive_child_key
from eth_account.signers.local import LocalAccount
from eth_utils import ValidationError

from .utils import DerivationError


PRIVATE_KEY_LENGTH = 32
CHAIN_CODE_LENGTH = 32
ETHEREUM_COIN_TYPE = 60
COIN_TYPE_DEPTH = 2

EntropyLike = Union[Mapping[str, Any], bytes, bytearray]


def _decode_hex(value: Any, field_name: str, length: int) -> bytes:
    if not isinstance(value, str):
        raise DerivationError(f"Entropy field '{field_name}' must be a hex string")

    raw = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        decoded = bytes.fromhex(raw)
    except ValueError:
        raise DerivationError(f"Entropy field '{field_name}' is not valid hex") from None

    if len(decoded) != length:
        raise DerivationError(
            f"Entropy field '{field_name}' must be {length} bytes, got {len(decoded)}"
        )
    return decoded


@dataclass(frozen=True)
class CoinTypeNode:
    """BIP-44 coin-type node (``m/44'/<coin_type>'``) as supplied by the host."""
    private_key: bytes
    chain_code: bytes
    coin_type: int = ETHEREUM_COIN_TYPE
    depth: int = COIN_TYPE_DEPTH

    def __repr__(self) -> str:
        return f"CoinTypeNode(coin_type={self.coin_type}, depth={self.depth})"

    @classmethod
    def from_entropy(cls, entropy: EntropyLike) -> "CoinTypeNode":
        """
        Parse the host entropy object.

        Accepts the host's JSON node form (``privateKey``/``chainCode`` hex,
        optional ``depth``/``coin_type``) or a raw 64-byte ``key || chain code``
        buffer.

        Raises:
            DerivationError: if the object is malformed
        """
        if isinstance(entropy, (bytes, bytearray)):
            if len(entropy) != PRIVATE_KEY_LENGTH + CHAIN_CODE_LENGTH:
                raise DerivationError(
                    f"Entropy buffer must be {PRIVATE_KEY_LENGTH + CHAIN_CODE_LENGTH} bytes, "
                    f"got {len(entropy)}"
                )
            return cls(
                private_key=bytes(entropy[:PRIVATE_KEY_LENGTH]),
                chain_code=bytes(entropy[PRIVATE_KEY_LENGTH:]),
            )

        if not isinstance(entropy, Mapping):
            raise DerivationError(f"Unsupported entropy object: {type(entropy).__name__}")

        for field_name in ("privateKey", "chainCode"):
            if field_name not in entropy:
                raise DerivationError(f"Entropy is missing '{field_name}'")

        depth = entropy.get("depth", COIN_TYPE_DEPTH)
        coin_type = entropy.get("coin_type", ETHEREUM_COIN_TYPE)
        if depth != COIN_TYPE_DEPTH:
            raise DerivationError(f"Entropy must be a coin-type node (depth 2), got depth {depth}")
        if coin_type != ETHEREUM_COIN_TYPE:
            raise DerivationError(f"Entropy is for coin type {coin_type}, expected {ETHEREUM_COIN_TYPE}")

        return cls(
            private_key=_decode_hex(entropy["privateKey"], "privateKey", PRIVATE_KEY_LENGTH),
            chain_code=_decode_hex(entropy["chainCode"], "chainCode", CHAIN_CODE_LENGTH),
            coin_type=coin_type,
            depth=depth,
        )

    def to_entropy(self) -> Dict[str, Any]:
        """Serialize to the host's JSON node form."""
        return {
            "depth": self.depth,
            "coin_type": self.coin_type,
            "privateKey": "0x" + self.private_key.hex(),
            "chainCode": "0x" + self.chain_code.hex(),
            "path": ["m", "bip32:44'", f"bip32:{self.coin_type}'"],
        }

    def derive_address_key(self, index: int = 0) -> bytes:
        """
        Derive ``m/44'/60'/0'/0/<index>`` below this node.

        Returns the combined ``private key || chain code`` buffer, the same
        shape host wallets hand out for derived nodes.
        """
        key, chain_code = self.private_key, self.chain_code
        try:
            for node in (HardNode(0), SoftNode(0), SoftNode(index)):
                key, chain_code = derive_child_key(key, chain_code, node)
        except (ValidationError, AssertionError, ValueError) as e:
            raise DerivationError(f"Cannot derive account {index}: {e}") from e
        return key + chain_code


def coin_type_node_from_seed(seed: bytes, coin_type: int = ETHEREUM_COIN_TYPE) -> CoinTypeNode:
    """Build the ``m/44'/<coin_type>'`` node from a BIP-39 seed."""
    if len(seed) < 16:
        raise DerivationError(f"Seed must be at least 16 bytes, got {len(seed)}")

    master = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
    key, chain_code = master[:PRIVATE_KEY_LENGTH], master[PRIVATE_KEY_LENGTH:]
    for node in (HardNode(44), HardNode(coin_type)):
        key, chain_code = derive_child_key(key, chain_code, node)

    return CoinTypeNode(private_key=key, chain_code=chain_code, coin_type=coin_type)


def coin_type_node_from_mnemonic(mnemonic: str, passphrase: str = "") -> CoinTypeNode:
    """Build the Ethereum coin-type node from a BIP-39 seed phrase."""
    try:
        seed = seed_from_mnemonic(mnemonic, passphrase)
    except ValidationError as e:
        raise DerivationError(f"Invalid seed phrase: {e}") from e
    return coin_type_node_from_seed(seed)


def signing_key_from_material(material: bytes) -> bytes:
    """
    Extract the private key from derived key material.

    Derived material is ``key || chain code``. Signing libraries happily accept
    the oversized buffer and produce a wrong, working key, so the length is
    checked explicitly instead of slicing blindly.
    """
    if len(material) == PRIVATE_KEY_LENGTH + CHAIN_CODE_LENGTH:
        return bytes(material[:PRIVATE_KEY_LENGTH])
    if len(material) == PRIVATE_KEY_LENGTH:
        return bytes(material)
    raise DerivationError(
        f"Derived key material must be {PRIVATE_KEY_LENGTH} or "
        f"{PRIVATE_KEY_LENGTH + CHAIN_CODE_LENGTH} bytes, got {len(material)}"
    )


class Signer:
    """
    Credential used to sign transactions for one execution.

    The private key is not kept on the object; only the eth_account account.
    Leaving the ``with`` block discards the account.

    Usage:
        with derive_signer(entropy) as signer:
            signed = signer.sign_transaction(tx)
    """

    def __init__(self, account: LocalAccount):
        self._account: Optional[LocalAccount] = account
        self._address = account.address

    @property
    def address(self) -> str:
        return self._address

    @property
    def active(self) -> bool:
        return self._account is not None

    def sign_transaction(self, transaction_dict: dict):
        """Sign a transaction with the derived key."""
        if self._account is None:
            raise RuntimeError("Signer has been discarded")
        return self._account.sign_transaction(transaction_dict)

    def discard(self) -> None:
        self._account = None
        gc.collect()

    def __enter__(self) -> "Signer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.discard()
        return False

    def __repr__(self) -> str:
        return f"Signer(address={self._address})"


def derive_signer(entropy: EntropyLike, index: int = 0) -> Signer:
    """
    Derive the signer at ``index`` from host entropy.

    Raises:
        DerivationError: on malformed entropy or unexpected key material
    """
    node = CoinTypeNode.from_entropy(entropy)
    material = node.derive_address_key(index)
    return Signer(Account.from_key(signing_key_from_material(material)))
