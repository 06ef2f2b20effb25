"""
Configuration Management Module

Handles storage of trader configuration with an encrypted seed phrase.
Uses Fernet symmetric encryption with password-derived keys.
"""

import os
import base64
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict

import yaml
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .utils import logger


# Uniswap V2 deployment (same addresses on every network it was deployed to)
UNISWAP_V2_FACTORY = "0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f"
UNISWAP_V2_ROUTER = "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D"


@dataclass
class Config:
    """Round-up trader configuration settings."""

    # Network
    rpc_url: str = "http://127.0.0.1:8545"
    required_network: str = "rinkeby"

    # Uniswap V2 contracts
    factory_address: str = UNISWAP_V2_FACTORY
    router_address: str = UNISWAP_V2_ROUTER

    # Trading settings
    swap_deadline_seconds: int = 300
    amount_out_min: int = 1
    roundup_enabled: bool = True

    # Timeouts
    poll_interval_seconds: float = 2.0
    confirmation_timeout_seconds: float = 120.0
    rpc_timeout_seconds: float = 30.0
    connect_retries: int = 3

    # Operation
    state_file: str = "./roundup_state.json"
    log_level: str = "INFO"
    log_file: str = "./roundup.log"

    # Security
    encrypted_mnemonic: Optional[str] = None
    salt: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        # Filter only valid fields
        valid_fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**valid_fields)


class ConfigManager:
    """Manages configuration file with an encrypted seed phrase."""

    def __init__(self, config_path: Path = Path("./roundup_config.yaml")):
        self.config_path = Path(config_path)
        self._kdf_iterations = 480000  # OWASP recommended minimum

    def _derive_key(self, password: str, salt: bytes) -> bytes:
        """Derive encryption key from password using PBKDF2."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self._kdf_iterations,
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode()))

    def _encrypt_mnemonic(self, mnemonic: str, password: str, salt: bytes) -> str:
        words = mnemonic.split()
        if len(words) not in (12, 15, 18, 21, 24):
            raise ValueError("Seed phrase must have 12, 15, 18, 21 or 24 words")

        f = Fernet(self._derive_key(password, salt))
        encrypted = f.encrypt(" ".join(words).encode())
        return base64.b64encode(encrypted).decode()

    def _decrypt_mnemonic(self, encrypted: str, password: str, salt: bytes) -> str:
        f = Fernet(self._derive_key(password, salt))
        try:
            decrypted = f.decrypt(base64.b64decode(encrypted.encode()))
        except InvalidToken:
            raise ValueError("Wrong password or corrupted seed phrase") from None
        return decrypted.decode()

    def create_config(
        self,
        config_data: Dict[str, Any],
        mnemonic: str,
        password: str
    ) -> Config:
        """Create new configuration with encrypted seed phrase."""
        salt = os.urandom(16)

        config_data = dict(config_data)
        config_data["encrypted_mnemonic"] = self._encrypt_mnemonic(mnemonic, password, salt)
        config_data["salt"] = base64.b64encode(salt).decode()

        config = Config.from_dict(config_data)
        self._save_config(config)

        logger.info(f"Configuration created at {self.config_path}")
        return config

    def load_config(self) -> Config:
        """Load configuration without touching the encrypted seed phrase."""
        return Config.from_dict(self.read_raw_config())

    def load_mnemonic(self, password: str) -> str:
        """Decrypt the stored seed phrase."""
        config = self.load_config()
        if not config.encrypted_mnemonic or not config.salt:
            raise ValueError(f"No seed phrase stored in {self.config_path}. Run setup first.")

        return self._decrypt_mnemonic(
            config.encrypted_mnemonic,
            password,
            base64.b64decode(config.salt)
        )

    def read_raw_config(self) -> Dict[str, Any]:
        """Read config as a plain dictionary."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, 'r') as f:
            return yaml.safe_load(f) or {}

    def _save_config(self, config: Config):
        """Save configuration to YAML file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w') as f:
            yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)

        # Owner read/write only
        os.chmod(self.config_path, 0o600)

        logger.info(f"Configuration saved to {self.config_path}")

    def update_config(self, updates: Dict[str, Any]) -> Config:
        """Update configuration values."""
        data = self.read_raw_config()
        data.update(updates)

        config = Config.from_dict(data)
        self._save_config(config)

        logger.info("Configuration updated")
        return config
