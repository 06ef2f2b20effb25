"""
Host Runtime Module
===================
Capabilities the trader consumes from its host wallet:

- seed entropy for the Ethereum coin-type node
- human confirmation prompts
- a small JSON state store

``ConsoleHost`` is the local implementation used by the CLI. It keeps the
seed phrase in memory only for the lifetime of the process and prompts on the
terminal through Rich.
"""

import os
import json
import asyncio
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel

from .utils import logger
from .wallet import ETHEREUM_COIN_TYPE, coin_type_node_from_mnemonic


def empty_state() -> Dict[str, Any]:
    return {"logs": []}


class StateStore(ABC):
    """Persists small JSON-serializable state for the trader."""

    @abstractmethod
    async def get(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def update(self, state: Dict[str, Any]) -> None:
        ...


class MemoryStateStore(StateStore):
    """State kept in process memory."""

    def __init__(self, state: Optional[Dict[str, Any]] = None):
        self._state = json.loads(json.dumps(state)) if state else empty_state()

    async def get(self) -> Dict[str, Any]:
        return json.loads(json.dumps(self._state))

    async def update(self, state: Dict[str, Any]) -> None:
        self._state = json.loads(json.dumps(state))


class JsonFileStateStore(StateStore):
    """State stored in a JSON file (owner read/write only)."""

    def __init__(self, path: str):
        self.path = Path(path)

    async def get(self) -> Dict[str, Any]:
        if not self.path.exists():
            return empty_state()
        with open(self.path, 'r') as f:
            return json.load(f)

    async def update(self, state: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, 'w') as f:
            json.dump(state, f, indent=2)
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self.path)


class HostRuntime(ABC):
    """Request/response channel to the host wallet."""

    def __init__(self, state_store: Optional[StateStore] = None):
        self.state_store = state_store or MemoryStateStore()

    @abstractmethod
    async def get_bip44_entropy(self, coin_type: int = ETHEREUM_COIN_TYPE) -> Any:
        """Return the BIP-44 coin-type node for ``coin_type``."""

    @abstractmethod
    async def confirm(self, prompt: str, description: str = "", text: str = "") -> bool:
        """Show a confirmation prompt and return the operator's choice."""


class ConsoleHost(HostRuntime):
    """Terminal host: seed from a mnemonic, prompts through Rich."""

    def __init__(
        self,
        mnemonic: str,
        state_store: Optional[StateStore] = None,
        console: Optional[Console] = None,
        assume_yes: bool = False
    ):
        super().__init__(state_store)
        self._mnemonic = mnemonic
        self.console = console or Console()
        self.assume_yes = assume_yes

    async def get_bip44_entropy(self, coin_type: int = ETHEREUM_COIN_TYPE) -> Any:
        if coin_type != ETHEREUM_COIN_TYPE:
            raise ValueError(f"Console host only serves coin type {ETHEREUM_COIN_TYPE}")
        return coin_type_node_from_mnemonic(self._mnemonic).to_entropy()

    async def confirm(self, prompt: str, description: str = "", text: str = "") -> bool:
        body = "\n\n".join(part for part in (description, text) if part)
        self.console.print(Panel(body or prompt, title=prompt, border_style="yellow"))

        if self.assume_yes:
            logger.info(f"Auto-confirmed: {prompt}")
            return True

        answer = await self._read_line(f"{prompt} [y/N]: ")
        return answer.strip().lower() in ("y", "yes")

    @staticmethod
    async def _read_line(prompt: str) -> str:
        """
        Read one line from the terminal without blocking the event loop.

        The read runs in a daemon thread, so a cancelled prompt does not keep
        the process alive waiting for input. EOF counts as an empty answer.
        """
        loop = asyncio.get_running_loop()
        answer = loop.create_future()

        def deliver(value: str) -> None:
            if not answer.done():
                answer.set_result(value)

        def read() -> None:
            try:
                value = input(prompt)
            except EOFError:
                value = ""
            try:
                loop.call_soon_threadsafe(deliver, value)
            except RuntimeError:
                # Event loop already closed
                pass

        threading.Thread(target=read, name="console-confirm", daemon=True).start()
        return await answer
