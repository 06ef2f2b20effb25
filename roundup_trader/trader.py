"""
Round-up Trading Module

Watches a Uniswap V2 pair for ``Sync`` events and rounds up part of the
token A balance into token B each time the pool state changes.

Flow for one execute request:
    check network -> fetch token metadata -> ask operator -> monitor
    monitor: race stop signal against next Sync; on Sync quote, approve, swap
"""

import time
import asyncio
from dataclasses import dataclass, asdict, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from web3 import AsyncWeb3

from .config import Config
from .contracts import (
    ERC20_ABI,
    UNISWAP_V2_FACTORY_ABI,
    UNISWAP_V2_PAIR_ABI,
    UNISWAP_V2_ROUTER_ABI,
    ZERO_ADDRESS,
    network_name,
)
from .gate import CancellationGate, TradeStatus
from .host import HostRuntime
from .utils import (
    logger,
    sort_addresses,
    format_address,
    AlreadyRunningError,
    SubscriptionClosedError,
    TransactionError,
)
from .wallet import ETHEREUM_COIN_TYPE, Signer, derive_signer


class TraderState(Enum):
    IDLE = "idle"
    CHECKING_NETWORK = "checking_network"
    AWAITING_CONSENT = "awaiting_consent"
    MONITORING = "monitoring"
    EXECUTING_SWAP = "executing_swap"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class TokenInfo:
    """Display metadata for an ERC20 token."""
    address: str
    name: str
    symbol: str


@dataclass(frozen=True)
class TokenPair:
    """Resolved token pair with its contract handles."""
    token_a: TokenInfo
    token_b: TokenInfo
    pair_address: str
    token_a_contract: Any = field(repr=False, compare=False)
    token_b_contract: Any = field(repr=False, compare=False)
    pair_contract: Any = field(repr=False, compare=False)
    router_contract: Any = field(repr=False, compare=False)

    @property
    def path(self) -> List[str]:
        return [self.token_a.address, self.token_b.address]

    @property
    def label(self) -> str:
        return f"{self.token_a.symbol}/{self.token_b.symbol}"


@dataclass
class RoundupRecord:
    """An executed round-up swap."""
    timestamp: str
    token_a: str
    token_b: str
    amount_in: int
    expected_out: int
    spent: int
    gained: int
    approve_tx: str
    swap_tx: str
    block_number: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


EligibilityPolicy = Callable[[Config, int, int], bool]


def default_eligibility(config: Config, trade_amount: int, expected_out: int) -> bool:
    """
    Decide whether a quoted round-up should be executed.

    No threshold is configurable yet, so every quote counts as above it and
    only the ``roundup_enabled`` switch applies.
    """
    above_threshold = True
    return config.roundup_enabled and above_threshold


class RoundupTrader:
    """
    Executes the round-up strategy for one token pair at a time.

    ``execute()`` runs until ``stop()`` is called (returns ``TradeStatus.OK``),
    a precondition fails (returns ``TradeStatus.FAIL``) or a chain error is
    raised. Only one execution may be active per trader.
    """

    def __init__(
        self,
        config: Config,
        host: HostRuntime,
        w3: AsyncWeb3,
        eligibility: Optional[EligibilityPolicy] = None
    ):
        self.config = config
        self.host = host
        self.w3 = w3
        self.eligibility = eligibility or default_eligibility
        self.gate = CancellationGate()
        self.state = TraderState.IDLE
        self._busy = False
        self._chain_id: Optional[int] = None

    @property
    def is_running(self) -> bool:
        return self._busy or self.gate.is_running

    def _contract(self, address: str, abi: list):
        return self.w3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=abi)

    def _fail(self) -> TradeStatus:
        self.state = TraderState.FAILED
        return TradeStatus.FAIL

    async def get_signer(self) -> Signer:
        """Derive the trading account (index 0) from host entropy."""
        entropy = await self.host.get_bip44_entropy(ETHEREUM_COIN_TYPE)
        return derive_signer(entropy, index=0)

    async def get_network(self) -> str:
        self._chain_id = await self.w3.eth.chain_id
        return network_name(self._chain_id)

    async def resolve_pair(self, token_a_address: str, token_b_address: str) -> Optional[TokenPair]:
        """
        Load token metadata and find the Uniswap V2 pair for two tokens.

        Returns None if the factory has no pair for them.
        """
        token_a = self._contract(token_a_address, ERC20_ABI)
        token_b = self._contract(token_b_address, ERC20_ABI)

        # Four independent reads, issued together
        name_a, symbol_a, name_b, symbol_b = await asyncio.gather(
            token_a.functions.name().call(),
            token_a.functions.symbol().call(),
            token_b.functions.name().call(),
            token_b.functions.symbol().call(),
        )
        info_a = TokenInfo(address=token_a.address, name=name_a, symbol=symbol_a)
        info_b = TokenInfo(address=token_b.address, name=name_b, symbol=symbol_b)

        factory = self._contract(self.config.factory_address, UNISWAP_V2_FACTORY_ABI)
        pair_address = await factory.functions.getPair(
            *sort_addresses(info_a.address, info_b.address)
        ).call()

        if pair_address == ZERO_ADDRESS:
            logger.error(f"No Uniswap V2 pair for {symbol_a}/{symbol_b}")
            return None

        return TokenPair(
            token_a=info_a,
            token_b=info_b,
            pair_address=pair_address,
            token_a_contract=token_a,
            token_b_contract=token_b,
            pair_contract=self._contract(pair_address, UNISWAP_V2_PAIR_ABI),
            router_contract=self._contract(self.config.router_address, UNISWAP_V2_ROUTER_ABI),
        )

    async def execute(self, token_a_address: str, token_b_address: str) -> TradeStatus:
        """
        Run round-up trading between two tokens until stopped.

        Raises:
            AlreadyRunningError: if this trader is already executing
            DerivationError: if the host entropy is unusable
        """
        if self.is_running:
            raise AlreadyRunningError("Round-up trading is already running")

        self._busy = True
        try:
            signer = await self.get_signer()
            with signer:
                return await self._run(signer, token_a_address, token_b_address)
        except Exception:
            self.state = TraderState.FAILED
            raise
        finally:
            self._busy = False

    async def _run(self, signer: Signer, token_a_address: str, token_b_address: str) -> TradeStatus:
        self.state = TraderState.CHECKING_NETWORK
        network = await self.get_network()
        if network != self.config.required_network:
            logger.warning(
                f"Connected to {network}, round-up trading requires {self.config.required_network}"
            )
            return self._fail()

        pair = await self.resolve_pair(token_a_address, token_b_address)
        if pair is None:
            return self._fail()

        self.state = TraderState.AWAITING_CONSENT
        approved = await self.host.confirm(
            prompt="Do you want to use this account?",
            text=(
                f'Do you want to use the account "{signer.address}" for algorithmic trading '
                f'between "{pair.token_a.name}" and "{pair.token_b.name}"?'
            ),
        )
        if not approved:
            logger.info("Operator declined round-up trading")
            return self._fail()

        return await self.monitor(signer, pair)

    def stop(self) -> TradeStatus:
        """
        Ask the monitoring loop to stop.

        Raises:
            NotRunningError: if no monitoring loop is active
        """
        return self.gate.trigger()

    async def monitor(self, signer: Signer, pair: TokenPair) -> TradeStatus:
        """
        Wait for Sync events and round up on each one until stopped.

        When the stop signal and an event are ready at the same time, the stop
        signal wins. A stop request never interrupts a swap in progress.
        """
        handle = self.gate.start()
        events = self.sync_events(pair)
        pending: Optional[asyncio.Task] = None

        try:
            while True:
                self.state = TraderState.MONITORING
                logger.info(f"Listening for Sync events on {pair.label} ({format_address(pair.pair_address)})")

                if not handle.done():
                    if pending is None:
                        pending = asyncio.create_task(self._next_event(events))
                    await asyncio.wait({handle.future, pending}, return_when=asyncio.FIRST_COMPLETED)

                if handle.done():
                    logger.info("Requested to stop")
                    self.state = TraderState.STOPPED
                    return handle.result()

                event = pending.result()
                pending = None

                logger.info("Sync happened, calculating trade")
                self.state = TraderState.EXECUTING_SWAP
                await self.execute_swap(signer, pair, event)
        finally:
            if pending is not None:
                pending.cancel()
                await asyncio.gather(pending, return_exceptions=True)
            await events.aclose()
            self.gate.discard(handle)

    @staticmethod
    async def _next_event(events: AsyncIterator[Any]) -> Any:
        try:
            return await events.__anext__()
        except StopAsyncIteration:
            raise SubscriptionClosedError("Sync event stream ended") from None

    async def sync_events(self, pair: TokenPair) -> AsyncIterator[Any]:
        """
        Yield Sync notifications from the pair contract, one per wait.

        Each wait installs a fresh filter from the latest block and removes it
        before the notification is handed over. Logs emitted while a swap runs,
        including the swap's own Sync, are therefore not replayed.
        """
        while True:
            event_filter = await pair.pair_contract.events.Sync.create_filter(from_block="latest")
            try:
                entries: list = []
                while not entries:
                    await asyncio.sleep(self.config.poll_interval_seconds)
                    entries = await event_filter.get_new_entries()
            finally:
                await self.w3.eth.uninstall_filter(event_filter.filter_id)
            yield entries[0]

    async def _balances(self, signer: Signer, pair: TokenPair) -> Tuple[int, int]:
        balance_a, balance_b = await asyncio.gather(
            pair.token_a_contract.functions.balanceOf(signer.address).call(),
            pair.token_b_contract.functions.balanceOf(signer.address).call(),
        )
        return balance_a, balance_b

    async def execute_swap(self, signer: Signer, pair: TokenPair, event: Any = None) -> Optional[RoundupRecord]:
        """
        Quote and, if eligible, swap half of the token A balance into token B.

        Approval is confirmed on-chain before the swap is submitted. Failed or
        timed-out transactions raise; there is no retry here.

        Returns:
            The executed RoundupRecord, or None if the cycle was skipped
        """
        if event is not None:
            logger.debug(f"Sync event: {event}")

        initial_a, initial_b = await self._balances(signer, pair)

        # Placeholder sizing: half of the current token A balance
        trade_amount = initial_a // 2
        if trade_amount == 0:
            logger.warning(f"No {pair.token_a.symbol} balance to round up, skipping")
            return None

        amounts = await pair.router_contract.functions.getAmountsOut(trade_amount, pair.path).call()
        expected_out = amounts[-1]
        logger.info(f"Expected amount gained {expected_out}{pair.token_b.symbol}")

        if not self.eligibility(self.config, trade_amount, expected_out):
            logger.info("Round-up not eligible this cycle")
            return None

        logger.info("User is above coin threshold, performing round up")

        approve_receipt = await self._transact(
            signer,
            pair.token_a_contract.functions.approve(pair.router_contract.address, trade_amount)
        )

        deadline = int(time.time()) + self.config.swap_deadline_seconds
        swap_receipt = await self._transact(
            signer,
            pair.router_contract.functions.swapExactTokensForTokens(
                trade_amount,
                self.config.amount_out_min,
                pair.path,
                signer.address,
                deadline,
            )
        )

        end_a, end_b = await self._balances(signer, pair)

        record = RoundupRecord(
            timestamp=datetime.now().isoformat(),
            token_a=pair.token_a.symbol,
            token_b=pair.token_b.symbol,
            amount_in=trade_amount,
            expected_out=expected_out,
            spent=initial_a - end_a,
            gained=end_b - initial_b,
            approve_tx=AsyncWeb3.to_hex(approve_receipt["transactionHash"]),
            swap_tx=AsyncWeb3.to_hex(swap_receipt["transactionHash"]),
            block_number=swap_receipt["blockNumber"],
        )

        logger.info(
            f"Executed roundup: spent {record.spent}{record.token_a}, "
            f"gained {record.gained}{record.token_b}"
        )
        await self._store_record(record)
        return record

    async def _transact(self, signer: Signer, call) -> Dict[str, Any]:
        """Sign, send and wait for a contract transaction."""
        if self._chain_id is None:
            self._chain_id = await self.w3.eth.chain_id

        tx = await call.build_transaction({
            'from': signer.address,
            'nonce': await self.w3.eth.get_transaction_count(signer.address, 'pending'),
            'chainId': self._chain_id,
        })

        signed = signer.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info(f"Transaction sent: {AsyncWeb3.to_hex(tx_hash)}")

        receipt = await self.w3.eth.wait_for_transaction_receipt(
            tx_hash,
            timeout=self.config.confirmation_timeout_seconds
        )

        if receipt["status"] != 1:
            raise TransactionError(f"Transaction failed: {AsyncWeb3.to_hex(tx_hash)}")

        return receipt

    async def _store_record(self, record: RoundupRecord) -> None:
        store = self.host.state_store
        state = await store.get()
        state.setdefault("logs", []).append(record.to_dict())
        await store.update(state)

    async def get_executed(self) -> List[Dict[str, Any]]:
        """Round-ups recorded in the host state store."""
        state = await self.host.state_store.get()
        return state.get("logs", [])
