"""
Deposit Watcher

Polls the stablecoin contract for Transfer events into the deposit address
and hands each one to a delivery callable (webhook POST or direct
orchestrator call).

Only blocks at least `confirmations` deep are scanned. The cursor (next block
to scan) advances only after every delivery of a range succeeded; a failed
range is scanned again on the next poll and the orchestrator's idempotency
gate absorbs the deposits that were already recorded.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Optional

import redis
import requests
from web3 import Web3
from web3.exceptions import Web3Exception

from bridge.core.errors import SettlementFailedError
from bridge.services.fees import format_units

logger = logging.getLogger(__name__)


ERC20_TRANSFER_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "from", "type": "address"},
            {"indexed": True, "internalType": "address", "name": "to", "type": "address"},
            {"indexed": False, "internalType": "uint256", "name": "value", "type": "uint256"},
        ],
        "name": "Transfer",
        "type": "event",
    },
]

TRANSFER_TOPIC = "0x" + Web3.keccak(text="Transfer(address,address,uint256)").hex().removeprefix("0x")

# web3 v6 raises a bare ValueError for JSON-RPC error responses
TRANSIENT_ERRORS = (
    Web3Exception, ValueError, requests.RequestException, redis.RedisError, TimeoutError, ConnectionError,
)


@dataclass(frozen=True)
class DepositEvent:
    tx_hash: str
    from_address: str
    amount: int  # atomic units
    block_number: int
    log_index: int


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address.lower().removeprefix("0x")


class RedisBlockCursor:
    """Next block to scan, persisted so a restart resumes where it stopped."""

    def __init__(self, client: redis.Redis, key: str):
        self.client = client
        self.key = key

    def get(self) -> Optional[int]:
        value = self.client.get(self.key)
        return int(value) if value is not None else None

    def set(self, block: int) -> None:
        self.client.set(self.key, str(block))


class WebhookDelivery:
    """POSTs deposits to the ingress route."""

    def __init__(self, url: str, timeout: float, token: str | None = None, session: requests.Session | None = None):
        self.url = url
        self.timeout = timeout
        self.token = token
        self.session = session or requests.Session()

    def __call__(self, event: DepositEvent) -> None:
        headers = {"X-Internal-Token": self.token} if self.token else {}
        response = self.session.post(
            self.url,
            json={"txHash": event.tx_hash, "from": event.from_address, "amount": str(event.amount)},
            headers=headers,
            timeout=self.timeout,
        )
        response.raise_for_status()


class DirectDelivery:
    """Calls the orchestrator in-process."""

    def __init__(self, orchestrator):
        self.orchestrator = orchestrator

    def __call__(self, event: DepositEvent) -> None:
        result = self.orchestrator.process_deposit(event.tx_hash, event.from_address, event.amount)
        if not result.ok:
            failure = result.failure
            raise SettlementFailedError(failure.stage, failure.reason.value, failure.message, failure.transaction_id)


class DepositWatcher:
    def __init__(
        self,
        w3: Web3,
        token_address: str,
        deposit_address: str,
        deliver: Callable[[DepositEvent], None],
        cursor,
        start_block: int | None = None,
        confirmations: int = 3,
        poll_interval: float = 5.0,
        max_block_range: int = 2000,
        max_workers: int = 4,
        decimals: int = 6,
    ):
        self.w3 = w3
        self.token_address = Web3.to_checksum_address(token_address)
        self.deposit_address = deposit_address
        self.deliver = deliver
        self.cursor = cursor
        self.start_block = start_block
        self.confirmations = confirmations
        self.poll_interval = poll_interval
        self.max_block_range = max_block_range
        self.decimals = decimals

        self.contract = w3.eth.contract(address=self.token_address, abi=ERC20_TRANSFER_ABI)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="deposit")
        self._stop = threading.Event()

    # ------------------------------------------------------------------

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self) -> None:
        logger.info(
            "Starting deposit watcher: token=%s deposit=%s confirmations=%s",
            self.token_address, self.deposit_address, self.confirmations,
        )
        backoff = self.poll_interval
        try:
            while not self._stop.is_set():
                try:
                    caught_up = self.poll_once()
                    backoff = self.poll_interval
                except TRANSIENT_ERRORS as exc:
                    logger.warning("Watcher RPC error, retrying in %.1fs: %s", backoff, exc)
                    self._stop.wait(backoff)
                    backoff = min(backoff * 2, 60.0)
                    continue

                if caught_up:
                    self._stop.wait(self.poll_interval)
        finally:
            # in-flight deliveries are settlement calls; let them finish
            self._executor.shutdown(wait=True)
            logger.info("Deposit watcher stopped")

    def poll_once(self) -> bool:
        """
        Scan the next block range. Returns True when the scan reached the
        confirmed head (nothing left to catch up on).
        """
        safe_head = self.w3.eth.block_number - self.confirmations
        next_block = self._next_block(safe_head)
        if next_block > safe_head:
            return True

        to_block = min(safe_head, next_block + self.max_block_range - 1)
        logs = self.w3.eth.get_logs({
            "address": self.token_address,
            "fromBlock": next_block,
            "toBlock": to_block,
            "topics": [TRANSFER_TOPIC, None, address_topic(self.deposit_address)],
        })

        events = [event for event in (self._decode(log) for log in logs) if event is not None]
        if events and not self._deliver_batch(events):
            logger.warning("Blocks %s-%s will be rescanned after failed deliveries", next_block, to_block)
            return True

        self.cursor.set(to_block + 1)
        if events:
            logger.info("Delivered %s deposit(s) from blocks %s-%s", len(events), next_block, to_block)
        return to_block >= safe_head

    # ------------------------------------------------------------------

    def _next_block(self, safe_head: int) -> int:
        stored = self.cursor.get()
        if stored is not None:
            return stored
        start = self.start_block if self.start_block is not None else safe_head
        self.cursor.set(start)
        return start

    def _decode(self, log) -> Optional[DepositEvent]:
        try:
            decoded = self.contract.events.Transfer().process_log(log)
        except Exception as exc:  # malformed log; not fatal for the watcher
            logger.warning("Skipping undecodable log %s: %s", log, exc)
            return None

        args = decoded.get("args") or {}
        tx_hash = decoded.get("transactionHash")
        sender = args.get("from")
        value = args.get("value")

        if not tx_hash or not sender or value is None:
            logger.warning("Skipping log with missing arguments: %s", decoded)
            return None
        if int(value) <= 0:
            logger.warning("Skipping zero-value transfer in %s", Web3.to_hex(tx_hash))
            return None

        event = DepositEvent(
            tx_hash=Web3.to_hex(tx_hash),
            from_address=sender,
            amount=int(value),
            block_number=int(decoded.get("blockNumber") or 0),
            log_index=int(decoded.get("logIndex") or 0),
        )
        logger.info(
            "Deposit detected: tx=%s from=%s amount=%s (%s USDC)",
            event.tx_hash, event.from_address, event.amount, format_units(event.amount, self.decimals),
        )
        return event

    def _deliver_batch(self, events: list[DepositEvent]) -> bool:
        futures = {self._executor.submit(self.deliver, event): event for event in events}
        delivered = True
        for future in as_completed(futures):
            event = futures[future]
            try:
                future.result()
            except Exception as exc:  # one failed deposit must not stop the others
                delivered = False
                logger.error("Failed to process deposit %s: %s", event.tx_hash, exc)
        return delivered
