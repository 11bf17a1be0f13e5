"""
Settlement Orchestrator

Drives one deposit through:

    DEPOSIT_CONFIRMED -> EXCHANGED -> PAYOUT_INITIATED

Each stage gets the transaction produced by the previous one and returns a
SettlementResult. A failure after the record exists is written to the ledger
as FAILED before it is reported; nothing is retried automatically.
"""
from __future__ import annotations

import enum
import logging
import threading
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bridge.core.errors import (
    AuthenticationError,
    BridgeError,
    DuplicateDepositError,
    NoLiquidityError,
    PayoutPreconditionError,
    UpstreamError,
    UpstreamRejectedError,
)
from bridge.models.bridge_transaction import BridgeStatus, BridgeTransaction
from bridge.services.destinations import Destination, DestinationService
from bridge.services.event_publisher import EventPublisher
from bridge.services.fees import floor_rate, format_units, quote_payout
from bridge.services.ledger import LedgerStore

logger = logging.getLogger(__name__)


class FailureReason(str, enum.Enum):
    RATE_UNAVAILABLE = "RATE_UNAVAILABLE"
    NO_LIQUIDITY = "NO_LIQUIDITY"
    LEDGER_UNAVAILABLE = "LEDGER_UNAVAILABLE"
    EXCHANGE_AUTH_FAILED = "EXCHANGE_AUTH_FAILED"
    EXCHANGE_REJECTED = "EXCHANGE_REJECTED"
    EXCHANGE_UNAVAILABLE = "EXCHANGE_UNAVAILABLE"
    PAYOUT_PRECONDITION = "PAYOUT_PRECONDITION"
    PAYOUT_AUTH_FAILED = "PAYOUT_AUTH_FAILED"
    PAYOUT_REJECTED = "PAYOUT_REJECTED"
    PAYOUT_UNAVAILABLE = "PAYOUT_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# First matching class wins, so subclasses come before their bases.
_STAGE_REASONS: dict[str, list[tuple[type[BaseException], FailureReason]]] = {
    "quote": [
        (NoLiquidityError, FailureReason.NO_LIQUIDITY),
        (UpstreamError, FailureReason.RATE_UNAVAILABLE),
        (SQLAlchemyError, FailureReason.LEDGER_UNAVAILABLE),
    ],
    "exchange": [
        (AuthenticationError, FailureReason.EXCHANGE_AUTH_FAILED),
        (UpstreamRejectedError, FailureReason.EXCHANGE_REJECTED),
        (UpstreamError, FailureReason.EXCHANGE_UNAVAILABLE),
        (SQLAlchemyError, FailureReason.LEDGER_UNAVAILABLE),
    ],
    "payout": [
        (PayoutPreconditionError, FailureReason.PAYOUT_PRECONDITION),
        (AuthenticationError, FailureReason.PAYOUT_AUTH_FAILED),
        (UpstreamRejectedError, FailureReason.PAYOUT_REJECTED),
        (UpstreamError, FailureReason.PAYOUT_UNAVAILABLE),
        (SQLAlchemyError, FailureReason.LEDGER_UNAVAILABLE),
    ],
}


def classify_failure(stage: str, exc: BaseException) -> FailureReason:
    for exc_type, reason in _STAGE_REASONS.get(stage, []):
        if isinstance(exc, exc_type):
            return reason
    return FailureReason.INTERNAL_ERROR


@dataclass(frozen=True)
class SettlementFailure:
    stage: str
    reason: FailureReason
    message: str
    transaction_id: str | None = None


@dataclass(frozen=True)
class SettlementResult:
    transaction: Optional[BridgeTransaction] = None
    failure: Optional[SettlementFailure] = None
    duplicate: bool = False

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def advanced(cls, tx: BridgeTransaction) -> "SettlementResult":
        return cls(transaction=tx)

    @classmethod
    def already_processed(cls, tx: Optional[BridgeTransaction]) -> "SettlementResult":
        return cls(transaction=tx, duplicate=True)

    @classmethod
    def failed(
        cls, stage: str, exc: BaseException, tx: Optional[BridgeTransaction] = None, tx_id: str | None = None
    ) -> "SettlementResult":
        failure = SettlementFailure(
            stage=stage,
            reason=classify_failure(stage, exc),
            message=str(exc),
            transaction_id=tx.id if tx is not None else tx_id,
        )
        return cls(transaction=tx, failure=failure)


class SettlementOrchestrator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        rate_oracle,
        exchange,
        payouts,
        pair: str = "usdc_idr",
        stable_decimals: int = 6,
        fallback_destination: Optional[Destination] = None,
        publisher: Optional[EventPublisher] = None,
    ):
        self.session_factory = session_factory
        self.rate_oracle = rate_oracle
        self.exchange = exchange
        self.payouts = payouts
        self.pair = pair
        self.stable_decimals = stable_decimals
        self.fallback_destination = fallback_destination
        self.publisher = publisher

        self._in_flight: Counter[str] = Counter()
        self._in_flight_cond = threading.Condition()

    # ------------------------------------------------------------------
    # entry point
    # ------------------------------------------------------------------

    def process_deposit(self, tx_hash: str, from_address: str, atomic_amount: int) -> SettlementResult:
        if atomic_amount <= 0:
            raise ValueError(f"atomic_amount must be positive, got {atomic_amount}")
        tx_hash = tx_hash.lower()
        from_address = from_address.lower()

        with self._track(tx_hash), self.session_factory() as db:
            ledger = LedgerStore(db)

            existing = ledger.get_by_deposit_hash(tx_hash)
            if existing is not None:
                logger.info("Deposit %s already processed as %s (%s)", tx_hash, existing.id, existing.status)
                return SettlementResult.already_processed(existing)

            result = self._quote_and_record(ledger, tx_hash, from_address, atomic_amount)
            for stage in (self._execute_trade, self._initiate_payout):
                if not result.ok or result.duplicate:
                    break
                result = stage(ledger, result.transaction)

            if result.ok and not result.duplicate:
                tx = result.transaction
                logger.info("Bridge success for %s: payout %s initiated (%s IDR)", tx_hash, tx.payout_id, tx.fiat_amount)
            return result

    # ------------------------------------------------------------------
    # stages
    # ------------------------------------------------------------------

    def _quote_and_record(
        self, ledger: LedgerStore, tx_hash: str, from_address: str, atomic_amount: int
    ) -> SettlementResult:
        try:
            price = self.rate_oracle.best_bid(self.pair)
        except UpstreamError as exc:
            logger.warning("Quote for deposit %s failed, nothing recorded: %s", tx_hash, exc)
            return SettlementResult.failed("quote", exc)

        rate = floor_rate(price)
        if rate < 1:
            exc = NoLiquidityError("rate-oracle", f"best bid {price} floors to zero")
            return SettlementResult.failed("quote", exc)

        quote = quote_payout(atomic_amount, rate, self.stable_decimals)
        try:
            tx = ledger.create_confirmed(
                deposit_tx_hash=tx_hash,
                client_wallet_address=from_address,
                stable_amount=atomic_amount,
                exchange_rate=rate,
                fiat_amount=quote.net_fiat,
            )
        except DuplicateDepositError:
            existing = ledger.get_by_deposit_hash(tx_hash)
            logger.info("Deposit %s was recorded by a concurrent delivery", tx_hash)
            return SettlementResult.already_processed(existing)
        except SQLAlchemyError as exc:
            logger.error("Could not record deposit %s: %s", tx_hash, exc)
            return SettlementResult.failed("quote", exc)

        logger.info(
            "Deposit %s recorded as %s: %s USDC @ %s -> gross %s, fee %s, net %s IDR",
            tx_hash, tx.id, format_units(atomic_amount, self.stable_decimals),
            rate, quote.gross_fiat, quote.fee, quote.net_fiat,
        )
        self._publish(tx, "quote")
        return SettlementResult.advanced(tx)

    def _execute_trade(self, ledger: LedgerStore, tx: BridgeTransaction) -> SettlementResult:
        try:
            order_id = self.exchange.sell(self.pair, tx.stable_amount, tx.exchange_rate)
        except BridgeError as exc:
            return self._fail(ledger, tx, "exchange", exc)
        except Exception as exc:
            self._fail(ledger, tx, "exchange", exc)
            raise

        tx_id = tx.id
        try:
            tx = ledger.advance(
                tx,
                BridgeStatus.EXCHANGED,
                step="exchange",
                detail=f"order_id={order_id}",
                exchange_order_id=order_id,
            )
        except SQLAlchemyError as exc:
            logger.error(
                "Sell order %s executed for transaction %s but the ledger update failed; needs reconciliation: %s",
                order_id, tx_id, exc,
            )
            return SettlementResult.failed("exchange", exc, tx_id=tx_id)

        self._publish(tx, "exchange")
        return SettlementResult.advanced(tx)

    def _initiate_payout(self, ledger: LedgerStore, tx: BridgeTransaction) -> SettlementResult:
        try:
            destination = DestinationService(ledger.db, self.fallback_destination).resolve(tx.client_wallet_address)
            if destination is None:
                raise PayoutPreconditionError(f"No payout destination for wallet {tx.client_wallet_address}")
            payout_id = self.payouts.payout(
                tx.id,
                tx.fiat_amount,
                destination.bank_code,
                destination.account_number,
                destination.account_name,
            )
        except BridgeError as exc:
            return self._fail(ledger, tx, "payout", exc)
        except SQLAlchemyError as exc:
            ledger.db.rollback()
            return self._fail(ledger, tx, "payout", exc)
        except Exception as exc:
            self._fail(ledger, tx, "payout", exc)
            raise

        tx_id = tx.id
        try:
            tx = ledger.advance(
                tx,
                BridgeStatus.PAYOUT_INITIATED,
                step="payout",
                detail=f"payout_id={payout_id} bank={destination.bank_code}",
                payout_id=payout_id,
            )
        except SQLAlchemyError as exc:
            logger.error(
                "Payout %s accepted for transaction %s but the ledger update failed; needs reconciliation: %s",
                payout_id, tx_id, exc,
            )
            return SettlementResult.failed("payout", exc, tx_id=tx_id)

        self._publish(tx, "payout")
        return SettlementResult.advanced(tx)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _fail(self, ledger: LedgerStore, tx: BridgeTransaction, stage: str, exc: BaseException) -> SettlementResult:
        result = SettlementResult.failed(stage, exc, tx)
        failure = result.failure
        logger.error(
            "Bridge failed for %s at %s (%s): %s",
            tx.deposit_tx_hash, stage, failure.reason.value, failure.message,
        )
        if tx.exchange_order_id:
            logger.error(
                "Transaction %s already sold on the exchange (order %s); funds need manual reconciliation",
                tx.id, tx.exchange_order_id,
            )

        tx = ledger.mark_failed(tx, step=stage, reason=f"{failure.reason.value}: {failure.message}")
        self._publish(tx, stage)
        return SettlementResult(transaction=tx, failure=failure)

    def _publish(self, tx: BridgeTransaction, step: str) -> None:
        if self.publisher is not None:
            self.publisher.publish_status_changed(tx, step)

    # ------------------------------------------------------------------
    # shutdown support
    # ------------------------------------------------------------------

    @contextmanager
    def _track(self, tx_hash: str):
        with self._in_flight_cond:
            self._in_flight[tx_hash] += 1
        try:
            yield
        finally:
            with self._in_flight_cond:
                self._in_flight[tx_hash] -= 1
                if self._in_flight[tx_hash] <= 0:
                    del self._in_flight[tx_hash]
                self._in_flight_cond.notify_all()

    def in_flight(self) -> set[str]:
        with self._in_flight_cond:
            return set(self._in_flight)

    def drain(self, timeout: float) -> set[str]:
        """
        Wait up to `timeout` seconds for in-flight deposits to settle.
        Returns (and logs) the deposits still running, which need reconciliation.
        """
        with self._in_flight_cond:
            self._in_flight_cond.wait_for(lambda: not self._in_flight, timeout=timeout)
            remaining = set(self._in_flight)
        for tx_hash in sorted(remaining):
            logger.warning("Deposit %s still in flight at shutdown; check the ledger for reconciliation", tx_hash)
        return remaining
