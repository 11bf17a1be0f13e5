"""
Event Publisher
Publishes ledger transitions to the message broker after they are committed.
The ledger is the source of truth; a broker outage is logged, never raised.
"""
import logging

import redis

from bridge.core.message_broker import message_broker
from bridge.models.bridge_transaction import BridgeTransaction

logger = logging.getLogger(__name__)

TRANSACTIONS_CHANNEL = 'bridge.transactions'


class EventPublisher:
    """Publishes events to message broker."""

    def __init__(self, broker=None):
        self.broker = broker or message_broker

    def publish_status_changed(self, tx: BridgeTransaction, step: str) -> None:
        """Publish a committed status transition."""
        try:
            self.broker.publish(TRANSACTIONS_CHANNEL, {
                'event': 'status_changed',
                'step': step,
                'data': {
                    'id': tx.id,
                    'deposit_tx_hash': tx.deposit_tx_hash,
                    'status': tx.status,
                    'stable_amount': str(tx.stable_amount),
                    'fiat_amount': str(tx.fiat_amount),
                    'exchange_order_id': tx.exchange_order_id,
                    'payout_id': tx.payout_id,
                }
            })
        except redis.RedisError as exc:
            logger.warning("Could not publish %s for transaction %s: %s", tx.status, tx.id, exc)
