from .bridge_transaction import BridgeStatus, BridgeStatusChange, BridgeTransaction
from .payout_destination import PayoutDestination

__all__ = ["BridgeStatus", "BridgeStatusChange", "BridgeTransaction", "PayoutDestination"]
