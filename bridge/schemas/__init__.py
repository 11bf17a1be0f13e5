from .deposit import DepositAck, DepositWebhookIn
from .payout import BankChannelOut, DestinationIn, DestinationOut, PayoutCallbackAck, PayoutCallbackIn
from .quote import QuoteOut
from .transaction import StatusChangeOut, TransactionDetailOut, TransactionOut

__all__ = [
    "DepositAck",
    "DepositWebhookIn",
    "BankChannelOut",
    "DestinationIn",
    "DestinationOut",
    "PayoutCallbackAck",
    "PayoutCallbackIn",
    "QuoteOut",
    "StatusChangeOut",
    "TransactionDetailOut",
    "TransactionOut",
]
