"""
Error taxonomy for the settlement bridge.

Upstream errors carry the name of the collaborator that produced them so the
orchestrator can tag failures without inspecting messages.
"""


class BridgeError(Exception):
    """Base class for every error raised by the bridge."""


class UpstreamError(BridgeError):
    """An external collaborator (oracle, exchange, payout provider) failed."""

    def __init__(self, service: str, message: str, status_code: int | None = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code


class UpstreamUnavailableError(UpstreamError):
    """Transport failure: connection error, timeout or 5xx."""


class UpstreamResponseError(UpstreamError):
    """The upstream answered but the body could not be parsed or validated."""


class UpstreamRejectedError(UpstreamError):
    """The upstream understood the request and refused it."""


class AuthenticationError(UpstreamRejectedError):
    pass


class OrderRejectedError(UpstreamRejectedError):
    pass


class PayoutRejectedError(UpstreamRejectedError):
    pass


class NoLiquidityError(UpstreamError):
    """The order book has no bid to sell into."""


class PayoutPreconditionError(BridgeError):
    """A payout request was invalid before it reached the provider."""


class UnsupportedChannelError(PayoutPreconditionError):
    def __init__(self, bank_code: str):
        super().__init__(f"Unsupported or invalid bank code: {bank_code}")
        self.bank_code = bank_code


class DuplicateDepositError(BridgeError):
    def __init__(self, deposit_tx_hash: str):
        super().__init__(f"Deposit {deposit_tx_hash} already recorded")
        self.deposit_tx_hash = deposit_tx_hash


class SettlementFailedError(BridgeError):
    """Raised by callers that need an exception out of a failed SettlementResult."""

    def __init__(self, stage: str, reason: str, message: str, transaction_id: str | None = None):
        super().__init__(f"{reason} at {stage}: {message}")
        self.stage = stage
        self.reason = reason
        self.transaction_id = transaction_id


class InvalidTransitionError(BridgeError):
    def __init__(self, transaction_id: str, current: str, target: str):
        super().__init__(f"Transaction {transaction_id}: cannot move from {current} to {target}")
        self.transaction_id = transaction_id
        self.current = current
        self.target = target
