import re

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database
    database_url: str

    # Redis (event publishing + watcher cursor)
    redis_host: str = "localhost"
    redis_port: int = 6379

    log_level: str = "INFO"
    http_timeout_seconds: float = 15.0

    # Chain
    chain_rpc_url: str
    deposit_wallet_address: str
    stablecoin_contract_address: str
    stablecoin_decimals: int = 6

    # Deposit watcher
    watcher_start_block: int | None = None
    watcher_confirmations: int = 3
    watcher_poll_interval_seconds: float = 5.0
    watcher_max_block_range: int = 2000
    watcher_max_workers: int = 4
    watcher_webhook_url: str | None = None

    # Exchange (Indodax)
    exchange_base_url: str = "https://indodax.com"
    exchange_api_key: str
    exchange_secret_key: str
    exchange_pair: str = "usdc_idr"
    exchange_amount_param: str | None = None  # defaults to the base asset code

    # Payout provider (Xendit)
    payout_base_url: str = "https://api.xendit.co"
    payout_secret_key: str
    payout_currency: str = "IDR"
    payout_callback_token: str | None = None
    payout_default_bank_code: str | None = None
    payout_default_account_number: str | None = None
    payout_default_account_name: str | None = None

    # Ingress
    ingress_token: str | None = None

    @field_validator("deposit_wallet_address", "stablecoin_contract_address")
    @classmethod
    def _check_address(cls, value: str) -> str:
        if not ADDRESS_RE.match(value):
            raise ValueError(f"not a 0x-prefixed 20-byte address: {value!r}")
        return value

    @field_validator("exchange_api_key", "exchange_secret_key", "payout_secret_key")
    @classmethod
    def _check_credential(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("credential must not be empty")
        return value


settings = Settings()
