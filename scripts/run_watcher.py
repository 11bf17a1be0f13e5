"""
Runs the deposit watcher until SIGINT/SIGTERM.

With WATCHER_WEBHOOK_URL set, deposits are POSTed to the API's ingress route;
otherwise they are settled in this process.
"""
import logging
import signal

import redis
from web3 import Web3

from bridge.core.config import settings
from bridge.services.deposit_watcher import (
    DepositWatcher,
    DirectDelivery,
    RedisBlockCursor,
    WebhookDelivery,
)

DRAIN_SECONDS = 30.0

logger = logging.getLogger("bridge.watcher")


def main() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    w3 = Web3(Web3.HTTPProvider(settings.chain_rpc_url, request_kwargs={"timeout": settings.http_timeout_seconds}))
    client = redis.Redis(host=settings.redis_host, port=settings.redis_port, db=0, decode_responses=True)
    cursor = RedisBlockCursor(
        client,
        f"bridge:watcher:{settings.stablecoin_contract_address.lower()}:{settings.deposit_wallet_address.lower()}",
    )

    orchestrator = None
    if settings.watcher_webhook_url:
        deliver = WebhookDelivery(
            settings.watcher_webhook_url,
            timeout=settings.http_timeout_seconds,
            token=settings.ingress_token,
        )
    else:
        from bridge.core.deps import get_orchestrator

        orchestrator = get_orchestrator()
        deliver = DirectDelivery(orchestrator)

    watcher = DepositWatcher(
        w3,
        token_address=settings.stablecoin_contract_address,
        deposit_address=settings.deposit_wallet_address,
        deliver=deliver,
        cursor=cursor,
        start_block=settings.watcher_start_block,
        confirmations=settings.watcher_confirmations,
        poll_interval=settings.watcher_poll_interval_seconds,
        max_block_range=settings.watcher_max_block_range,
        max_workers=settings.watcher_max_workers,
        decimals=settings.stablecoin_decimals,
    )

    def handle_signal(signum, frame):
        logger.info("Received signal %s, stopping watcher", signum)
        watcher.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        watcher.run()
    finally:
        if orchestrator is not None:
            orchestrator.drain(timeout=DRAIN_SECONDS)
        client.close()


if __name__ == "__main__":
    main()
