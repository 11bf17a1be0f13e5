import argparse

from bridge.db.session import SessionLocal
from bridge.models.bridge_transaction import BridgeStatus
from bridge.services.fees import format_units
from bridge.services.ledger import LedgerStore


def print_transaction(tx) -> None:
    print(
        f"[{tx.id}] {tx.status:<17} deposit={tx.deposit_tx_hash} from={tx.client_wallet_address} "
        f"amount={format_units(tx.stable_amount, 6)} rate={tx.exchange_rate} idr={tx.fiat_amount} "
        f"order={tx.exchange_order_id or '-'} payout={tx.payout_id or '-'}"
    )
    if tx.failure_reason:
        print(f"    reason: {tx.failure_reason}")


def main():
    parser = argparse.ArgumentParser(description="Print recent bridge transactions")
    parser.add_argument("--limit", type=int, default=10)
    parser.add_argument("--failed", action="store_true", help="only FAILED transactions")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        ledger = LedgerStore(db)
        status = BridgeStatus.FAILED.value if args.failed else None
        rows = ledger.list_transactions(status=status, limit=args.limit)
        print(f"{len(rows)} transaction(s)")
        for tx in rows:
            print_transaction(tx)
            if args.failed:
                for change in ledger.history(tx.id):
                    print(f"    {change.changed_at} {change.from_status or '-'} -> {change.to_status} ({change.step})")
    finally:
        db.close()


if __name__ == "__main__":
    main()
