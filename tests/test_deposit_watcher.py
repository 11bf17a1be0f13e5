"""
Tests for the deposit watcher. The web3 client is mocked; logs handed to the
mocked contract decoder are already in decoded form.
"""
from unittest.mock import Mock, patch

import pytest
from web3 import Web3
from web3.exceptions import Web3Exception

from bridge.core.errors import SettlementFailedError
from bridge.services.deposit_watcher import (
    TRANSFER_TOPIC,
    DepositEvent,
    DepositWatcher,
    DirectDelivery,
    RedisBlockCursor,
    WebhookDelivery,
    address_topic,
)
from bridge.services.settlement import SettlementResult

TOKEN = "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"
DEPOSIT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
SENDER = "0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb1"


class MemoryCursor:
    def __init__(self, block=None):
        self.block = block

    def get(self):
        return self.block

    def set(self, block):
        self.block = block


def transfer_log(tx_byte, value, block=100, log_index=0, sender=SENDER):
    return {
        "args": {"from": sender, "to": DEPOSIT, "value": value},
        "transactionHash": bytes([tx_byte]) * 32,
        "blockNumber": block,
        "logIndex": log_index,
    }


def decode(log):
    if log.get("malformed"):
        raise ValueError("could not decode log")
    return log


@pytest.fixture
def mock_web3():
    """Create a mock Web3 instance"""
    mock = Mock()
    mock.eth.block_number = 110
    mock.eth.get_logs.return_value = []
    mock.eth.contract.return_value.events.Transfer.return_value.process_log.side_effect = decode
    return mock


def make_watcher(w3, deliver, cursor, **kwargs):
    kwargs.setdefault("start_block", 100)
    kwargs.setdefault("confirmations", 3)
    kwargs.setdefault("poll_interval", 0.01)
    return DepositWatcher(w3, TOKEN, DEPOSIT, deliver, cursor, **kwargs)


def test_transfer_topic_is_erc20_signature():
    assert TRANSFER_TOPIC == "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def test_address_topic_left_pads():
    topic = address_topic(DEPOSIT)

    assert len(topic) == 66
    assert topic == "0x" + "0" * 24 + DEPOSIT[2:].lower()


class TestPollOnce:

    def test_scans_confirmed_range_and_advances_cursor(self, mock_web3):
        mock_web3.eth.get_logs.return_value = [transfer_log(0x11, 2_500_000), transfer_log(0x22, 1_000_000, log_index=1)]
        deliver = Mock()
        cursor = MemoryCursor()
        watcher = make_watcher(mock_web3, deliver, cursor)

        assert watcher.poll_once() is True

        mock_web3.eth.get_logs.assert_called_once_with({
            "address": Web3.to_checksum_address(TOKEN),
            "fromBlock": 100,
            "toBlock": 107,
            "topics": [TRANSFER_TOPIC, None, address_topic(DEPOSIT)],
        })
        delivered = sorted((c.args[0] for c in deliver.call_args_list), key=lambda e: e.log_index)
        assert delivered == [
            DepositEvent("0x" + "11" * 32, SENDER, 2_500_000, 100, 0),
            DepositEvent("0x" + "22" * 32, SENDER, 1_000_000, 100, 1),
        ]
        assert cursor.block == 108

    def test_failed_delivery_keeps_cursor(self, mock_web3):
        mock_web3.eth.get_logs.return_value = [transfer_log(0x11, 2_500_000), transfer_log(0x22, 1_000_000)]
        deliver = Mock(side_effect=[None, SettlementFailedError("quote", "RATE_UNAVAILABLE", "down")])
        cursor = MemoryCursor(100)
        watcher = make_watcher(mock_web3, deliver, cursor)

        watcher.poll_once()

        assert deliver.call_count == 2
        assert cursor.block == 100

    def test_drops_zero_value_and_malformed_logs(self, mock_web3):
        mock_web3.eth.get_logs.return_value = [
            transfer_log(0x11, 0),
            {"malformed": True},
            {"args": {"to": DEPOSIT, "value": 5}, "transactionHash": b"\x33" * 32},
            transfer_log(0x44, 3_000_000),
        ]
        deliver = Mock()
        watcher = make_watcher(mock_web3, deliver, MemoryCursor())

        watcher.poll_once()

        deliver.assert_called_once()
        assert deliver.call_args.args[0].tx_hash == "0x" + "44" * 32

    def test_large_gap_is_scanned_in_chunks(self, mock_web3):
        mock_web3.eth.block_number = 10_000
        cursor = MemoryCursor()
        watcher = make_watcher(mock_web3, Mock(), cursor, start_block=0, max_block_range=2000)

        assert watcher.poll_once() is False

        query = mock_web3.eth.get_logs.call_args.args[0]
        assert (query["fromBlock"], query["toBlock"]) == (0, 1999)
        assert cursor.block == 2000

    def test_nothing_to_do_when_caught_up(self, mock_web3):
        watcher = make_watcher(mock_web3, Mock(), MemoryCursor(108))

        assert watcher.poll_once() is True
        mock_web3.eth.get_logs.assert_not_called()

    def test_starts_at_confirmed_head_without_cursor_or_start_block(self, mock_web3):
        cursor = MemoryCursor()
        watcher = make_watcher(mock_web3, Mock(), cursor, start_block=None)

        watcher.poll_once()

        query = mock_web3.eth.get_logs.call_args.args[0]
        assert query["fromBlock"] == 107
        assert cursor.block == 108


class TestRun:

    def test_stop_ends_the_loop(self, mock_web3):
        watcher = make_watcher(mock_web3, Mock(), MemoryCursor())

        def poll_then_stop():
            watcher.stop()
            return True

        with patch.object(watcher, "poll_once", side_effect=poll_then_stop) as poll:
            watcher.run()

        assert watcher.stopped
        assert poll.call_count == 1

    @pytest.mark.parametrize("error", [
        Web3Exception("rpc unavailable"),
        ValueError({"code": -32000, "message": "header not found"}),
    ])
    def test_rpc_errors_are_retried(self, mock_web3, error):
        watcher = make_watcher(mock_web3, Mock(), MemoryCursor())
        calls = []

        def flaky_poll():
            calls.append(1)
            if len(calls) == 1:
                raise error
            watcher.stop()
            return True

        with patch.object(watcher, "poll_once", side_effect=flaky_poll):
            watcher.run()

        assert len(calls) == 2


class TestDelivery:

    def test_webhook_posts_ingress_payload(self):
        session = Mock()
        deliver = WebhookDelivery("http://bridge.local/api/v1/internal/deposit-webhook", timeout=5.0,
                                  token="s3cret", session=session)

        deliver(DepositEvent("0x" + "11" * 32, SENDER, 2_500_000, 100, 0))

        session.post.assert_called_once_with(
            "http://bridge.local/api/v1/internal/deposit-webhook",
            json={"txHash": "0x" + "11" * 32, "from": SENDER, "amount": "2500000"},
            headers={"X-Internal-Token": "s3cret"},
            timeout=5.0,
        )
        session.post.return_value.raise_for_status.assert_called_once()

    def test_direct_delivery_raises_on_failure(self):
        orchestrator = Mock()
        orchestrator.process_deposit.return_value = SettlementResult.failed(
            "exchange", RuntimeError("boom"), tx_id="abc"
        )

        with pytest.raises(SettlementFailedError) as exc_info:
            DirectDelivery(orchestrator)(DepositEvent("0x" + "11" * 32, SENDER, 2_500_000, 100, 0))

        assert exc_info.value.reason == "INTERNAL_ERROR"
        assert exc_info.value.transaction_id == "abc"

    def test_direct_delivery_accepts_duplicates(self):
        orchestrator = Mock()
        orchestrator.process_deposit.return_value = SettlementResult.already_processed(None)

        DirectDelivery(orchestrator)(DepositEvent("0x" + "11" * 32, SENDER, 2_500_000, 100, 0))

        orchestrator.process_deposit.assert_called_once_with("0x" + "11" * 32, SENDER, 2_500_000)


def test_redis_cursor_roundtrip():
    client = Mock()
    client.get.return_value = "1234"
    cursor = RedisBlockCursor(client, "bridge:watcher:test")

    assert cursor.get() == 1234
    cursor.set(1300)
    client.set.assert_called_once_with("bridge:watcher:test", "1300")

    client.get.return_value = None
    assert cursor.get() is None
