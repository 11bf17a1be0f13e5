import os
import sys
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add the parent directory to the path so we can import bridge modules
sys.path.insert(0, str(Path(__file__).parent.parent))

# Settings are read at import time; configure them before importing bridge
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CHAIN_RPC_URL"] = "http://localhost:8545"
os.environ["DEPOSIT_WALLET_ADDRESS"] = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
os.environ["STABLECOIN_CONTRACT_ADDRESS"] = "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"
os.environ["EXCHANGE_API_KEY"] = "test-api-key"
os.environ["EXCHANGE_SECRET_KEY"] = "test-secret-key"
os.environ["PAYOUT_SECRET_KEY"] = "xnd_development_test"

from eth_account import Account
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from bridge.db.base import Base
from bridge.models import BridgeStatusChange, BridgeTransaction, PayoutDestination  # noqa: F401
from bridge.services.destinations import Destination
from bridge.services.settlement import SettlementOrchestrator


@pytest.fixture()
def engine(tmp_path):
    """File-backed sqlite so several sessions (and threads) see the same data."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'bridge.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client_wallet():
    return Account.create().address


@pytest.fixture()
def rate_oracle():
    mock = Mock()
    mock.best_bid.return_value = Decimal("15850.75")
    return mock


@pytest.fixture()
def exchange():
    mock = Mock()
    mock.sell.return_value = "ord-1"
    return mock


@pytest.fixture()
def payouts():
    mock = Mock()
    mock.payout.return_value = "disb-1"
    return mock


@pytest.fixture()
def publisher():
    return Mock()


@pytest.fixture()
def fallback_destination():
    return Destination("BCA", "1234567890", "Budi Santoso")


@pytest.fixture()
def orchestrator(session_factory, rate_oracle, exchange, payouts, publisher, fallback_destination):
    return SettlementOrchestrator(
        session_factory=session_factory,
        rate_oracle=rate_oracle,
        exchange=exchange,
        payouts=payouts,
        pair="usdc_idr",
        stable_decimals=6,
        fallback_destination=fallback_destination,
        publisher=publisher,
    )
