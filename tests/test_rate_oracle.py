from decimal import Decimal
from unittest.mock import Mock

import pytest
import requests

from bridge.core.errors import NoLiquidityError, UpstreamResponseError, UpstreamUnavailableError
from bridge.services.rate_oracle import IndodaxRateOracle


def ticker(buy):
    response = Mock()
    response.status_code = 200
    response.json.return_value = {
        "ticker": {"high": "16100", "low": "15700", "buy": buy, "sell": "15900", "last": "15880", "server_time": 1700000000}
    }
    return response


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def oracle(session):
    return IndodaxRateOracle("https://indodax.example", timeout=3.0, session=session)


def test_best_bid_is_the_buy_side(oracle, session):
    session.request.return_value = ticker("15850.5")

    assert oracle.best_bid("usdc_idr") == Decimal("15850.5")
    session.request.assert_called_once_with("GET", "https://indodax.example/api/ticker/usdc_idr", timeout=3.0)


def test_ticker_with_only_buy_side(oracle, session):
    response = Mock(status_code=200)
    response.json.return_value = {"ticker": {"buy": "15850.5"}}
    session.request.return_value = response

    assert oracle.best_bid("usdc_idr") == Decimal("15850.5")


def test_zero_bid_means_no_liquidity(oracle, session):
    session.request.return_value = ticker("0")

    with pytest.raises(NoLiquidityError):
        oracle.best_bid("usdc_idr")


@pytest.mark.parametrize("buy", ["abc", "-1", "NaN", "Infinity"])
def test_garbage_price(oracle, session, buy):
    session.request.return_value = ticker(buy)

    with pytest.raises(UpstreamResponseError):
        oracle.best_bid("usdc_idr")


def test_missing_ticker(oracle, session):
    response = Mock(status_code=200, text='{"error": "invalid pair"}')
    response.json.return_value = {"error": "invalid pair"}
    session.request.return_value = response

    with pytest.raises(UpstreamResponseError):
        oracle.best_bid("xyz_idr")


def test_not_found(oracle, session):
    session.request.return_value = Mock(status_code=404, text="Not Found")

    with pytest.raises(UpstreamUnavailableError):
        oracle.best_bid("usdc_idr")


def test_timeout(oracle, session):
    session.request.side_effect = requests.Timeout()

    with pytest.raises(UpstreamUnavailableError):
        oracle.best_bid("usdc_idr")
