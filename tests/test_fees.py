from decimal import Decimal

import pytest

from bridge.services.fees import floor_rate, format_units, quote_payout


def test_quote_one_usdc_at_15000():
    quote = quote_payout(1_000_000, 15_000)

    assert quote.gross_fiat == 15_000
    assert quote.fee == 75
    assert quote.net_fiat == 14_925


def test_quote_floors_gross_and_net():
    # 2.5 USDC @ 15850 IDR
    quote = quote_payout(2_500_000, 15_850)

    assert quote.gross_fiat == 39_625
    assert quote.fee == 199
    assert quote.net_fiat == 39_426
    assert quote.gross_fiat == quote.fee + quote.net_fiat


@pytest.mark.parametrize("stable_amount,rate,expected_net,expected_fee", [
    # gross 39625: 0.5% is 198.125, net 39426.875
    (2_500_000, 15_850, 39_426, 199),
    # gross 201: 0.5% is 1.005, net 199.995
    (201, 1_000_000, 199, 2),
    # gross 199: 0.5% is 0.995, net 198.005
    (199, 1_000_000, 198, 1),
])
def test_quote_fractional_rupiah_stays_with_fee(stable_amount, rate, expected_net, expected_fee):
    quote = quote_payout(stable_amount, rate)

    assert quote.net_fiat == expected_net
    assert quote.fee == expected_fee
    assert quote.net_fiat * 10_000 <= quote.gross_fiat * 9_950


def test_quote_dust_amount_pays_nothing():
    quote = quote_payout(1, 15_850)

    assert quote.gross_fiat == 0
    assert quote.net_fiat == 0


def test_quote_large_amount_stays_exact():
    # one million USDC, no float drift
    quote = quote_payout(1_000_000 * 10**6, 16_123)

    assert quote.gross_fiat == 16_123_000_000
    assert quote.fee == 80_615_000
    assert quote.net_fiat == 16_042_385_000


def test_quote_respects_decimals():
    assert quote_payout(25, 15_850, decimals=1).gross_fiat == 39_625


def test_quote_rejects_negative_input():
    with pytest.raises(ValueError):
        quote_payout(-1, 15_000)
    with pytest.raises(ValueError):
        quote_payout(1, -15_000)


@pytest.mark.parametrize("price,expected", [
    (Decimal("15850"), 15850),
    (Decimal("15850.99"), 15850),
    (Decimal("0.5"), 0),
])
def test_floor_rate_never_rounds_up(price, expected):
    assert floor_rate(price) == expected


@pytest.mark.parametrize("amount,decimals,expected", [
    (1_500_000, 6, "1.5"),
    (1_000_000, 6, "1"),
    (2_500_000, 6, "2.5"),
    (1, 6, "0.000001"),
    (0, 6, "0"),
    (123, 0, "123"),
])
def test_format_units(amount, decimals, expected):
    assert format_units(amount, decimals) == expected
