from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR

FEE_BASIS_POINTS = 50  # 0.5%
BASIS_POINTS_DIVISOR = 10_000
STABLE_DECIMALS = 6


@dataclass(frozen=True)
class Quote:
    stable_amount: int  # atomic units
    rate: int           # fiat per whole stablecoin
    gross_fiat: int
    fee: int
    net_fiat: int


def floor_rate(price: Decimal) -> int:
    """Exchange prices for IDR pairs are whole Rupiah; never round a bid up."""
    return int(price.to_integral_value(rounding=ROUND_FLOOR))


def quote_payout(stable_amount: int, rate: int, decimals: int = STABLE_DECIMALS) -> Quote:
    """
    gross = floor(stable_amount * rate / 10**decimals)
    net   = floor(gross * (10000 - 50) / 10000)
    fee   = gross - net

    Integer arithmetic only. The net side is floored, so a fractional
    Rupiah always stays with the fee and is never paid out.
    """
    if stable_amount < 0:
        raise ValueError("stable_amount must be >= 0")
    if rate < 0:
        raise ValueError("rate must be >= 0")

    gross = stable_amount * rate // 10 ** decimals
    net = gross * (BASIS_POINTS_DIVISOR - FEE_BASIS_POINTS) // BASIS_POINTS_DIVISOR
    return Quote(
        stable_amount=stable_amount,
        rate=rate,
        gross_fiat=gross,
        fee=gross - net,
        net_fiat=net,
    )


def format_units(amount: int, decimals: int) -> str:
    """Atomic integer -> decimal string without float (1_500_000, 6 -> "1.5")."""
    sign = "-" if amount < 0 else ""
    whole, frac = divmod(abs(amount), 10 ** decimals)
    frac_str = str(frac).rjust(decimals, "0").rstrip("0") if decimals else ""
    return f"{sign}{whole}.{frac_str}" if frac_str else f"{sign}{whole}"
