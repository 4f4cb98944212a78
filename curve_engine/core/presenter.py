"""
Price presentation for bonding curve quotes
Converts engine integers into SOL, fiat and progress figures for display
"""

from decimal import Decimal
from typing import Dict, Optional, Union

from curve_engine.core.curve_config import BPS_DENOMINATOR, LAMPORTS_PER_SOL, PRICE_SCALE, CurveConfig
from curve_engine.core.curves import spot_price
from curve_engine.core.errors import PriceOracleError
from curve_engine.core.fixed_point import mul_div
from curve_engine.core.quote_engine import Quote
from curve_engine.core.snapshot import ReserveSnapshot


class PricePresenter:
    """
    Display-side conversions

    Floating point is allowed here and nowhere in the engine. The fiat
    rate (fiat per SOL) is supplied by the caller, usually from
    SolPriceOracle, and can be overridden per call.

    Usage:
        presenter = PricePresenter(fiat_rate=150.0)
        print(presenter.format_price(quote.spot_price_after))
    """

    def __init__(self, fiat_rate: Optional[float] = None, fiat_symbol: str = "USD"):
        self.fiat_rate = fiat_rate
        self.fiat_symbol = fiat_symbol

    @staticmethod
    def price_to_sol(price: int) -> Decimal:
        """SOL per whole token"""
        return Decimal(price) / (Decimal(PRICE_SCALE) * LAMPORTS_PER_SOL)

    @staticmethod
    def price_per_base_unit(price: int, token_decimals: int) -> Decimal:
        """Lamports per token base unit"""
        return Decimal(price) / (Decimal(PRICE_SCALE) * 10 ** token_decimals)

    @staticmethod
    def lamports_to_sol(lamports: int) -> Decimal:
        return Decimal(lamports) / LAMPORTS_PER_SOL

    @staticmethod
    def tokens_to_whole(amount: int, token_decimals: int) -> Decimal:
        return Decimal(amount) / (Decimal(10) ** token_decimals)

    def to_fiat(self, price: int, rate: Optional[Union[float, Decimal]] = None) -> float:
        """
        Fiat value of one whole token

        Args:
            price: Price units
            rate: Fiat per SOL; falls back to the presenter's rate

        Raises:
            PriceOracleError: If no rate is available
            ValueError: If the rate is negative
        """
        rate = self.fiat_rate if rate is None else rate
        if rate is None:
            raise PriceOracleError("no fiat rate supplied")
        if rate < 0:
            raise ValueError(f"fiat rate must be non-negative, got {rate}")
        return float(self.price_to_sol(price)) * float(rate)

    def format_price(self, price: int, precision: int = 9) -> str:
        """Human readable price, with fiat when a rate is known"""
        text = f"{self.price_to_sol(price):.{precision}f} SOL"
        if self.fiat_rate is not None:
            text += f" ({self.to_fiat(price):,.6f} {self.fiat_symbol})"
        return text

    @staticmethod
    def market_cap_lamports(config: CurveConfig, snapshot: ReserveSnapshot) -> int:
        """Circulating supply valued at the current spot price"""
        return mul_div(snapshot.total_supply, spot_price(config, snapshot), config.price_divisor)

    @staticmethod
    def raise_progress_bps(config: CurveConfig, snapshot: ReserveSnapshot) -> int:
        """Reserve balance as basis points of the target raise, capped at 10000"""
        return min(BPS_DENOMINATOR, snapshot.reserve_balance * BPS_DENOMINATOR // config.target_raise)

    @staticmethod
    def target_reached(config: CurveConfig, snapshot: ReserveSnapshot) -> bool:
        """Reserve has absorbed the configured target raise"""
        return snapshot.reserve_balance >= config.target_raise

    @staticmethod
    def price_impact_bps(quote: Quote) -> int:
        """Spot price move caused by the quoted trade, signed, in basis points"""
        if quote.spot_price_before == 0:
            return 0
        move = quote.spot_price_after - quote.spot_price_before
        # Truncate toward zero for both signs
        magnitude = abs(move) * BPS_DENOMINATOR // quote.spot_price_before
        return magnitude if move >= 0 else -magnitude

    def describe_quote(self, config: CurveConfig, quote: Quote) -> Dict[str, str]:
        """
        Display fields for a quote

        Returns:
            Dictionary of strings suitable for a UI or a log line
        """
        description = {
            "direction": quote.direction.value,
            "tokens": str(self.tokens_to_whole(quote.token_amount, config.token_decimals)),
            "sol": str(self.lamports_to_sol(quote.reserve_amount)),
            "spot_price_before": self.format_price(quote.spot_price_before),
            "spot_price_after": self.format_price(quote.spot_price_after),
            "price_impact_bps": str(self.price_impact_bps(quote)),
        }
        if self.fiat_rate is not None:
            description["fiat_value"] = (
                f"{float(self.lamports_to_sol(quote.reserve_amount)) * float(self.fiat_rate):,.2f} {self.fiat_symbol}"
            )
        return description
