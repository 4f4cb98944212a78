"""
Quote Engine for bonding curve tokens
Single entry point that turns a (config, snapshot, direction, amount) request into a Quote
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from curve_engine.core.curve_config import CurveConfig
from curve_engine.core.curves import (
    buy_amount_for_cost,
    buy_cost,
    sell_amount_for_proceeds,
    sell_proceeds,
    spot_price,
)
from curve_engine.core.errors import EngineError
from curve_engine.core.logger import get_logger
from curve_engine.core.snapshot import ReserveSnapshot


logger = get_logger(__name__)

__all__ = [
    "Direction",
    "Quote",
    "QuoteResult",
    "quote",
    "try_quote",
    "spot_price",
    "buy_cost",
    "buy_amount_for_cost",
    "sell_proceeds",
    "sell_amount_for_proceeds",
]


class Direction(Enum):
    """Which of the four operations a quote answers"""
    BUY_EXACT = "buy_exact"                  # tokens in -> lamports cost
    BUY_FOR_COST = "buy_for_cost"            # lamports budget -> tokens
    SELL_EXACT = "sell_exact"                # tokens in -> lamports proceeds
    SELL_FOR_PROCEEDS = "sell_for_proceeds"  # lamports wanted -> tokens

    @property
    def is_buy(self) -> bool:
        return self in (Direction.BUY_EXACT, Direction.BUY_FOR_COST)


@dataclass(frozen=True)
class Quote:
    """
    Quote for one hypothetical trade

    input_amount/output_amount units depend on direction:
    - BUY_EXACT: tokens in, lamports out (cost)
    - BUY_FOR_COST: lamports in (budget), tokens out
    - SELL_EXACT: tokens in, lamports out (proceeds)
    - SELL_FOR_PROCEEDS: lamports in (target), tokens out

    Spot prices are price units. snapshot is the state the quote was
    derived from; discard the quote once that snapshot is stale.
    """
    direction: Direction
    input_amount: int
    output_amount: int
    spot_price_before: int
    spot_price_after: int
    snapshot: ReserveSnapshot

    @property
    def token_amount(self) -> int:
        """Token base units that change hands"""
        if self.direction in (Direction.BUY_EXACT, Direction.SELL_EXACT):
            return self.input_amount
        return self.output_amount

    @property
    def reserve_amount(self) -> int:
        """Lamports the requested token amount costs or returns"""
        if self.direction in (Direction.BUY_EXACT, Direction.SELL_EXACT):
            return self.output_amount
        return self.input_amount


@dataclass(frozen=True)
class QuoteResult:
    """Typed result form of quote() for callers that branch instead of catching"""
    success: bool
    quote: Optional[Quote] = None
    error: Optional[EngineError] = None


def _parse_direction(direction: Union[Direction, str]) -> Direction:
    if isinstance(direction, Direction):
        return direction
    try:
        return Direction(direction)
    except ValueError:
        raise EngineError(f"unknown quote direction: {direction!r}") from None


def quote(
    config: CurveConfig,
    snapshot: ReserveSnapshot,
    direction: Union[Direction, str],
    amount: int
) -> Quote:
    """
    Compute a quote against a snapshot

    Args:
        config: Curve parameters
        snapshot: Reserve counters the quote is derived from
        direction: Operation to perform
        amount: Tokens for *_EXACT directions, lamports otherwise

    Returns:
        Quote with amounts and spot prices before and after the trade

    Raises:
        EngineError: InvalidAmount, ArithmeticOverflow or InsufficientReserve

    Example:
        q = quote(config, snapshot, Direction.BUY_EXACT, 10_000_000_000)
        print(f"Cost: {q.output_amount:,} lamports")
    """
    direction = _parse_direction(direction)
    price_before = spot_price(config, snapshot)

    if direction is Direction.BUY_EXACT:
        tokens = amount
        lamports = buy_cost(config, snapshot, tokens)
        output = lamports
    elif direction is Direction.BUY_FOR_COST:
        tokens = buy_amount_for_cost(config, snapshot, amount)
        lamports = buy_cost(config, snapshot, tokens)
        output = tokens
    elif direction is Direction.SELL_EXACT:
        tokens = amount
        lamports = sell_proceeds(config, snapshot, tokens)
        output = lamports
    else:
        tokens = sell_amount_for_proceeds(config, snapshot, amount)
        lamports = sell_proceeds(config, snapshot, tokens)
        output = tokens

    tracks_reserve = not config.kind.is_shape
    if direction.is_buy:
        after = snapshot.after_buy(tokens, lamports, track_reserve_tokens=tracks_reserve)
    else:
        after = snapshot.after_sell(tokens, lamports, track_reserve_tokens=tracks_reserve)
    price_after = spot_price(config, after)

    logger.debug(
        "quote_computed",
        kind=config.kind.value,
        direction=direction.value,
        input_amount=amount,
        output_amount=output,
        spot_price_before=price_before,
        spot_price_after=price_after,
        slot=snapshot.slot
    )

    return Quote(
        direction=direction,
        input_amount=amount,
        output_amount=output,
        spot_price_before=price_before,
        spot_price_after=price_after,
        snapshot=snapshot
    )


def try_quote(
    config: CurveConfig,
    snapshot: ReserveSnapshot,
    direction: Union[Direction, str],
    amount: int
) -> QuoteResult:
    """
    Same as quote() but returns engine failures as a QuoteResult

    Returns:
        QuoteResult with success=True and the quote, or success=False and
        the EngineError that explains which operand was rejected
    """
    try:
        return QuoteResult(success=True, quote=quote(config, snapshot, direction, amount))
    except EngineError as e:
        logger.warning(
            "quote_rejected",
            direction=str(getattr(direction, "value", direction)),
            amount=amount,
            error_type=type(e).__name__,
            error=str(e)
        )
        return QuoteResult(success=False, error=e)
