"""
Curve math for every curve kind

Each CurveKind maps to a CurveOps entry in _KIND_OPS; the public functions
validate their inputs and dispatch on config.kind. Inverses are exact
monotone searches over the forward functions, so they inherit the forward
rounding without a second closed form to keep in sync.

Rounding always favours the reserve pool:
    buy_cost                  rounds up
    buy_amount_for_cost       rounds down
    sell_proceeds             rounds down
    sell_amount_for_proceeds  rounds up

Pure functions: no I/O, no logging, no state.
"""

from typing import Callable, NamedTuple

from curve_engine.core.curve_config import BPS_DENOMINATOR, CurveConfig, CurveKind
from curve_engine.core.errors import ArithmeticOverflow, InsufficientReserve
from curve_engine.core.fixed_point import (
    ONE,
    U64_MAX,
    Rounding,
    ceil_div,
    checked_add,
    checked_mul,
    checked_sub,
    div,
    isqrt,
    mul_div,
    q_pow,
    q_root,
    ratio_to_q,
    require_u64,
    to_u64,
)
from curve_engine.core.snapshot import ReserveSnapshot


class CurveOps(NamedTuple):
    """Per-kind formulas; amounts reaching these are already validated and > 0"""
    spot_price: Callable[[CurveConfig, ReserveSnapshot], int]
    buy_cost: Callable[[CurveConfig, ReserveSnapshot, int], int]
    sell_proceeds: Callable[[CurveConfig, ReserveSnapshot, int], int]


# =============================================================================
# CONSTANT RESERVE RATIO (Bancor)
# =============================================================================
#
#   spot          = R / (S * r)
#   buy_cost(T)   = R * ((1 + T/S) ** (1/r) - 1)
#   sell(T)       = R * (1 - (1 - T/S) ** (1/r))
#
# with R = reserve_balance, S = reserve_token_units, r = bps / 10000.

def _crr_growth_factor(config: CurveConfig, ratio_q: int) -> int:
    # (ratio ** (1/r)) in Q64.64, never below the exact value
    numerator, denominator = config.reserve_exponent
    return q_pow(q_root(ratio_q, denominator, Rounding.UP), numerator, Rounding.UP)


def _crr_spot_price(config: CurveConfig, snapshot: ReserveSnapshot) -> int:
    if snapshot.is_untraded:
        return config.initial_price
    return mul_div(
        checked_mul(snapshot.reserve_balance, BPS_DENOMINATOR),
        config.price_divisor,
        checked_mul(snapshot.reserve_token_units, config.reserve_ratio_bps)
    )


def _crr_buy_cost(config: CurveConfig, snapshot: ReserveSnapshot, tokens: int) -> int:
    if snapshot.is_untraded:
        return mul_div(tokens, config.initial_price, config.price_divisor, Rounding.UP)

    reserve = snapshot.reserve_balance
    supply = snapshot.reserve_token_units

    if config.reserve_exponent == (1, 1):
        return mul_div(reserve, tokens, supply, Rounding.UP)

    growth = ratio_to_q(checked_add(supply, tokens), supply, Rounding.UP)
    factor = _crr_growth_factor(config, growth)
    return checked_sub(mul_div(reserve, factor, ONE, Rounding.UP), reserve)


def _crr_sell_proceeds(config: CurveConfig, snapshot: ReserveSnapshot, tokens: int) -> int:
    reserve = snapshot.reserve_balance
    supply = snapshot.reserve_token_units
    if reserve == 0:
        return 0

    if config.reserve_exponent == (1, 1):
        return mul_div(reserve, tokens, supply, Rounding.DOWN)

    # Overestimating what stays in the pool underestimates what leaves it
    remaining = ratio_to_q(supply - tokens, supply, Rounding.UP)
    kept = mul_div(reserve, _crr_growth_factor(config, remaining), ONE, Rounding.UP)
    return reserve - kept


# =============================================================================
# SHAPE CURVES (linear / quadratic / square root)
# =============================================================================
#
# Price over circulating supply s with capacity X and delta = p1 - p0:
#   linear       P(s) = p0 + delta * s / X
#   quadratic    P(s) = p0 + delta * (s / X) ** 2
#   square root  P(s) = p0 + delta * sqrt(s / X)
# flat at p1 beyond X. The reserve integral F(s) = integral of P / D is kept
# as numerator / denominator so buys and sells round exactly once.

def _linear_numerator(config: CurveConfig, supply: int, rounding: Rounding) -> int:
    # F(s) * 2XD
    x, p0, p1 = config.capacity, config.initial_price, config.final_price
    if supply <= x:
        return checked_add(
            checked_mul(checked_mul(2 * x, p0), supply),
            checked_mul(config.price_delta, checked_mul(supply, supply))
        )
    full = checked_mul(checked_mul(x, x), p0 + p1)
    return checked_add(full, checked_mul(checked_mul(2 * x, p1), supply - x))


def _quadratic_numerator(config: CurveConfig, supply: int, rounding: Rounding) -> int:
    # F(s) * 3X^2 D
    x, p0, p1 = config.capacity, config.initial_price, config.final_price
    x_squared = checked_mul(x, x)
    if supply <= x:
        return checked_add(
            checked_mul(checked_mul(3 * x_squared, p0), supply),
            checked_mul(config.price_delta, checked_mul(checked_mul(supply, supply), supply))
        )
    full = checked_mul(checked_mul(x_squared, x), 3 * p0 + config.price_delta)
    return checked_add(full, checked_mul(checked_mul(3 * x_squared, p1), supply - x))


def _square_root_numerator(config: CurveConfig, supply: int, rounding: Rounding) -> int:
    # F(s) * 3XD; s * sqrt(s / X) == s * sqrt(sX) / X
    x, p0, p1 = config.capacity, config.initial_price, config.final_price
    if supply <= x:
        root = isqrt(checked_mul(supply, x), rounding)
        return checked_add(
            checked_mul(checked_mul(3 * x, p0), supply),
            checked_mul(2 * config.price_delta, checked_mul(supply, root))
        )
    full = checked_mul(checked_mul(x, x), 3 * p0 + 2 * config.price_delta)
    return checked_add(full, checked_mul(checked_mul(3 * x, p1), supply - x))


_SHAPE_NUMERATORS = {
    CurveKind.LINEAR: (_linear_numerator, lambda x: 2 * x),
    CurveKind.QUADRATIC: (_quadratic_numerator, lambda x: 3 * x * x),
    CurveKind.SQUARE_ROOT: (_square_root_numerator, lambda x: 3 * x),
}


def _shape_denominator(config: CurveConfig) -> int:
    _, scale = _SHAPE_NUMERATORS[config.kind]
    return checked_mul(scale(config.capacity), config.price_divisor)


def _shape_spot_price(config: CurveConfig, snapshot: ReserveSnapshot) -> int:
    supply, x = snapshot.total_supply, config.capacity
    if supply >= x:
        return config.final_price

    delta = config.price_delta
    if config.kind is CurveKind.LINEAR:
        step = mul_div(delta, supply, x)
    elif config.kind is CurveKind.QUADRATIC:
        step = mul_div(delta, checked_mul(supply, supply), checked_mul(x, x))
    else:
        step = mul_div(delta, isqrt(checked_mul(supply, x)), x)
    return config.initial_price + step


def _shape_buy_cost(config: CurveConfig, snapshot: ReserveSnapshot, tokens: int) -> int:
    numerator, _ = _SHAPE_NUMERATORS[config.kind]
    supply = snapshot.total_supply
    area = checked_sub(
        numerator(config, supply + tokens, Rounding.UP),
        numerator(config, supply, Rounding.DOWN)
    )
    return ceil_div(area, _shape_denominator(config))


def _shape_sell_proceeds(config: CurveConfig, snapshot: ReserveSnapshot, tokens: int) -> int:
    numerator, _ = _SHAPE_NUMERATORS[config.kind]
    supply = snapshot.total_supply
    high = numerator(config, supply, Rounding.DOWN)
    low = numerator(config, supply - tokens, Rounding.UP)
    if high <= low:
        return 0
    return div(high - low, _shape_denominator(config), Rounding.DOWN)


_SHAPE_OPS = CurveOps(
    spot_price=_shape_spot_price,
    buy_cost=_shape_buy_cost,
    sell_proceeds=_shape_sell_proceeds,
)

_KIND_OPS = {
    CurveKind.CONSTANT_RESERVE_RATIO: CurveOps(
        spot_price=_crr_spot_price,
        buy_cost=_crr_buy_cost,
        sell_proceeds=_crr_sell_proceeds,
    ),
    CurveKind.LINEAR: _SHAPE_OPS,
    CurveKind.QUADRATIC: _SHAPE_OPS,
    CurveKind.SQUARE_ROOT: _SHAPE_OPS,
}


# =============================================================================
# PUBLIC OPERATIONS
# =============================================================================

def spot_price(config: CurveConfig, snapshot: ReserveSnapshot) -> int:
    """
    Current marginal price in price units (lamports per whole token * PRICE_SCALE)

    An untraded constant-reserve-ratio curve reports config.initial_price.
    """
    return _KIND_OPS[config.kind].spot_price(config, snapshot)


def buy_room(snapshot: ReserveSnapshot) -> int:
    """Most tokens a buy can mint before a u64 counter overflows"""
    return U64_MAX - max(snapshot.total_supply, snapshot.reserve_token_units)


def sell_limit(config: CurveConfig, snapshot: ReserveSnapshot) -> int:
    """
    Most tokens a sell can burn

    Shape curves only account for total_supply; a reserve-ratio curve also
    cannot burn more than its reserve_token_units.
    """
    if config.kind.is_shape:
        return snapshot.total_supply
    return min(snapshot.total_supply, snapshot.reserve_token_units)


def buy_cost(config: CurveConfig, snapshot: ReserveSnapshot, token_amount: int) -> int:
    """
    Lamports required to mint token_amount more base units (rounded up)

    Raises:
        InvalidAmount: If token_amount is not a u64
        ArithmeticOverflow: If supply or cost leaves the representable range
    """
    tokens = require_u64("token_amount", token_amount)
    if tokens == 0:
        return 0
    if tokens > buy_room(snapshot):
        raise ArithmeticOverflow("buy_cost", "token supply would exceed u64")

    cost = _KIND_OPS[config.kind].buy_cost(config, snapshot, tokens)
    return to_u64(cost, "buy_cost")


def sell_proceeds(config: CurveConfig, snapshot: ReserveSnapshot, token_amount: int) -> int:
    """
    Lamports released by burning token_amount base units (rounded down)

    Raises:
        InvalidAmount: If token_amount is not a u64
        InsufficientReserve: If the amount exceeds sell_limit or the
            proceeds would exceed reserve_balance
    """
    tokens = require_u64("token_amount", token_amount)
    if tokens == 0:
        return 0
    if tokens > snapshot.total_supply:
        raise InsufficientReserve("total_supply", tokens, snapshot.total_supply)
    if not config.kind.is_shape and tokens > snapshot.reserve_token_units:
        raise InsufficientReserve("reserve_token_units", tokens, snapshot.reserve_token_units)

    proceeds = _KIND_OPS[config.kind].sell_proceeds(config, snapshot, tokens)
    if proceeds > snapshot.reserve_balance:
        raise InsufficientReserve("reserve_balance", proceeds, snapshot.reserve_balance)
    return proceeds


def _estimate_tokens(config: CurveConfig, snapshot: ReserveSnapshot, lamports: int, limit: int) -> int:
    # Linear estimate from the current spot price, seeds the search
    price = spot_price(config, snapshot)
    if price == 0:
        return limit
    estimate = mul_div(lamports, config.price_divisor, price)
    return min(max(estimate, 1), limit)


def _largest_within(fits: Callable[[int], bool], upper: int, start: int) -> int:
    """Largest t in [0, upper] with fits(t); fits must be monotone and fits(0)"""
    if upper == 0:
        return 0

    guess = min(max(start, 1), upper)
    if fits(guess):
        low = guess
        while True:
            if low == upper:
                return upper
            candidate = min(low * 2, upper)
            if not fits(candidate):
                high = candidate
                break
            low = candidate
    else:
        high = guess
        low = guess // 2
        while low > 0 and not fits(low):
            high = low
            low //= 2

    while high - low > 1:
        mid = (low + high) // 2
        if fits(mid):
            low = mid
        else:
            high = mid
    return low


def _smallest_reaching(reaches: Callable[[int], bool], upper: int, start: int) -> int:
    """Smallest t in [1, upper] with reaches(t); reaches(upper) must hold"""
    guess = min(max(start, 1), upper)
    if reaches(guess):
        high = guess
        low = guess // 2
        while low > 0 and reaches(low):
            high = low
            low //= 2
    else:
        low = guess
        while True:
            candidate = min(low * 2, upper)
            if reaches(candidate):
                high = candidate
                break
            low = candidate

    while high - low > 1:
        mid = (low + high) // 2
        if reaches(mid):
            high = mid
        else:
            low = mid
    return high


def buy_amount_for_cost(config: CurveConfig, snapshot: ReserveSnapshot, reserve_cost: int) -> int:
    """
    Largest token amount whose buy_cost does not exceed reserve_cost

    A size whose cost overflows counts as unaffordable. A zero-price
    untraded curve returns the largest amount the supply counters allow.

    Raises:
        InvalidAmount: If reserve_cost is not a u64
    """
    budget = require_u64("reserve_cost", reserve_cost)
    room = buy_room(snapshot)

    def fits(tokens: int) -> bool:
        try:
            return buy_cost(config, snapshot, tokens) <= budget
        except ArithmeticOverflow:
            return False

    start = _estimate_tokens(config, snapshot, budget, room) if room else 0
    return _largest_within(fits, room, start)


def sell_amount_for_proceeds(config: CurveConfig, snapshot: ReserveSnapshot, reserve_proceeds: int) -> int:
    """
    Smallest token amount whose sell_proceeds reach reserve_proceeds

    Raises:
        InvalidAmount: If reserve_proceeds is not a u64
        InsufficientReserve: If the target exceeds reserve_balance or what
            selling every sellable token would return
    """
    target = require_u64("reserve_proceeds", reserve_proceeds)
    if target == 0:
        return 0
    if target > snapshot.reserve_balance:
        raise InsufficientReserve("reserve_balance", target, snapshot.reserve_balance)

    upper = sell_limit(config, snapshot)

    def reaches(tokens: int) -> bool:
        try:
            return sell_proceeds(config, snapshot, tokens) >= target
        except InsufficientReserve:
            # Draining past the reserve is past the target too
            return True

    if upper == 0 or not reaches(upper):
        available = sell_proceeds(config, snapshot, upper)
        raise InsufficientReserve("sell_proceeds", target, available)

    tokens = _smallest_reaching(reaches, upper, _estimate_tokens(config, snapshot, target, upper))
    # Raises if even the smallest sufficient sell drains more than the reserve
    sell_proceeds(config, snapshot, tokens)
    return tokens
