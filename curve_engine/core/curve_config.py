"""
Curve configuration for bonding curve tokens
Immutable, validated parameters for one token's issuance curve
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, localcontext
from enum import Enum
from math import gcd
from typing import Any, Tuple, Union

from curve_engine.core.errors import InvalidCurveConfig
from curve_engine.core.fixed_point import U64_MAX, U128_MAX


LAMPORTS_PER_SOL = 1_000_000_000

# Prices are integer lamports per whole token, scaled by PRICE_SCALE
PRICE_SCALE = 1_000_000_000

BPS_DENOMINATOR = 10_000
MAX_TOKEN_DECIMALS = 18
DEFAULT_TOKEN_DECIMALS = 9

# On-chain default reserve ratio is 5000 bps
DEFAULT_RESERVE_RATIO = 50


class CurveKind(Enum):
    """Curve shape tag; operations dispatch on this value"""
    CONSTANT_RESERVE_RATIO = "constant_reserve_ratio"
    LINEAR = "linear"
    QUADRATIC = "quadratic"
    SQUARE_ROOT = "square_root"

    @property
    def is_shape(self) -> bool:
        """True for kinds priced from (initial, final, target raise)"""
        return self is not CurveKind.CONSTANT_RESERVE_RATIO

    @classmethod
    def from_template(cls, name: str) -> "CurveKind":
        """
        Map a deployer template name to a curve kind

        Accepts the deployer's template names (linear, exponential,
        logarithmic, custom) as well as the kind values themselves.

        Raises:
            InvalidCurveConfig: If the name is unknown
        """
        key = str(name).strip().lower()
        if key in _TEMPLATE_KINDS:
            return _TEMPLATE_KINDS[key]
        try:
            return cls(key)
        except ValueError:
            raise InvalidCurveConfig("kind", name, "unknown curve template") from None


_TEMPLATE_KINDS = {
    "linear": CurveKind.LINEAR,
    "exponential": CurveKind.QUADRATIC,
    "logarithmic": CurveKind.SQUARE_ROOT,
    "custom": CurveKind.CONSTANT_RESERVE_RATIO,
}


def _require_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidCurveConfig(name, value, "must be an integer")
    return value


def _to_decimal(name: str, value: Any) -> Decimal:
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidCurveConfig(name, value, "pass a Decimal, str or int, not a float")
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidCurveConfig(name, value, "not a number") from None
    if not result.is_finite():
        raise InvalidCurveConfig(name, value, "must be finite")
    return result


def _scale_exact(name: str, value: Any, scale: int) -> int:
    amount = _to_decimal(name, value)
    with localcontext() as ctx:
        ctx.prec = 80
        scaled = amount * scale
    if scaled != scaled.to_integral_value():
        raise InvalidCurveConfig(name, value, f"more precision than 1/{scale} of a SOL")
    return int(scaled)


@dataclass(frozen=True)
class CurveConfig:
    """
    Issuance curve parameters

    All prices are integer price units (lamports per whole token times
    PRICE_SCALE). target_raise is in lamports. reserve_ratio is a percentage
    in (0, 100] with basis-point resolution.

    Derived fields (reserve_ratio_bps, capacity) are computed at
    construction. capacity is the token amount in base units at which a
    shape curve reaches final_price; it is 0 for the constant reserve
    ratio kind.
    """
    initial_price: int
    final_price: int
    target_raise: int
    reserve_ratio: Union[int, Decimal] = DEFAULT_RESERVE_RATIO
    token_decimals: int = DEFAULT_TOKEN_DECIMALS
    kind: CurveKind = CurveKind.CONSTANT_RESERVE_RATIO
    reserve_ratio_bps: int = field(init=False, default=0)
    capacity: int = field(init=False, default=0)

    def __post_init__(self):
        if not isinstance(self.kind, CurveKind):
            raise InvalidCurveConfig("kind", self.kind, "must be a CurveKind")

        initial_price = _require_int("initial_price", self.initial_price)
        final_price = _require_int("final_price", self.final_price)
        target_raise = _require_int("target_raise", self.target_raise)
        decimals = _require_int("token_decimals", self.token_decimals)

        if initial_price < 0:
            raise InvalidCurveConfig("initial_price", initial_price, "must be non-negative")
        if final_price <= initial_price:
            raise InvalidCurveConfig("final_price", final_price, "must be greater than initial_price")
        if final_price > U128_MAX:
            raise InvalidCurveConfig("final_price", final_price, "exceeds u128 range")
        if target_raise <= 0:
            raise InvalidCurveConfig("target_raise", target_raise, "must be positive")
        if target_raise > U64_MAX:
            raise InvalidCurveConfig("target_raise", target_raise, "exceeds u64 range")
        if not 0 <= decimals <= MAX_TOKEN_DECIMALS:
            raise InvalidCurveConfig(
                "token_decimals", decimals, f"must be between 0 and {MAX_TOKEN_DECIMALS}"
            )

        object.__setattr__(self, "reserve_ratio_bps", self._validate_reserve_ratio())
        object.__setattr__(self, "capacity", self._compute_capacity())

    def _validate_reserve_ratio(self) -> int:
        if isinstance(self.reserve_ratio, bool) or not isinstance(self.reserve_ratio, (int, Decimal)):
            raise InvalidCurveConfig("reserve_ratio", self.reserve_ratio, "must be an int or Decimal percentage")

        ratio = _to_decimal("reserve_ratio", self.reserve_ratio)
        if ratio <= 0 or ratio > 100:
            raise InvalidCurveConfig("reserve_ratio", self.reserve_ratio, "must be in (0, 100]")

        bps = ratio * 100
        if bps != bps.to_integral_value():
            raise InvalidCurveConfig("reserve_ratio", self.reserve_ratio, "finer than one basis point")
        return int(bps)

    def _compute_capacity(self) -> int:
        if not self.kind.is_shape:
            return 0

        p0, p1 = self.initial_price, self.final_price
        scaled_raise = self.target_raise * self.price_divisor

        # Area under P/D on [0, X] equals target_raise
        if self.kind is CurveKind.LINEAR:
            capacity = 2 * scaled_raise // (p0 + p1)
        elif self.kind is CurveKind.QUADRATIC:
            capacity = 3 * scaled_raise // (2 * p0 + p1)
        else:
            capacity = 3 * scaled_raise // (p0 + 2 * p1)

        if capacity == 0:
            raise InvalidCurveConfig("target_raise", self.target_raise, "too small to issue one base unit")
        if capacity > U64_MAX:
            raise InvalidCurveConfig("target_raise", self.target_raise, "curve capacity exceeds u64 supply")
        return capacity

    @property
    def price_divisor(self) -> int:
        """Divides a price to give lamports per token base unit"""
        return PRICE_SCALE * 10 ** self.token_decimals

    @property
    def price_delta(self) -> int:
        return self.final_price - self.initial_price

    @property
    def reserve_exponent(self) -> Tuple[int, int]:
        """
        Bancor exponent 1/ratio as a reduced fraction (numerator, denominator)

        5000 bps gives (2, 1); 3000 bps gives (10, 3); 10000 bps gives (1, 1).
        """
        divisor = gcd(BPS_DENOMINATOR, self.reserve_ratio_bps)
        return BPS_DENOMINATOR // divisor, self.reserve_ratio_bps // divisor

    @classmethod
    def from_sol(
        cls,
        initial_price_sol: Any,
        final_price_sol: Any,
        target_raise_sol: Any,
        reserve_ratio: Any = DEFAULT_RESERVE_RATIO,
        token_decimals: int = DEFAULT_TOKEN_DECIMALS,
        kind: Union[CurveKind, str] = CurveKind.CONSTANT_RESERVE_RATIO
    ) -> "CurveConfig":
        """
        Build a config from human units

        Args:
            initial_price_sol: SOL per whole token (Decimal, str or int)
            final_price_sol: SOL per whole token
            target_raise_sol: SOL the curve should absorb
            reserve_ratio: Percentage in (0, 100]
            token_decimals: Token base-unit scale
            kind: CurveKind or template name

        Returns:
            Validated CurveConfig

        Raises:
            InvalidCurveConfig: If any value is malformed, out of range or
                more precise than its integer unit

        Example:
            config = CurveConfig.from_sol("0.005", "0.05", "85", reserve_ratio=50)
        """
        if not isinstance(kind, CurveKind):
            kind = CurveKind.from_template(kind)

        ratio = _to_decimal("reserve_ratio", reserve_ratio)
        if ratio == ratio.to_integral_value():
            ratio = int(ratio)

        return cls(
            initial_price=_scale_exact("initial_price", initial_price_sol, LAMPORTS_PER_SOL * PRICE_SCALE),
            final_price=_scale_exact("final_price", final_price_sol, LAMPORTS_PER_SOL * PRICE_SCALE),
            target_raise=_scale_exact("target_raise", target_raise_sol, LAMPORTS_PER_SOL),
            reserve_ratio=ratio,
            token_decimals=token_decimals,
            kind=kind
        )
