"""
Overflow-checked integer primitives for curve math

Python integers never wrap, so every primitive here checks its result
against an explicit wide-integer bound (256 bits) and raises
ArithmeticOverflow instead of returning a value the on-chain program could
not represent. Division always takes an explicit rounding direction.

Fractional growth factors use unsigned Q64.64 fixed point (ONE == 2**64).
"""

import math
from enum import Enum
from typing import Any

from curve_engine.core.errors import ArithmeticOverflow, InvalidAmount


U64_MAX = (1 << 64) - 1
U128_MAX = (1 << 128) - 1
U256_MAX = (1 << 256) - 1

# Bound for every intermediate product
WIDE_MAX = U256_MAX

Q_FRACTION_BITS = 64
ONE = 1 << Q_FRACTION_BITS


class Rounding(Enum):
    """Direction for any lossy integer step"""
    DOWN = "down"
    UP = "up"


def _wide(value: int, operation: str) -> int:
    if value < 0:
        raise ArithmeticOverflow(operation, "result would underflow zero")
    if value > WIDE_MAX:
        raise ArithmeticOverflow(operation, f"result exceeds {WIDE_MAX.bit_length()}-bit bound")
    return value


def checked_add(a: int, b: int) -> int:
    return _wide(a + b, "add")


def checked_sub(a: int, b: int) -> int:
    return _wide(a - b, "sub")


def checked_mul(a: int, b: int) -> int:
    return _wide(a * b, "mul")


def div(numerator: int, denominator: int, rounding: Rounding = Rounding.DOWN) -> int:
    """
    Divide non-negative integers with explicit rounding

    Raises:
        ArithmeticOverflow: On division by zero (checked_div semantics)
    """
    if denominator <= 0:
        raise ArithmeticOverflow("div", "division by zero")
    quotient, remainder = divmod(_wide(numerator, "div"), denominator)
    if remainder and rounding is Rounding.UP:
        quotient += 1
    return quotient


def ceil_div(numerator: int, denominator: int) -> int:
    return div(numerator, denominator, Rounding.UP)


def mul_div(a: int, b: int, denominator: int, rounding: Rounding = Rounding.DOWN) -> int:
    """
    Compute a * b / denominator with a checked wide intermediate

    Args:
        a: First factor
        b: Second factor
        denominator: Divisor (must be positive)
        rounding: Direction applied to the single division

    Returns:
        Rounded quotient
    """
    return div(checked_mul(a, b), denominator, rounding)


def to_u64(value: int, operation: str) -> int:
    """Narrow a result to the u64 range used by on-chain counters"""
    if value < 0 or value > U64_MAX:
        raise ArithmeticOverflow(operation, f"{value} does not fit in u64")
    return value


def require_u64(name: str, value: Any) -> int:
    """
    Validate a caller-supplied amount

    Raises:
        InvalidAmount: If value is not an int in 0..U64_MAX
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(name, value, "must be an integer")
    if value < 0:
        raise InvalidAmount(name, value, "must be non-negative")
    if value > U64_MAX:
        raise InvalidAmount(name, value, "exceeds u64 range")
    return value


def isqrt(n: int, rounding: Rounding = Rounding.DOWN) -> int:
    """Integer square root rounded in the requested direction"""
    root = math.isqrt(_wide(n, "isqrt"))
    if rounding is Rounding.UP and root * root != n:
        root += 1
    return root


# =============================================================================
# Q64.64 FIXED POINT
# =============================================================================

def ratio_to_q(numerator: int, denominator: int, rounding: Rounding = Rounding.DOWN) -> int:
    """numerator / denominator as Q64.64"""
    return mul_div(numerator, ONE, denominator, rounding)


def q_mul(a: int, b: int, rounding: Rounding = Rounding.DOWN) -> int:
    return mul_div(a, b, ONE, rounding)


def q_pow(base: int, exponent: int, rounding: Rounding = Rounding.DOWN) -> int:
    """
    Raise a Q64.64 value to a non-negative integer power

    Square-and-multiply where every product is rounded in the same
    direction, so the result is a one-sided bound on the exact power.
    The base is only squared while higher exponent bits remain, which
    keeps intermediates no larger than the result needs.

    Raises:
        ArithmeticOverflow: If any intermediate exceeds WIDE_MAX
    """
    if exponent < 0:
        raise ValueError("exponent must be non-negative")

    result = ONE
    while exponent:
        if exponent & 1:
            result = q_mul(result, base, rounding)
        exponent >>= 1
        if exponent:
            base = q_mul(base, base, rounding)
    return result


def _pow_at_most(candidate: int, n: int, target: int) -> bool:
    # Upper bound of candidate**n fits under target
    try:
        return q_pow(candidate, n, Rounding.UP) <= target
    except ArithmeticOverflow:
        return False


def _pow_at_least(candidate: int, n: int, target: int) -> bool:
    # Lower bound of candidate**n already reaches target
    try:
        return q_pow(candidate, n, Rounding.DOWN) >= target
    except ArithmeticOverflow:
        return True


def q_root(x: int, n: int, rounding: Rounding = Rounding.DOWN) -> int:
    """
    n-th root of a Q64.64 value by bisection

    Rounding.DOWN returns the largest y whose rounded-up n-th power is
    still <= x, so y never exceeds the true root. Rounding.UP returns the
    smallest y whose rounded-down n-th power is >= x, so y is never below it.

    Args:
        x: Q64.64 radicand
        n: Root degree (>= 1)
        rounding: Which side of the true root to return

    Returns:
        Q64.64 root
    """
    if n < 1:
        raise ValueError("root degree must be >= 1")
    if n == 1 or x == 0 or x == ONE:
        return x

    if x > ONE:
        low, high = ONE, x
        # Bernoulli: (1 + a/n)**n >= 1 + a
        bernoulli = ONE + ceil_div(x - ONE, n) + 1
        if bernoulli < high and _pow_at_least(bernoulli, n, x):
            high = bernoulli
    else:
        low, high = x, ONE

    if rounding is Rounding.DOWN:
        while low < high:
            mid = (low + high + 1) // 2
            if _pow_at_most(mid, n, x):
                low = mid
            else:
                high = mid - 1
        return low

    while low < high:
        mid = (low + high) // 2
        if _pow_at_least(mid, n, x):
            high = mid
        else:
            low = mid + 1
    return low
