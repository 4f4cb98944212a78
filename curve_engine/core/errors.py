"""
Error taxonomy for the bonding curve engine

Every failure is raised as a subclass of EngineError so callers can react
per call. Each error names the operand that violated which invariant.
"""

from typing import Any, Optional


class EngineError(Exception):
    """Base class for all engine errors"""


class InvalidCurveConfig(EngineError):
    """Curve parameters rejected at construction (permanent, never retried)"""

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"invalid curve config: {field}={value!r} ({reason})")


class InvalidAmount(EngineError):
    """Trade or snapshot amount outside the representable u64 range"""

    def __init__(self, name: str, value: Any, reason: str):
        self.name = name
        self.value = value
        self.reason = reason
        super().__init__(f"invalid amount: {name}={value!r} ({reason})")


class ArithmeticOverflow(EngineError):
    """An intermediate or result exceeded the wide integer bound"""

    def __init__(self, operation: str, detail: Optional[str] = None):
        self.operation = operation
        self.detail = detail
        message = f"arithmetic overflow in {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InsufficientReserve(EngineError):
    """A sell would take more than the curve holds"""

    def __init__(self, resource: str, requested: int, available: int):
        self.resource = resource
        self.requested = requested
        self.available = available
        super().__init__(
            f"insufficient {resource}: requested {requested}, available {available}"
        )


class StaleSnapshot(EngineError):
    """Snapshot older than the caller's freshness policy"""

    def __init__(self, age_s: float, max_age_s: float, token: Optional[str] = None):
        self.age_s = age_s
        self.max_age_s = max_age_s
        self.token = token
        super().__init__(
            f"snapshot is {age_s:.3f}s old (max {max_age_s:.3f}s)"
            + (f" for {token}" if token else "")
        )


class SnapshotFetchError(EngineError):
    """Reserve snapshot could not be read from chain"""

    def __init__(self, token: str, reason: str):
        self.token = token
        self.reason = reason
        super().__init__(f"failed to fetch reserve snapshot for {token}: {reason}")


class PriceOracleError(EngineError):
    """Fiat exchange rate unavailable"""
