"""
Reserve snapshot value type
A point-in-time read of the on-chain counters a curve depends on
"""

from dataclasses import dataclass, replace
from typing import Optional

from curve_engine.core.errors import InsufficientReserve
from curve_engine.core.fixed_point import checked_add, require_u64, to_u64


@dataclass(frozen=True)
class ReserveSnapshot:
    """
    Immutable reserve counters

    All values in base units:
    - reserve_balance: lamports held by the curve
    - reserve_token_units: token base units in the curve's accounting
    - total_supply: token base units in circulation

    slot, observed_at (epoch seconds) and token (mint address) are optional
    metadata set by readers; the math never looks at them.
    """
    reserve_balance: int
    reserve_token_units: int
    total_supply: int
    slot: Optional[int] = None
    observed_at: Optional[float] = None
    token: Optional[str] = None

    def __post_init__(self):
        require_u64("reserve_balance", self.reserve_balance)
        require_u64("reserve_token_units", self.reserve_token_units)
        require_u64("total_supply", self.total_supply)

    @classmethod
    def untraded(cls, token: Optional[str] = None) -> "ReserveSnapshot":
        """State of a freshly created curve before its first trade"""
        return cls(reserve_balance=0, reserve_token_units=0, total_supply=0, token=token)

    @property
    def is_untraded(self) -> bool:
        """No reserve or no token units to price against yet"""
        return self.reserve_token_units == 0 or self.reserve_balance == 0

    def after_buy(self, tokens: int, lamports: int, track_reserve_tokens: bool = True) -> "ReserveSnapshot":
        """
        Snapshot after minting tokens against lamports paid in

        With track_reserve_tokens=False reserve_token_units is left as is;
        curves priced from total_supply alone do not move it.

        Raises:
            ArithmeticOverflow: If any counter would leave the u64 range
        """
        reserve_tokens = self.reserve_token_units
        if track_reserve_tokens:
            reserve_tokens = to_u64(checked_add(reserve_tokens, tokens), "reserve_token_units")

        return replace(
            self,
            reserve_balance=to_u64(checked_add(self.reserve_balance, lamports), "reserve_balance"),
            reserve_token_units=reserve_tokens,
            total_supply=to_u64(checked_add(self.total_supply, tokens), "total_supply"),
        )

    def after_sell(self, tokens: int, lamports: int, track_reserve_tokens: bool = True) -> "ReserveSnapshot":
        """
        Snapshot after burning tokens for lamports paid out

        track_reserve_tokens works as in after_buy; when False the sell is
        not bounded by reserve_token_units.

        Raises:
            InsufficientReserve: If the sell takes more than the curve holds
        """
        if tokens > self.total_supply:
            raise InsufficientReserve("total_supply", tokens, self.total_supply)
        if track_reserve_tokens and tokens > self.reserve_token_units:
            raise InsufficientReserve("reserve_token_units", tokens, self.reserve_token_units)
        if lamports > self.reserve_balance:
            raise InsufficientReserve("reserve_balance", lamports, self.reserve_balance)

        reserve_tokens = self.reserve_token_units
        if track_reserve_tokens:
            reserve_tokens -= tokens

        return replace(
            self,
            reserve_balance=self.reserve_balance - lamports,
            reserve_token_units=reserve_tokens,
            total_supply=self.total_supply - tokens,
        )
