"""
Snapshot freshness policy
The engine has no clock; execution layers use this to reject quotes built on old reads
"""

import time
from typing import Callable, Optional

from curve_engine.core.errors import StaleSnapshot
from curve_engine.core.logger import get_logger
from curve_engine.core.quote_engine import Quote
from curve_engine.core.snapshot import ReserveSnapshot


logger = get_logger(__name__)


class SnapshotFreshnessPolicy:
    """
    Maximum snapshot age enforced before acting on a quote

    A snapshot without observed_at cannot prove its age and is treated as
    stale.

    Usage:
        policy = SnapshotFreshnessPolicy(max_age_s=30)
        policy.ensure_quote_fresh(quote)  # raises StaleSnapshot
    """

    def __init__(self, max_age_s: float, clock: Callable[[], float] = time.time):
        if max_age_s < 0:
            raise ValueError(f"max_age_s must be non-negative, got {max_age_s}")
        self.max_age_s = max_age_s
        self.clock = clock

    def age_of(self, snapshot: ReserveSnapshot, now: Optional[float] = None) -> float:
        """Seconds since the snapshot was observed (inf if unknown)"""
        if snapshot.observed_at is None:
            return float("inf")
        now = self.clock() if now is None else now
        return max(0.0, now - snapshot.observed_at)

    def is_fresh(self, snapshot: ReserveSnapshot, now: Optional[float] = None) -> bool:
        return self.age_of(snapshot, now) <= self.max_age_s

    def ensure_fresh(self, snapshot: ReserveSnapshot, now: Optional[float] = None) -> ReserveSnapshot:
        """
        Return the snapshot if it is within the policy

        Raises:
            StaleSnapshot: If the snapshot is older than max_age_s
        """
        age = self.age_of(snapshot, now)
        if age > self.max_age_s:
            logger.warning(
                "stale_snapshot_rejected",
                token=snapshot.token,
                slot=snapshot.slot,
                age_s=age,
                max_age_s=self.max_age_s
            )
            raise StaleSnapshot(age, self.max_age_s, snapshot.token)
        return snapshot

    def ensure_quote_fresh(self, quote: Quote, now: Optional[float] = None) -> Quote:
        """Check the snapshot a quote was derived from"""
        self.ensure_fresh(quote.snapshot, now)
        return quote
