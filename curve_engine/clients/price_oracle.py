"""
SOL/USD price oracle
Fetches the SOL price from a CoinGecko-style simple/price endpoint with a TTL cache
"""

import asyncio
import time
from typing import Callable, Optional

import aiohttp

from curve_engine.core.config import OracleConfig
from curve_engine.core.errors import PriceOracleError
from curve_engine.core.logger import get_logger
from curve_engine.core.metrics import LatencyTimer, MetricsCollector, get_metrics


logger = get_logger(__name__)


class SolPriceOracle:
    """
    Cached SOL price lookups for display conversions

    A fresh cached value is served without a request. When a refresh
    fails, the last known price is returned (stale) and the failure is
    logged; with nothing cached the failure is raised.

    Usage:
        oracle = SolPriceOracle(engine_config.oracle_config)
        presenter = PricePresenter(fiat_rate=await oracle.get_sol_price())
    """

    def __init__(
        self,
        config: OracleConfig,
        session: Optional[aiohttp.ClientSession] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.config = config
        self.metrics = metrics or get_metrics()
        self.clock = clock
        self._session = session
        self._cached_price: Optional[float] = None
        self._cached_at: Optional[float] = None

    @property
    def cached_price(self) -> Optional[float]:
        return self._cached_price

    def _cache_is_fresh(self) -> bool:
        if self._cached_at is None:
            return False
        return self.clock() - self._cached_at < self.config.cache_ttl_s

    async def _request(self) -> dict:
        async def _fetch(session: aiohttp.ClientSession) -> dict:
            async with session.get(self.config.url) as response:
                if response.status != 200:
                    raise PriceOracleError(f"price endpoint returned HTTP {response.status}")
                return await response.json()

        if self._session is not None:
            return await asyncio.wait_for(_fetch(self._session), timeout=self.config.timeout_s)

        timeout = aiohttp.ClientTimeout(total=self.config.timeout_s)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            return await _fetch(session)

    async def _fetch_price(self) -> float:
        try:
            with LatencyTimer(self.metrics, "sol_price_fetch"):
                payload = await self._request()
        except asyncio.TimeoutError as e:
            raise PriceOracleError(f"price request timed out after {self.config.timeout_s}s") from e
        except aiohttp.ClientError as e:
            raise PriceOracleError(f"price request failed: {e}") from e
        except ValueError as e:
            raise PriceOracleError(f"price response is not JSON: {e}") from e

        try:
            price = float(payload["solana"]["usd"])
        except (KeyError, TypeError, ValueError) as e:
            raise PriceOracleError(f"unexpected price payload: {payload!r}") from e

        if price <= 0:
            raise PriceOracleError(f"non-positive SOL price: {price}")
        return price

    async def get_sol_price(self) -> float:
        """
        Current USD per SOL

        Returns:
            Price as float (display use only)

        Raises:
            PriceOracleError: If the fetch fails and nothing is cached
        """
        if self._cache_is_fresh():
            self.metrics.increment_counter("sol_price_cache_hits")
            return self._cached_price

        try:
            price = await self._fetch_price()
        except PriceOracleError as e:
            self.metrics.increment_counter("sol_price_fetch_errors")
            if self._cached_price is None:
                logger.error("sol_price_unavailable", error=str(e))
                raise
            logger.warning(
                "sol_price_refresh_failed_using_cached",
                error=str(e),
                cached_price=self._cached_price
            )
            return self._cached_price

        self._cached_price = price
        self._cached_at = self.clock()
        self.metrics.set_gauge("sol_price_usd", price)
        logger.debug("sol_price_fetched", price=price)
        return price
