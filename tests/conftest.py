"""
Pytest configuration and shared fixtures
These fixtures are available to all test files
"""

import asyncio
from typing import Any, Dict

import pytest
import yaml

from curve_engine.core.curve_config import CurveConfig, CurveKind
from curve_engine.core.curves import buy_cost
from curve_engine.core.metrics import MetricsCollector
from curve_engine.core.snapshot import ReserveSnapshot


# Price units are lamports per whole token * 1e9; with 0 decimals a whole
# token is one base unit, so 1000 lamports/unit == 1000 * 10**9 price units.
LAMPORTS_1000_PER_UNIT = 1_000 * 10**9
LAMPORTS_3000_PER_UNIT = 3_000 * 10**9


# =============================================================================
# CURVE CONFIGS
# =============================================================================

@pytest.fixture
def pump_config() -> CurveConfig:
    """Deployer-style config: 0.005 -> 0.05 SOL, 85 SOL raise, 9 decimals, ratio 100%"""
    return CurveConfig.from_sol("0.005", "0.05", "85", reserve_ratio=100, token_decimals=9)


@pytest.fixture
def half_ratio_config() -> CurveConfig:
    """Constant reserve ratio at the on-chain default of 50%"""
    return CurveConfig.from_sol("0.005", "0.05", "85", reserve_ratio=50, token_decimals=9)


@pytest.fixture
def linear_config() -> CurveConfig:
    """1000 -> 3000 lamports per unit over 1M units, 2 SOL raise"""
    return CurveConfig(
        initial_price=LAMPORTS_1000_PER_UNIT,
        final_price=LAMPORTS_3000_PER_UNIT,
        target_raise=2_000_000_000,
        reserve_ratio=100,
        token_decimals=0,
        kind=CurveKind.LINEAR
    )


@pytest.fixture
def quadratic_config() -> CurveConfig:
    """1000 -> 3000 lamports per unit over 3M units, 5 SOL raise"""
    return CurveConfig(
        initial_price=LAMPORTS_1000_PER_UNIT,
        final_price=LAMPORTS_3000_PER_UNIT,
        target_raise=5_000_000_000,
        reserve_ratio=100,
        token_decimals=0,
        kind=CurveKind.QUADRATIC
    )


@pytest.fixture
def square_root_config() -> CurveConfig:
    """1000 -> 3000 lamports per unit over 3M units, 7 SOL raise"""
    return CurveConfig(
        initial_price=LAMPORTS_1000_PER_UNIT,
        final_price=LAMPORTS_3000_PER_UNIT,
        target_raise=7_000_000_000,
        reserve_ratio=100,
        token_decimals=0,
        kind=CurveKind.SQUARE_ROOT
    )


# =============================================================================
# SNAPSHOTS
# =============================================================================

@pytest.fixture
def scenario_snapshot() -> ReserveSnapshot:
    """1 SOL reserve against 100B base units (0.01 lamports per unit at 100%)"""
    return ReserveSnapshot(
        reserve_balance=1_000_000_000,
        reserve_token_units=100_000_000_000,
        total_supply=100_000_000_000
    )


@pytest.fixture
def dense_snapshot() -> ReserveSnapshot:
    """1000 SOL reserve against 1B base units (1000 lamports per unit at 100%)"""
    return ReserveSnapshot(
        reserve_balance=1_000_000_000_000,
        reserve_token_units=1_000_000_000,
        total_supply=1_000_000_000,
        slot=250_000_000,
        observed_at=1_700_000_000.0,
        token="So11111111111111111111111111111111111111112"
    )


def traded_snapshot(config: CurveConfig, supply: int) -> ReserveSnapshot:
    """Snapshot reached by buying `supply` units from an empty curve"""
    empty = ReserveSnapshot.untraded()
    return empty.after_buy(supply, buy_cost(config, empty, supply))


@pytest.fixture
def metrics_collector() -> MetricsCollector:
    """Fresh metrics collector per test"""
    return MetricsCollector()


# =============================================================================
# CONFIG FILES
# =============================================================================

@pytest.fixture
def test_config_dict() -> Dict[str, Any]:
    """
    Sample configuration dictionary for testing

    Returns valid config that can be modified per test
    """
    return {
        "rpc": {
            "url": "https://api.devnet.solana.com",
            "program_id": "2uDeeCCahLYVRzoUrd9NpH1SRgSvY8JB7xiS1Esqktdx",
            "commitment": "confirmed",
            "timeout_s": 5
        },
        "logging": {
            "level": "DEBUG",
            "format": "json",
            "output_file": None
        },
        "metrics": {
            "enable_histogram": True,
            "histogram_buckets": [1, 5, 10, 50, 100, 500, 1000]
        },
        "oracle": {
            "cache_ttl_s": 60,
            "timeout_s": 2
        },
        "quoting": {
            "max_snapshot_age_s": 15
        },
        "curves": [
            {
                "mint": "So11111111111111111111111111111111111111112",
                "template": "custom",
                "initial_price_sol": 0.005,
                "final_price_sol": "0.05",
                "target_raise_sol": "85",
                "reserve_ratio": 50,
                "token_decimals": 9
            },
            {
                "mint": "4Nd1mBQtrMJVYVfKf2PJy9NZUZdTAsp7D4xWLs4gDB4T",
                "template": "linear",
                "initial_price_sol": "0.0001",
                "final_price_sol": "0.001",
                "target_raise_sol": "10",
                "reserve_ratio": 100,
                "token_decimals": 6
            }
        ]
    }


@pytest.fixture
def test_config_file(test_config_dict, tmp_path):
    """
    Create a temporary config file for testing

    Returns path to temporary YAML config file
    """
    config_file = tmp_path / "test_config.yml"
    with open(config_file, 'w') as f:
        yaml.dump(test_config_dict, f)

    return str(config_file)


# =============================================================================
# HTTP FAKES
# =============================================================================

class FakeResponse:
    """Async context manager standing in for aiohttp's response"""

    def __init__(self, payload: Any, status: int = 200, delay_s: float = 0.0):
        self._payload = payload
        self.status = status
        self.delay_s = delay_s

    async def json(self):
        # An exception payload stands in for a body that fails to parse
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def __aenter__(self):
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False
