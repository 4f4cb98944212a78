"""
Configuration Manager for the curve engine
Loads configuration from YAML files with environment variable support
"""

import os
import re
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from curve_engine.core.curve_config import (
    DEFAULT_RESERVE_RATIO,
    DEFAULT_TOKEN_DECIMALS,
    CurveConfig,
    CurveKind,
)
from curve_engine.core.logger import setup_logging
from curve_engine.core.metrics import DEFAULT_HISTOGRAM_BUCKETS, MetricsCollector, init_metrics


DEFAULT_PROGRAM_ID = "2uDeeCCahLYVRzoUrd9NpH1SRgSvY8JB7xiS1Esqktdx"
DEFAULT_ORACLE_URL = "https://api.coingecko.com/api/v3/simple/price?ids=solana&vs_currencies=usd"

_ENV_PATTERN = re.compile(r'\$\{([^}]+)\}')


@dataclass
class LogConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = "json"
    output_file: Optional[str] = None


@dataclass
class MetricsConfig:
    """Metrics configuration"""
    enable_histogram: bool = True
    histogram_buckets: List[float] = field(
        default_factory=lambda: list(DEFAULT_HISTOGRAM_BUCKETS)
    )


@dataclass
class RPCConfig:
    """Solana JSON-RPC endpoint used by the snapshot reader"""
    url: str
    program_id: str = DEFAULT_PROGRAM_ID
    commitment: str = "confirmed"
    timeout_s: float = 10.0


@dataclass
class OracleConfig:
    """SOL/USD price source for display values"""
    url: str = DEFAULT_ORACLE_URL
    cache_ttl_s: float = 300.0
    timeout_s: float = 5.0


@dataclass
class QuotingConfig:
    """Caller-side quote policy"""
    max_snapshot_age_s: float = 30.0


@dataclass
class EngineConfig:
    """Complete engine configuration"""
    rpc_config: RPCConfig
    log_config: LogConfig
    metrics_config: MetricsConfig
    oracle_config: OracleConfig
    quoting_config: QuotingConfig
    curves: Dict[str, CurveConfig] = field(default_factory=dict)


def configure_runtime(engine_config: EngineConfig) -> MetricsCollector:
    """
    Apply the logging and metrics sections of a loaded config

    Returns:
        The new global MetricsCollector
    """
    setup_logging(**asdict(engine_config.log_config))
    return init_metrics(**asdict(engine_config.metrics_config))


def _decimal(value: Any) -> Any:
    # YAML turns 0.005 into a float; go through str so the literal survives
    if isinstance(value, float):
        return Decimal(str(value))
    return value


class ConfigurationManager:
    """Manages engine configuration from YAML files and environment variables"""

    def __init__(self, config_path: str):
        """
        Initialize configuration manager

        Args:
            config_path: Path to YAML configuration file
        """
        self.config_path = Path(config_path)
        self._config_data: Optional[Dict[str, Any]] = None
        self._engine_config: Optional[EngineConfig] = None

    def load_config(self) -> EngineConfig:
        """
        Load and validate configuration from file

        Returns:
            EngineConfig: Validated configuration object

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
            InvalidCurveConfig: If a curve entry is rejected
        """
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}"
            )

        with open(self.config_path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        self._config_data = self._substitute_env_vars(raw_config)
        self._engine_config = self._parse_config(self._config_data)

        return self._engine_config

    def reload_config(self) -> EngineConfig:
        """Re-read the configuration file"""
        return self.load_config()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key

        Args:
            key: Dot-notation key (e.g., "rpc.timeout_s")
            default: Default value if key not found
        """
        if self._config_data is None:
            raise RuntimeError("Configuration not loaded. Call load_config() first.")

        value: Any = self._config_data
        for part in key.split('.'):
            if not isinstance(value, dict) or value.get(part) is None:
                return default
            value = value[part]

        return value

    def _substitute_env_vars(self, config: Any) -> Any:
        """
        Recursively substitute ${VAR_NAME} references

        Supports full-value ("${RPC_URL}") and embedded
        ("https://rpc.example/?key=${API_KEY}") substitution.

        Raises:
            ValueError: If a referenced variable is not set
        """
        if isinstance(config, dict):
            return {k: self._substitute_env_vars(v) for k, v in config.items()}
        if isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        if not isinstance(config, str):
            return config

        def replace_var(match):
            var_name = match.group(1)
            value = os.getenv(var_name)
            if value is None:
                raise ValueError(f"Environment variable {var_name} not found")
            return value

        return _ENV_PATTERN.sub(replace_var, config)

    def _parse_config(self, config: Dict[str, Any]) -> EngineConfig:
        """
        Parse raw configuration into typed objects

        Raises:
            ValueError: If a required section or key is missing
        """
        rpc_data = config.get('rpc') or {}
        if not rpc_data.get('url'):
            raise ValueError("No RPC url configured")

        rpc_config = RPCConfig(
            url=rpc_data['url'],
            program_id=rpc_data.get('program_id', DEFAULT_PROGRAM_ID),
            commitment=rpc_data.get('commitment', 'confirmed'),
            timeout_s=float(rpc_data.get('timeout_s', 10.0))
        )

        log_data = config.get('logging') or {}
        log_config = LogConfig(
            level=log_data.get('level', 'INFO'),
            format=log_data.get('format', 'json'),
            output_file=log_data.get('output_file')
        )

        metrics_data = config.get('metrics') or {}
        metrics_config = MetricsConfig(
            enable_histogram=metrics_data.get('enable_histogram', True),
            histogram_buckets=metrics_data.get('histogram_buckets', list(DEFAULT_HISTOGRAM_BUCKETS))
        )

        oracle_data = config.get('oracle') or {}
        oracle_config = OracleConfig(
            url=oracle_data.get('url', DEFAULT_ORACLE_URL),
            cache_ttl_s=float(oracle_data.get('cache_ttl_s', 300.0)),
            timeout_s=float(oracle_data.get('timeout_s', 5.0))
        )

        quoting_data = config.get('quoting') or {}
        quoting_config = QuotingConfig(
            max_snapshot_age_s=float(quoting_data.get('max_snapshot_age_s', 30.0))
        )

        curves = {}
        for entry in config.get('curves') or []:
            if 'mint' not in entry:
                raise ValueError(f"Curve entry missing mint: {entry}")
            curves[entry['mint']] = self._parse_curve(entry)

        return EngineConfig(
            rpc_config=rpc_config,
            log_config=log_config,
            metrics_config=metrics_config,
            oracle_config=oracle_config,
            quoting_config=quoting_config,
            curves=curves
        )

    @staticmethod
    def _parse_curve(entry: Dict[str, Any]) -> CurveConfig:
        for required in ('initial_price_sol', 'final_price_sol', 'target_raise_sol'):
            if required not in entry:
                raise ValueError(f"Curve {entry['mint']} missing {required}")

        return CurveConfig.from_sol(
            initial_price_sol=_decimal(entry['initial_price_sol']),
            final_price_sol=_decimal(entry['final_price_sol']),
            target_raise_sol=_decimal(entry['target_raise_sol']),
            reserve_ratio=_decimal(entry.get('reserve_ratio', DEFAULT_RESERVE_RATIO)),
            token_decimals=entry.get('token_decimals', DEFAULT_TOKEN_DECIMALS),
            kind=CurveKind.from_template(entry.get('template', 'custom'))
        )
