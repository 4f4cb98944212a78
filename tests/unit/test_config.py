"""
Unit tests for Configuration Manager (core/config.py)

Tests:
- YAML parsing
- Environment variable substitution
- Curve section parsing
- Error handling
"""

import json
import logging

import pytest
import structlog
import yaml

from curve_engine.core.config import (
    DEFAULT_ORACLE_URL,
    ConfigurationManager,
    EngineConfig,
    configure_runtime,
)
from curve_engine.core.curve_config import CurveKind
from curve_engine.core.errors import InvalidCurveConfig
from curve_engine.core.logger import get_logger
from curve_engine.core.metrics import get_metrics


SOL_MINT = "So11111111111111111111111111111111111111112"
LINEAR_MINT = "4Nd1mBQtrMJVYVfKf2PJy9NZUZdTAsp7D4xWLs4gDB4T"


def write_config(tmp_path, data) -> str:
    config_file = tmp_path / "config.yml"
    with open(config_file, 'w') as f:
        yaml.dump(data, f)
    return str(config_file)


class TestConfigurationManager:
    """Test configuration loading and validation"""

    def test_load_valid_config(self, test_config_file):
        """Test loading a valid configuration file"""
        config_manager = ConfigurationManager(test_config_file)
        engine_config = config_manager.load_config()

        assert isinstance(engine_config, EngineConfig)

        # RPC
        assert engine_config.rpc_config.url == "https://api.devnet.solana.com"
        assert engine_config.rpc_config.timeout_s == 5.0

        # Logging
        assert engine_config.log_config.level == "DEBUG"
        assert engine_config.log_config.format == "json"
        assert engine_config.log_config.output_file is None

        # Metrics
        assert engine_config.metrics_config.histogram_buckets == [1, 5, 10, 50, 100, 500, 1000]

        # Oracle falls back to the default URL
        assert engine_config.oracle_config.url == DEFAULT_ORACLE_URL
        assert engine_config.oracle_config.cache_ttl_s == 60.0

        assert engine_config.quoting_config.max_snapshot_age_s == 15.0

    def test_curves_parsed(self, test_config_file):
        engine_config = ConfigurationManager(test_config_file).load_config()

        assert set(engine_config.curves) == {SOL_MINT, LINEAR_MINT}

        custom = engine_config.curves[SOL_MINT]
        assert custom.kind is CurveKind.CONSTANT_RESERVE_RATIO
        assert custom.reserve_ratio_bps == 5_000

        linear = engine_config.curves[LINEAR_MINT]
        assert linear.kind is CurveKind.LINEAR
        assert linear.token_decimals == 6
        assert linear.capacity == 18_181_818_181

    def test_float_price_keeps_literal(self, test_config_file):
        """YAML reads 0.005 as a float; it must not pick up binary noise"""
        engine_config = ConfigurationManager(test_config_file).load_config()
        assert engine_config.curves[SOL_MINT].initial_price == 5 * 10**15

    def test_defaults_for_missing_sections(self, tmp_path):
        config_file = write_config(tmp_path, {"rpc": {"url": "https://rpc.example"}})

        engine_config = ConfigurationManager(config_file).load_config()

        assert engine_config.rpc_config.commitment == "confirmed"
        assert engine_config.log_config.level == "INFO"
        assert engine_config.quoting_config.max_snapshot_age_s == 30.0
        assert engine_config.curves == {}

    def test_missing_config_file(self, tmp_path):
        """Test error handling for missing config file"""
        config_manager = ConfigurationManager(str(tmp_path / "nonexistent.yml"))

        with pytest.raises(FileNotFoundError):
            config_manager.load_config()

    def test_invalid_yaml_syntax(self, tmp_path):
        bad_config = tmp_path / "bad.yml"
        with open(bad_config, 'w') as f:
            f.write("invalid: yaml: syntax:")

        with pytest.raises(yaml.YAMLError):
            ConfigurationManager(str(bad_config)).load_config()

    def test_missing_rpc_url(self, tmp_path, test_config_dict):
        del test_config_dict["rpc"]["url"]
        config_file = write_config(tmp_path, test_config_dict)

        with pytest.raises(ValueError, match="No RPC url"):
            ConfigurationManager(config_file).load_config()

    def test_curve_missing_mint(self, tmp_path, test_config_dict):
        del test_config_dict["curves"][0]["mint"]
        config_file = write_config(tmp_path, test_config_dict)

        with pytest.raises(ValueError, match="missing mint"):
            ConfigurationManager(config_file).load_config()

    def test_curve_missing_price(self, tmp_path, test_config_dict):
        del test_config_dict["curves"][1]["final_price_sol"]
        config_file = write_config(tmp_path, test_config_dict)

        with pytest.raises(ValueError, match="final_price_sol"):
            ConfigurationManager(config_file).load_config()

    def test_invalid_curve_rejected(self, tmp_path, test_config_dict):
        test_config_dict["curves"][0]["reserve_ratio"] = 0
        config_file = write_config(tmp_path, test_config_dict)

        with pytest.raises(InvalidCurveConfig) as exc_info:
            ConfigurationManager(config_file).load_config()
        assert exc_info.value.field == "reserve_ratio"

    def test_unknown_template_rejected(self, tmp_path, test_config_dict):
        test_config_dict["curves"][1]["template"] = "sigmoid"
        config_file = write_config(tmp_path, test_config_dict)

        with pytest.raises(InvalidCurveConfig):
            ConfigurationManager(config_file).load_config()


class TestEnvironmentSubstitution:
    """${VAR} references in string values"""

    def test_full_value(self, tmp_path, test_config_dict, monkeypatch):
        monkeypatch.setenv("TEST_RPC_URL", "https://rpc.test")
        test_config_dict["rpc"]["url"] = "${TEST_RPC_URL}"

        engine_config = ConfigurationManager(write_config(tmp_path, test_config_dict)).load_config()

        assert engine_config.rpc_config.url == "https://rpc.test"

    def test_embedded_value(self, tmp_path, test_config_dict, monkeypatch):
        monkeypatch.setenv("TEST_API_KEY", "abc123")
        test_config_dict["rpc"]["url"] = "https://rpc.test/?api-key=${TEST_API_KEY}"

        engine_config = ConfigurationManager(write_config(tmp_path, test_config_dict)).load_config()

        assert engine_config.rpc_config.url == "https://rpc.test/?api-key=abc123"

    def test_missing_variable(self, tmp_path, test_config_dict, monkeypatch):
        monkeypatch.delenv("TEST_MISSING_VAR", raising=False)
        test_config_dict["rpc"]["url"] = "${TEST_MISSING_VAR}"

        with pytest.raises(ValueError, match="TEST_MISSING_VAR"):
            ConfigurationManager(write_config(tmp_path, test_config_dict)).load_config()


class TestGet:
    """Dot-notation access to raw values"""

    def test_get_before_load(self, test_config_file):
        with pytest.raises(RuntimeError):
            ConfigurationManager(test_config_file).get("rpc.url")

    def test_get_nested(self, test_config_file):
        config_manager = ConfigurationManager(test_config_file)
        config_manager.load_config()

        assert config_manager.get("rpc.commitment") == "confirmed"
        assert config_manager.get("quoting.max_snapshot_age_s") == 15

    def test_get_default(self, test_config_file):
        config_manager = ConfigurationManager(test_config_file)
        config_manager.load_config()

        assert config_manager.get("rpc.missing", "fallback") == "fallback"
        assert config_manager.get("logging.output_file", "stdout") == "stdout"

    def test_reload_picks_up_changes(self, tmp_path, test_config_dict):
        config_file = write_config(tmp_path, test_config_dict)
        config_manager = ConfigurationManager(config_file)
        config_manager.load_config()

        test_config_dict["quoting"]["max_snapshot_age_s"] = 5
        write_config(tmp_path, test_config_dict)

        assert config_manager.reload_config().quoting_config.max_snapshot_age_s == 5.0


class TestConfigureRuntime:
    """Logging and metrics sections drive the process-wide setup"""

    @pytest.fixture(autouse=True)
    def restore_globals(self, monkeypatch):
        handlers = list(logging.root.handlers)
        level = logging.root.level
        monkeypatch.setattr("curve_engine.core.metrics._global_metrics", None)
        yield
        for handler in logging.root.handlers:
            if handler not in handlers:
                handler.close()
        logging.root.handlers = handlers
        logging.root.setLevel(level)
        structlog.reset_defaults()

    def test_applies_logging_and_metrics(self, tmp_path, test_config_dict):
        log_file = tmp_path / "logs" / "engine.log"
        test_config_dict["logging"] = {"level": "WARNING", "format": "json", "output_file": str(log_file)}
        test_config_dict["metrics"] = {"enable_histogram": False, "histogram_buckets": [1, 10]}
        engine_config = ConfigurationManager(write_config(tmp_path, test_config_dict)).load_config()

        metrics = configure_runtime(engine_config)

        assert metrics is get_metrics()
        assert metrics.enable_histogram is False
        assert metrics.histogram_buckets == [1, 10]

        logger = get_logger("curve_engine.runtime")
        logger.info("quote_computed")
        logger.warning("snapshot_stale", age_s=45)

        lines = log_file.read_text().strip().splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["event"] == "snapshot_stale"
        assert record["level"] == "warning"
        assert logging.getLogger("aiohttp").level == logging.WARNING
