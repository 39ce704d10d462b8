"""
Unit tests for configuration models.
"""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from unimatch.models.config import CurrencyConfig, SystemParams

PROJECT_ROOT = Path(__file__).parents[2]


class TestSystemParams:
    """Test cases for SystemParams loading and validation."""

    def test_defaults(self):
        """Test that defaults match the documented tunables."""
        # Act
        params = SystemParams()

        # Assert
        assert params.cache.ttl_seconds == 7 * 86400
        assert params.cache.max_size == 10000
        assert params.verification.enabled is False
        assert params.verification.top_n == 3
        assert params.verification.delay_seconds == 0.3
        assert params.search.batch_delay_seconds == 0.2
        assert params.max_matches == 3
        assert params.matching_deadline_seconds == 30.0
        assert params.llm.max_retries == 2

    def test_load_from_file(self, tmp_path):
        """Test that load reads and validates a JSON file."""
        # Arrange
        config_file = tmp_path / "system_params.json"
        config_file.write_text(
            json.dumps({"verification": {"enabled": True}, "log_level": "debug"}),
            encoding="utf-8",
        )

        # Act
        params = SystemParams.load(config_file)

        # Assert
        assert params.verification.enabled is True
        assert params.log_level == "DEBUG"

    def test_load_missing_file(self, tmp_path):
        """Test that a missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            SystemParams.load(tmp_path / "missing.json")

    def test_invalid_log_level(self):
        """Test that an unknown log level is rejected."""
        with pytest.raises(ValidationError):
            SystemParams(log_level="LOUD")

    def test_example_config_is_valid(self):
        """Test that the shipped example config validates."""
        # Act
        params = SystemParams.load(PROJECT_ROOT / "config" / "system_params.example.json")

        # Assert
        assert params.currency.reference_currency == "NPR"


class TestCurrencyConfig:
    """Test cases for reference-currency conversion."""

    def test_rates_upper_cased(self):
        """Test that currency codes are normalized to upper case."""
        # Act
        config = CurrencyConfig(rates={"cad": 100})

        # Assert
        assert config.rates == {"CAD": 100}

    def test_non_positive_rate_rejected(self):
        """Test that a zero rate fails validation."""
        with pytest.raises(ValidationError):
            CurrencyConfig(rates={"CAD": 0})

    def test_to_reference_rounds_half_up(self):
        """Test that conversion rounds to the nearest whole unit."""
        # Arrange
        config = CurrencyConfig(rates={"USD": 134.0, "XYZ": 0.5})

        # Act & Assert
        assert config.to_reference(20000, "USD") == 2_680_000
        assert config.to_reference(3, "XYZ") == 2

    def test_reference_currency_converts_at_one(self):
        """Test that the reference currency passes through unchanged."""
        assert CurrencyConfig().to_reference(500, "npr") == 500

    def test_unknown_currency_is_none(self):
        """Test that an unknown currency yields None instead of a guess."""
        assert CurrencyConfig().to_reference(100, "JPY") is None
        assert CurrencyConfig().to_reference(100, None) is None
