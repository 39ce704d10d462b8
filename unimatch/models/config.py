"""
Configuration Models

Pydantic models for system configuration validation. Every tunable of the
matching pipeline (cache, verification, search pacing, model tiers, currency
rates) lives here so tests can pin exact values instead of hidden constants.
"""

import json
import math
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class CacheConfig(BaseModel):
    """Match cache sizing and expiry."""

    ttl_days: float = Field(default=7.0, gt=0)
    max_size: int = Field(default=10000, gt=0)
    eviction_fraction: float = Field(default=0.1, gt=0.0, le=1.0)

    @property
    def ttl_seconds(self) -> float:
        return self.ttl_days * 24 * 60 * 60


class VerificationConfig(BaseModel):
    """Web verification pass settings.

    The pass is off by default: it costs two searches and one extra model
    call per match.
    """

    enabled: bool = False
    top_n: int = Field(default=3, gt=0, le=10)
    delay_seconds: float = Field(default=0.3, ge=0.0)
    use_smart_model: bool = False


class SearchConfig(BaseModel):
    """Web search pacing and limits."""

    results_per_query: int = Field(default=3, gt=0, le=20)
    batch_delay_seconds: float = Field(default=0.2, ge=0.0)
    requests_per_second: float = Field(default=5.0, gt=0.0)
    timeout_seconds: float = Field(default=10.0, gt=0.0)


class LLMConfig(BaseModel):
    """Completion service model tiers and call parameters."""

    fast_model: str = "gpt-4o-mini"
    smart_model: str = "gpt-4o"
    generation_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    generation_max_tokens: int = Field(default=1500, gt=0)
    verification_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    verification_max_tokens: int = Field(default=1024, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    max_retries: int = Field(default=2, ge=0, le=5)
    retry_backoff: float = Field(default=1.0, ge=0.0)


class CurrencyConfig(BaseModel):
    """Reference currency and fixed conversion table.

    Rates are reference-currency units per one unit of the foreign currency.
    """

    reference_currency: str = "NPR"
    rates: dict[str, float] = Field(
        default_factory=lambda: {
            "CAD": 100.0,
            "USD": 134.0,
            "AUD": 88.0,
            "GBP": 168.0,
            "EUR": 145.0,
            "NZD": 88.0,
        }
    )
    default_budget: float = Field(default=3_000_000, gt=0)
    fallback_currency: str = "USD"

    @field_validator("rates")
    @classmethod
    def validate_rates(cls, v: dict[str, float]) -> dict[str, float]:
        """Upper-case currency codes and reject non-positive rates."""
        normalized = {}
        for code, rate in v.items():
            if rate <= 0:
                raise ValueError(f"Rate for {code} must be greater than 0")
            normalized[code.upper()] = rate
        return normalized

    def rate_for(self, currency: Optional[str]) -> Optional[float]:
        """Rate for a currency code, 1.0 for the reference currency, else None."""
        if not currency:
            return None
        code = currency.strip().upper()
        if code == self.reference_currency.upper():
            return 1.0
        return self.rates.get(code)

    def to_reference(self, amount: float, currency: Optional[str]) -> Optional[float]:
        """Convert an amount into the reference currency (None if rate unknown)."""
        rate = self.rate_for(currency)
        if rate is None or amount is None or math.isnan(amount):
            return None
        return math.floor(amount * rate + 0.5)


class SystemParams(BaseModel):
    """System parameters configuration model."""

    cache: CacheConfig = Field(default_factory=CacheConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    currency: CurrencyConfig = Field(default_factory=CurrencyConfig)
    max_matches: int = Field(default=3, gt=0, le=10)
    matching_deadline_seconds: float = Field(default=30.0, gt=0.0)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @classmethod
    def load(cls, config_path: Path | str | None = None) -> "SystemParams":
        """Load system parameters from config file.

        Args:
            config_path: Path to system_params.json (defaults to config/system_params.json)

        Returns:
            SystemParams: Validated configuration

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config validation fails
        """
        if config_path is None:
            config_path = Path("config/system_params.json")
        else:
            config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}. "
                f"Copy {config_path.stem}.example.json to {config_path.name}"
            )

        with open(config_path, "r", encoding="utf-8") as f:
            config_data = json.load(f)

        return cls(**config_data)
