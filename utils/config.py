"""
Configuration management.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    """

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # Data
    transactions_file: Optional[str] = field(
        default_factory=lambda: os.getenv("TRANSACTIONS_FILE") or None
    )
    adjustments_file: Optional[str] = field(
        default_factory=lambda: os.getenv("ADJUSTMENTS_FILE") or None
    )

    # Estimator
    sale_lookback_months: int = field(
        default_factory=lambda: int(os.getenv("SALE_LOOKBACK_MONTHS", "24"))
    )
    lease_lookback_months: int = field(
        default_factory=lambda: int(os.getenv("LEASE_LOOKBACK_MONTHS", "18"))
    )
    comparable_cap: int = field(default_factory=lambda: int(os.getenv("COMPARABLE_CAP", "10")))
    show_price_floor: int = field(default_factory=lambda: int(os.getenv("SHOW_PRICE_FLOOR", "3")))

    # Narrative insights
    insights_api_url: str = field(
        default_factory=lambda: os.getenv("INSIGHTS_API_URL", "https://api.anthropic.com/v1/messages")
    )
    insights_model: str = field(
        default_factory=lambda: os.getenv("INSIGHTS_MODEL", "claude-sonnet-4-20250514")
    )
    insights_timeout: float = field(
        default_factory=lambda: float(os.getenv("INSIGHTS_TIMEOUT", "8.0"))
    )

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    def engine_config(self):
        """Build the estimator's EngineConfig from these settings."""
        from core.estimator.config import EngineConfig

        return EngineConfig(
            sale_lookback_months=self.sale_lookback_months,
            lease_lookback_months=self.lease_lookback_months,
            comparable_cap=self.comparable_cap,
            show_price_floor=self.show_price_floor,
        )

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "log_level": self.log_level,
            "transactions_file": self.transactions_file,
            "adjustments_file": self.adjustments_file,
            "sale_lookback_months": self.sale_lookback_months,
            "lease_lookback_months": self.lease_lookback_months,
            "comparable_cap": self.comparable_cap,
            "show_price_floor": self.show_price_floor,
            "insights_api_url": self.insights_api_url,
            "insights_model": self.insights_model,
            "insights_timeout": self.insights_timeout,
        }
