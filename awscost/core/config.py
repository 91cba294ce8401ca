"""
Configuration module for loading environment variables.
Pricing region, catalog location and estimation defaults come from the environment.
"""
import os
from pathlib import Path
from typing import Optional

from awscost.pricing.aws_region_map import is_supported_region


class Config:
    """Application configuration loaded from environment variables."""

    # Plugin identity
    PLUGIN_NAME: str = "aws-public-pricing"

    # Pricing catalog configuration
    PRICING_REGION: str = os.getenv("PRICING_REGION", "us-east-1")
    PRICING_CACHE_DIR: str = os.getenv("PRICING_CACHE_DIR", "pricing-cache/aws")
    PRICING_CATALOG_FILE: Optional[str] = os.getenv("PRICING_CATALOG_FILE") or None
    CURRENCY: str = "USD"

    # Estimation defaults
    HOURS_PER_MONTH: float = 730.0  # Standard assumption: 24/7 operation
    DEFAULT_EBS_VOLUME_GB: int = int(os.getenv("DEFAULT_EBS_VOLUME_GB", "8"))
    RECOMMENDATION_EBS_VOLUME_GB: int = int(os.getenv("RECOMMENDATION_EBS_VOLUME_GB", "100"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    @classmethod
    def validate(cls) -> None:
        """
        Validates that required configuration values are set.

        Raises:
            ValueError: If any required configuration is missing or invalid.
        """
        if not cls.PRICING_REGION:
            raise ValueError("PRICING_REGION is required")
        if not is_supported_region(cls.PRICING_REGION):
            raise ValueError(
                f"PRICING_REGION must be a known AWS region (got: {cls.PRICING_REGION})"
            )

        # A combined catalog file wins over the per-service cache directory.
        if cls.PRICING_CATALOG_FILE:
            if not Path(cls.PRICING_CATALOG_FILE).is_file():
                raise ValueError(
                    f"PRICING_CATALOG_FILE does not exist: {cls.PRICING_CATALOG_FILE}"
                )
        elif not Path(cls.PRICING_CACHE_DIR).is_dir():
            raise ValueError(
                f"Pricing cache directory not found: {cls.PRICING_CACHE_DIR}. "
                "Set PRICING_CACHE_DIR or PRICING_CATALOG_FILE"
            )

        if cls.DEFAULT_EBS_VOLUME_GB <= 0 or cls.RECOMMENDATION_EBS_VOLUME_GB <= 0:
            raise ValueError("Default EBS volume sizes must be positive")


config = Config()
