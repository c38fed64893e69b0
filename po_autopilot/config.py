"""
Configuration for PO Autopilot.

Values come from the environment (optionally a ``.env`` file).  Use
``get_config()`` rather than instantiating the classes directly.
"""

# Load environment variables FIRST
from dotenv import load_dotenv

load_dotenv()

import os
from typing import List, Optional


def _split(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Config:
    """Base configuration."""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///po_autopilot.db")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Outbound notifications (optional)
    SLACK_WEBHOOK_URL: Optional[str] = os.getenv("SLACK_WEBHOOK_URL") or None

    # Stubbed vendor validation; empty means every vendor is approved
    APPROVED_VENDORS: List[str] = _split(os.getenv("APPROVED_VENDORS", ""))

    # Live updates and simulator cadence (seconds)
    HEARTBEAT_INTERVAL: float = float(os.getenv("HEARTBEAT_INTERVAL", "30"))
    SIMULATOR_INTERVAL: float = float(os.getenv("SIMULATOR_INTERVAL", "5"))

    # API
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))
    CORS_ORIGINS: List[str] = _split(os.getenv("CORS_ORIGINS", "*"))

    def validate(self) -> None:
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL must be set")
        if self.HEARTBEAT_INTERVAL <= 0:
            raise ValueError("HEARTBEAT_INTERVAL must be positive")
        if self.SIMULATOR_INTERVAL <= 0:
            raise ValueError("SIMULATOR_INTERVAL must be positive")


class DevelopmentConfig(Config):
    LOG_LEVEL = "DEBUG"


class ProductionConfig(Config):
    LOG_LEVEL = "INFO"


class TestConfig(Config):
    DATABASE_URL = "sqlite://"
    LOG_LEVEL = "DEBUG"
    SLACK_WEBHOOK_URL = None
    APPROVED_VENDORS: List[str] = []
    HEARTBEAT_INTERVAL = 0.05


def get_config(env: Optional[str] = None) -> Config:
    """Get configuration based on environment."""
    if env is None:
        env = os.getenv("ENV", "development").lower()

    if env == "production":
        config = ProductionConfig()
    elif env == "test":
        config = TestConfig()
    else:
        config = DevelopmentConfig()

    config.validate()
    return config
