"""Configuration loader for Sprinty."""

import os
from typing import Optional

from pydantic import BaseModel, Field


class DatabaseConfig(BaseModel):
    url: str = "sqlite:///./sprinty.db"
    echo: bool = False


class LoggingConfig(BaseModel):
    level: str = "info"


class Config(BaseModel):
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


_config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration from environment variables."""
    global _config

    if _config is not None:
        return _config

    config = Config()

    database_url = os.environ.get("SPRINTY_DATABASE_URL") or os.environ.get("DATABASE_URL")
    if database_url:
        config.database.url = database_url

    if os.environ.get("SPRINTY_DB_ECHO"):
        config.database.echo = os.environ["SPRINTY_DB_ECHO"].lower() == "true"

    if os.environ.get("SPRINTY_LOG_LEVEL"):
        config.logging.level = os.environ["SPRINTY_LOG_LEVEL"]

    _config = config
    return config


def get_config() -> Config:
    """Get the loaded configuration."""
    if _config is None:
        return load_config()
    return _config


def reset_config() -> None:
    global _config
    _config = None
