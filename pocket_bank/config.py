"""
Configuration Management Module

Provides centralized configuration using pydantic-settings. Every value has a
default matching the classic terminal program, so nothing is required from
the environment.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from typing import Optional


STORAGE_BACKENDS = ("json", "sqlite")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class PocketBankConfig(BaseSettings):
    """Pocket Bank configuration"""

    # Storage configuration
    storage_backend: str = Field("json", description="Storage backend (json, sqlite)")
    data_file: str = "db.json"
    sqlite_file: str = "db.sqlite3"
    lock_suffix: str = ".lock"

    # Business rules configuration
    joining_bonus: str = Field("1000.00", description="Opening balance of new accounts as a Decimal string")
    max_password_retries: int = Field(3, ge=0)  # Wrong passwords tolerated before login fails
    recent_transactions: int = Field(5, ge=0)  # Shown with account info

    # Logging configuration
    log_level: str = "WARNING"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    class Config:
        env_prefix = "POCKET_BANK_"
        env_file = ".env"
        case_sensitive = False

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v):
        v = v.lower()
        if v not in STORAGE_BACKENDS:
            raise ValueError(f"storage_backend must be one of {', '.join(STORAGE_BACKENDS)}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        v = v.upper()
        if v not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return v

    @property
    def storage_path(self) -> str:
        """Path of the durable store for the selected backend"""
        if self.storage_backend == "sqlite":
            return self.sqlite_file
        return self.data_file

    @property
    def lock_path(self) -> str:
        """Path of the exclusive-access marker"""
        return self.storage_path + self.lock_suffix


# Global configuration instance
config = PocketBankConfig()


def get_config() -> PocketBankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> PocketBankConfig:
    """Reload configuration from environment"""
    global config
    config = PocketBankConfig()
    return config
