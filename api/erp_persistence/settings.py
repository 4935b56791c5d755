# erp_persistence/settings.py
"""
ERP Persistence Settings - PostgreSQL connection and repository defaults.
"""
from __future__ import annotations
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices

class Settings(BaseSettings):
    # =========================================================================
    # Data Root (log files)
    # =========================================================================
    ERP_DATA_ROOT: Path = Field(
        default=(Path(__file__).resolve().parents[2] / "erp-data"),
        validation_alias=AliasChoices("ERP_DATA_ROOT", "erp_data_root"),
    )
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    
    # =========================================================================
    # PostgreSQL Database
    # =========================================================================
    DB_HOST: str = Field(default="localhost", validation_alias="DB_HOST")
    DB_PORT: int = Field(default=5432, validation_alias="DB_PORT")
    DB_NAME: str = Field(default="erp", validation_alias="DB_NAME")
    DB_USER: str = Field(default="postgres", validation_alias="DB_USER")
    DB_PASSWORD: str = Field(default="postgres", validation_alias="DB_PASSWORD")
    
    # Connection pool settings
    DB_POOL_SIZE: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    DB_MAX_OVERFLOW: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")
    DB_ECHO: bool = Field(default=False, validation_alias="DB_ECHO")
    
    # =========================================================================
    # Order Numbers
    # =========================================================================
    ORDER_NUMBER_PREFIX: str = Field(default="ORD", validation_alias="ORDER_NUMBER_PREFIX")
    ORDER_NUMBER_MAX_ATTEMPTS: int = Field(default=10, validation_alias="ORDER_NUMBER_MAX_ATTEMPTS")
    ORDER_NUMBER_RETRY_DELAY_MS: int = Field(default=10, validation_alias="ORDER_NUMBER_RETRY_DELAY_MS")
    
    # =========================================================================
    # Repository Defaults
    # =========================================================================
    TRANSACTION_SUMMARY_DEFAULT_DAYS: int = Field(
        default=30,
        validation_alias="TRANSACTION_SUMMARY_DEFAULT_DAYS",
        description="Window used by inventory transaction summaries without a date range",
    )
    VERIFICATION_CLEANUP_AGE_HOURS: int = Field(
        default=24,
        validation_alias="VERIFICATION_CLEANUP_AGE_HOURS",
    )
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

settings = Settings()
