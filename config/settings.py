#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Settings - Centralized configuration management
"""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings

from .constants import (
    BATCH_MAX_CONCURRENCY,
    ITEM_TIMEOUT_SECONDS,
    BATCH_DEADLINE_SECONDS,
    JOB_RETENTION_SECONDS,
    JOB_EVICTION_INTERVAL_SECONDS,
    LLM_DEFAULT_MODEL,
    LLM_MAX_TOKENS,
    LLM_TEMPERATURE,
    BASE_DIR,
    UPLOAD_DIR,
    ZIPS_DIR,
    TEMP_DIR,
    LOGS_DIR,
    MAX_UPLOAD_SIZE_MB,
)


class Settings(BaseSettings):
    """Application settings"""

    # ========== API Keys ==========
    openai_api_key: str = ""
    openai_base_url: Optional[str] = None

    # ========== Provider & Model ==========
    provider: str = "openai"
    model: str = LLM_DEFAULT_MODEL
    max_tokens: int = LLM_MAX_TOKENS
    temperature: float = LLM_TEMPERATURE

    # ========== Worker Pool ==========
    max_concurrency: int = BATCH_MAX_CONCURRENCY
    item_timeout_seconds: float = ITEM_TIMEOUT_SECONDS
    batch_deadline_seconds: float = BATCH_DEADLINE_SECONDS

    # ========== Job Registry ==========
    job_retention_seconds: int = JOB_RETENTION_SECONDS
    eviction_interval_seconds: int = JOB_EVICTION_INTERVAL_SECONDS

    # ========== Server ==========
    cors_origins: str = "*"  # comma separated

    # ========== Directories ==========
    upload_dir: Path = UPLOAD_DIR
    zips_dir: Path = ZIPS_DIR
    temp_dir: Path = TEMP_DIR
    logs_dir: Path = LOGS_DIR  # config.logging_config reads the same LOGS_DIR variable
    max_upload_size_mb: int = MAX_UPLOAD_SIZE_MB

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env that aren't defined in model

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Create directories
        for dir_path in [
            self.upload_dir,
            self.zips_dir,
            self.temp_dir,
            self.logs_dir,
        ]:
            dir_path.mkdir(exist_ok=True, parents=True)

    def get_api_key(self) -> str:
        """Get API key based on provider"""
        if self.provider == "openai":
            if not self.openai_api_key:
                raise ValueError("OPENAI_API_KEY not set in .env")
            return self.openai_api_key
        raise ValueError(f"Unsupported provider: {self.provider}")

    @property
    def allowed_input_roots(self) -> list:
        """Directories a submitted bundle path may live under."""
        return [self.upload_dir, self.zips_dir]

    @property
    def cors_origin_list(self) -> list:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


# Global settings instance
settings = Settings()
