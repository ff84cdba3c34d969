"""
Runtime configuration.

Everything is read from the environment (and a local .env file) once, at
process start. Nothing else in the package calls os.getenv directly.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import List, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load env variables from .env
load_dotenv()

Provider = Literal["gemini", "openai"]

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class Settings(BaseModel):
    llm_provider: Provider = "gemini"

    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"
    openai_api_key: str = ""
    openai_model: str = "gpt-3.5-turbo"

    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    rate_limit_minute: int = 15
    rate_limit_hour: int = 250
    rate_limit_day: int = 500

    stream_max_retries: int = 3
    stream_retry_base_delay: float = 2.0

    log_level: str = "INFO"

    @property
    def active_model(self) -> str:
        return self.gemini_model if self.llm_provider == "gemini" else self.openai_model


def _env(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def load_settings() -> Settings:
    origins = [o.strip() for o in _env("CORS_ORIGINS", "*").split(",") if o.strip()]
    return Settings(
        llm_provider=_env("LLM_PROVIDER", "gemini").lower(),
        gemini_api_key=_env("GEMINI_API_KEY", ""),
        gemini_model=_env("GEMINI_MODEL", "gemini-1.5-flash"),
        openai_api_key=_env("OPENAI_API_KEY", ""),
        openai_model=_env("OPENAI_MODEL", "gpt-3.5-turbo"),
        host=_env("HOST", "0.0.0.0"),
        port=_env("PORT", "3000"),
        cors_origins=origins or ["*"],
        rate_limit_minute=_env("RATE_LIMIT_MINUTE", "15"),
        rate_limit_hour=_env("RATE_LIMIT_HOUR", "250"),
        rate_limit_day=_env("RATE_LIMIT_DAY", "500"),
        stream_max_retries=_env("STREAM_MAX_RETRIES", "3"),
        stream_retry_base_delay=_env("STREAM_RETRY_BASE_DELAY", "2.0"),
        log_level=_env("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
