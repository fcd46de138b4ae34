from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


load_dotenv()


class ConfigurationError(RuntimeError):
    """Raised when the model gateway cannot be configured (missing key, bad mode)."""


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    def __init__(self) -> None:
        self.app_env: str = os.getenv("APP_ENV", "development")
        self.google_api_key: Optional[str] = os.getenv("GOOGLE_API_KEY") or None
        self.gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        # Optional override for proxies / regional endpoints
        self.gemini_endpoint: Optional[str] = os.getenv("GEMINI_ENDPOINT") or None
        self.temperature: float = float(os.getenv("MODEL_TEMPERATURE", "0.3"))
        self.top_p: float = float(os.getenv("MODEL_TOP_P", "0.9"))
        self.max_output_tokens: int = int(os.getenv("MODEL_MAX_TOKENS", "1000"))
        self.filter_extraction: str = os.getenv("FILTER_EXTRACTION", "model").lower()
        self.fuzzy_threshold: float = float(os.getenv("FUZZY_THRESHOLD", "0.4"))
        self.history_window: int = int(os.getenv("HISTORY_WINDOW", "20"))
        self.users_api_url: str = os.getenv("USERS_API_URL", "http://127.0.0.1:8000")

    def require_model_credentials(self) -> None:
        if not self.google_api_key:
            raise ConfigurationError(
                "GOOGLE_API_KEY not set. Please configure it in environment or .env"
            )
        if self.filter_extraction not in {"model", "lexical"}:
            raise ConfigurationError(
                f"FILTER_EXTRACTION must be 'model' or 'lexical', got {self.filter_extraction!r}"
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
