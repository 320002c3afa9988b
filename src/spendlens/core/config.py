from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", protected_namespaces=())

    environment: str = "dev"

    database_url: str = "sqlite:///./spendlens.db"
    redis_url: str = "redis://localhost:6379/0"

    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o"
    model_timeout_seconds: float = 60.0
    model_temperature: float = 0.1
    extraction_max_tokens: int = 1000
    insights_max_tokens: int = 3000

    # Currency resolution. The confidences are heuristics, not guarantees.
    fallback_currency: str = "USD"
    locale_currency: str | None = None
    currency_merchant_confidence: float = 0.9
    currency_location_confidence: float = 0.7
    currency_locale_confidence: float = 0.3
    currency_fallback_confidence: float = 0.1
    currency_disagreement_threshold: float = 0.8

    fallback_decode_confidence: float = 0.7
    max_amount: int = 1_000_000

    insights_min_records: int = 5
    insights_refresh_interval_days: int = 7
    insights_growth_records: int = 5
    insights_growth_ratio: float = 0.2
    insights_debounce_seconds: float = 2.0
    insights_max_categories: int = 10
    insights_max_merchants: int = 10
    insights_max_items: int = 15


settings = Settings()
