"""Runtime settings, loaded from the environment and an optional .env file."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    bot_token: str = ""
    admin_chat_id: int = 0
    log_level: str = "INFO"

    cmc_api_key: str = ""
    cmc_base: str = "https://pro-api.coinmarketcap.com"
    syariah_base: str = "https://syariahsaham-api.fly.dev"
    dexscreener_base: str = "https://api.dexscreener.com"
    alternative_base: str = "https://api.alternative.me"

    http_timeout_sec: float = 10.0
    http_retries: int = 2
    http_breaker_threshold: int = 4
    http_breaker_cooldown_sec: int = 60

    redis_url: str = "redis://localhost:6379/0"
    fear_greed_cache_ttl: int = 3600
    pulse_cache_ttl: int = 60

    usd_idr_rate: float = Field(default=16000.0, gt=0)
    starting_balance: float = Field(default=10_000.0, ge=0)
    order_notional: float = Field(default=1_000.0, gt=0)
    pulse_symbols: str = "BTC,ETH,SOL,BNB,XRP"

    request_rate_limit_per_minute: int = 30
    broadcast_concurrency: int = Field(default=10, ge=1)

    def pulse_symbols_list(self) -> list[str]:
        return [s.strip().upper() for s in self.pulse_symbols.split(",") if s.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
