from __future__ import annotations

from dataclasses import dataclass

from aiogram import Bot

from lubix.adapters.alternative import AlternativeMeAdapter
from lubix.adapters.coinmarketcap import CoinMarketCapAdapter
from lubix.adapters.dexscreener import DexScreenerAdapter
from lubix.adapters.syariah import SyariahAdapter
from lubix.core.cache import RedisCache
from lubix.core.config import Settings
from lubix.core.http import ResilientHTTPClient
from lubix.core.rate_limit import RateLimiter
from lubix.services.engine import ConversationEngine
from lubix.services.gateway import ProviderGateway
from lubix.services.portfolio import PortfolioService
from lubix.services.session_store import SessionStore


@dataclass
class ServiceHub:
    telegram_bot: Bot
    settings: Settings
    http: ResilientHTTPClient
    cache: RedisCache
    rate_limiter: RateLimiter
    store: SessionStore
    gateway: ProviderGateway
    portfolio: PortfolioService
    engine: ConversationEngine

    async def close(self) -> None:
        await self.http.close()
        await self.cache.close()


def build_hub(settings: Settings, bot: Bot) -> ServiceHub:
    http = ResilientHTTPClient(
        timeout=settings.http_timeout_sec,
        retries=settings.http_retries,
        breaker_threshold=settings.http_breaker_threshold,
        breaker_cooldown=settings.http_breaker_cooldown_sec,
    )
    cache = RedisCache(settings.redis_url)
    gateway = ProviderGateway(
        syariah=SyariahAdapter(http, settings.syariah_base),
        cmc=CoinMarketCapAdapter(http, settings.cmc_base, settings.cmc_api_key),
        dexscreener=DexScreenerAdapter(http, settings.dexscreener_base),
        alternative=AlternativeMeAdapter(http, settings.alternative_base),
        cache=cache,
        deadline_sec=settings.http_timeout_sec * (settings.http_retries + 1) + 5,
        fear_greed_ttl=settings.fear_greed_cache_ttl,
        pulse_ttl=settings.pulse_cache_ttl,
    )
    store = SessionStore(starting_balance=settings.starting_balance)
    portfolio = PortfolioService(store, gateway, order_notional=settings.order_notional)

    async def send_plain(chat_id: int, text: str) -> None:
        await bot.send_message(chat_id=chat_id, text=text, parse_mode=None)

    engine = ConversationEngine(
        store=store,
        gateway=gateway,
        portfolio=portfolio,
        sender=send_plain,
        admin_chat_id=settings.admin_chat_id,
        pulse_symbols=settings.pulse_symbols_list(),
        broadcast_concurrency=settings.broadcast_concurrency,
    )
    return ServiceHub(
        telegram_bot=bot,
        settings=settings,
        http=http,
        cache=cache,
        rate_limiter=RateLimiter(cache, settings.request_rate_limit_per_minute),
        store=store,
        gateway=gateway,
        portfolio=portfolio,
        engine=engine,
    )
