"""Market quote providers and the fallback chain used for trade pricing."""

import asyncio
import time
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Dict, List, Optional, Sequence, Tuple

import httpx
import yfinance as yf
from pydantic import BaseModel, Field

from ..config.logging import get_logger
from ..config.settings import Settings, get_settings
from .errors import QuoteUnavailableError

logger = get_logger(__name__)


class QuoteData(BaseModel):
    """Current price information for a symbol."""

    symbol: str
    price: float = Field(..., gt=0)
    change: float = 0.0
    change_percent: float = 0.0
    volume: Optional[int] = None
    high: Optional[float] = None
    low: Optional[float] = None
    open: Optional[float] = None
    previous_close: Optional[float] = None
    source: str = "unknown"


class QuoteProvider(ABC):
    """A single source of market quotes."""

    name = "base"

    @abstractmethod
    async def fetch_quote(self, symbol: str) -> Optional[QuoteData]:
        """Return a quote, or None when this source has nothing usable."""


class _RateLimitedHTTPProvider(QuoteProvider):
    """HTTP provider that backs off for a while after being rate limited."""

    def __init__(self, api_key: str, timeout_seconds: float, cooldown_seconds: int):
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.cooldown_seconds = cooldown_seconds
        self._cooldown_until = 0.0
        self.logger = logger.bind(provider=self.name)

    @property
    def is_cooling_down(self) -> bool:
        return time.monotonic() < self._cooldown_until

    def _start_cooldown(self, seconds: Optional[int] = None) -> None:
        self._cooldown_until = time.monotonic() + (seconds or self.cooldown_seconds)
        self.logger.warning("Provider rate limited, backing off")

    async def _get_json(self, url: str, params: Dict[str, str]) -> Optional[dict]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(
                    url, params=params, headers={"Accept": "application/json"}
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                self._start_cooldown()
            self.logger.warning(
                "Quote request failed", status_code=e.response.status_code
            )
            return None


class FinnhubQuoteProvider(_RateLimitedHTTPProvider):
    """Quotes from the Finnhub REST API."""

    name = "finnhub"
    base_url = "https://finnhub.io/api/v1/quote"

    async def fetch_quote(self, symbol: str) -> Optional[QuoteData]:
        if self.is_cooling_down:
            return None

        data = await self._get_json(self.base_url, {"symbol": symbol, "token": self.api_key})
        if not data or "error" in data or not isinstance(data.get("c"), (int, float)):
            return None

        price = data["c"]
        previous_close = data.get("pc") or 0
        if price <= 0:
            return None

        return QuoteData(
            symbol=symbol,
            price=price,
            change=price - previous_close if previous_close else 0.0,
            change_percent=(
                (price - previous_close) / previous_close * 100 if previous_close else 0.0
            ),
            volume=data.get("v"),
            high=data.get("h"),
            low=data.get("l"),
            open=data.get("o"),
            previous_close=previous_close or None,
            source=self.name,
        )


class AlphaVantageQuoteProvider(_RateLimitedHTTPProvider):
    """Quotes from the Alpha Vantage GLOBAL_QUOTE endpoint."""

    name = "alpha_vantage"
    base_url = "https://www.alphavantage.co/query"
    daily_limit_cooldown = 86400

    async def fetch_quote(self, symbol: str) -> Optional[QuoteData]:
        if self.is_cooling_down:
            return None

        data = await self._get_json(
            self.base_url,
            {"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self.api_key},
        )
        if not data:
            return None

        # The free tier answers 200 with a note once the daily quota is spent
        note = data.get("Note") or data.get("Information") or ""
        if "rate limit" in note.lower() or "requests per day" in note.lower():
            self._start_cooldown(self.daily_limit_cooldown)
            return None

        quote = data.get("Global Quote") or {}
        if not quote.get("05. price"):
            return None

        return QuoteData(
            symbol=symbol,
            price=float(quote["05. price"]),
            change=float(quote.get("09. change", 0) or 0),
            change_percent=float(
                str(quote.get("10. change percent", "0")).rstrip("%") or 0
            ),
            volume=int(quote.get("06. volume", 0) or 0),
            high=float(quote["03. high"]) if quote.get("03. high") else None,
            low=float(quote["04. low"]) if quote.get("04. low") else None,
            open=float(quote["02. open"]) if quote.get("02. open") else None,
            previous_close=(
                float(quote["08. previous close"])
                if quote.get("08. previous close")
                else None
            ),
            source=self.name,
        )


class YFinanceQuoteProvider(QuoteProvider):
    """Quotes from Yahoo Finance via yfinance, run off the event loop."""

    name = "yfinance"

    async def fetch_quote(self, symbol: str) -> Optional[QuoteData]:
        return await asyncio.to_thread(self._fetch_sync, symbol)

    def _fetch_sync(self, symbol: str) -> Optional[QuoteData]:
        stock = yf.Ticker(symbol)
        data = stock.history(period="1d", interval="1m")

        if not data.empty:
            current_price = float(data["Close"].iloc[-1])  # most recent minute
        else:
            current_price = stock.fast_info.last_price

        if not current_price or current_price <= 0:
            return None

        closes = stock.history(period="5d")["Close"].dropna()
        previous_close = float(closes.iloc[-2]) if len(closes) >= 2 else None
        change = current_price - previous_close if previous_close else 0.0

        return QuoteData(
            symbol=symbol,
            price=float(current_price),
            change=change,
            change_percent=change / previous_close * 100 if previous_close else 0.0,
            previous_close=previous_close,
            source=self.name,
        )


class SyntheticQuoteProvider(QuoteProvider):
    """
    Deterministic stand-in prices for demo and offline use.

    The same symbol always yields the same price, somewhere between
    $50 and $250.
    """

    name = "synthetic"

    async def fetch_quote(self, symbol: str) -> Optional[QuoteData]:
        return self.quote_for(symbol)

    @staticmethod
    def quote_for(symbol: str) -> QuoteData:
        seed = sum(ord(char) for char in symbol)
        fraction = ((seed * 9301 + 49297) % 233280) / 233280
        base_price = 50 + fraction * 200
        change_percent = -5 + fraction * 10
        change = base_price * (change_percent / 100)

        return QuoteData(
            symbol=symbol,
            price=round(base_price, 2),
            change=round(change, 2),
            change_percent=round(change_percent, 2),
            volume=int(1_000_000 + fraction * 5_000_000),
            high=round(base_price * 1.05, 2),
            low=round(base_price * 0.95, 2),
            open=round(base_price * 0.98, 2),
            previous_close=round(base_price - change, 2),
            source="synthetic",
        )


class QuoteService:
    """
    Resolve quotes through an ordered list of providers.

    Each provider call is bounded by ``timeout_seconds``; failures are
    logged and the next provider is tried. Successful quotes are cached
    for ``cache_seconds``.
    """

    def __init__(
        self,
        providers: Sequence[QuoteProvider],
        timeout_seconds: float = 10.0,
        cache_seconds: int = 60,
    ):
        self.providers: List[QuoteProvider] = list(providers)
        self.timeout_seconds = timeout_seconds
        self.cache_seconds = cache_seconds
        self._cache: Dict[str, Tuple[QuoteData, float]] = {}
        self.logger = logger.bind(component="quote_service")

    async def get_quote(self, symbol: str) -> QuoteData:
        """
        Get the current quote for a symbol.

        Raises:
            QuoteUnavailableError: If every provider failed
        """
        symbol = symbol.upper().strip()

        cached = self._cache.get(symbol)
        if cached and time.monotonic() - cached[1] < self.cache_seconds:
            return cached[0]

        for provider in self.providers:
            try:
                quote = await asyncio.wait_for(
                    provider.fetch_quote(symbol), timeout=self.timeout_seconds
                )
            except asyncio.TimeoutError:
                self.logger.warning(
                    "Quote provider timed out", provider=provider.name, symbol=symbol
                )
                continue
            except Exception as e:
                self.logger.warning(
                    "Quote provider failed",
                    provider=provider.name,
                    symbol=symbol,
                    error=str(e),
                )
                continue

            if quote is not None:
                self._cache[symbol] = (quote, time.monotonic())
                return quote

        self.logger.warning("No quote provider could price symbol", symbol=symbol)
        raise QuoteUnavailableError(symbol)

    def clear_cache(self) -> None:
        self._cache.clear()


def build_quote_service(settings: Settings) -> QuoteService:
    """Build the provider chain described by the settings."""
    providers: List[QuoteProvider] = []

    for name in settings.get_quote_provider_names():
        if name == "finnhub":
            if not settings.finnhub_api_key:
                logger.info("Skipping finnhub quotes, no API key configured")
                continue
            providers.append(
                FinnhubQuoteProvider(
                    settings.finnhub_api_key,
                    settings.quote_timeout_seconds,
                    settings.quote_rate_limit_cooldown_seconds,
                )
            )
        elif name == "alpha_vantage":
            if not settings.alpha_vantage_api_key:
                logger.info("Skipping alpha_vantage quotes, no API key configured")
                continue
            providers.append(
                AlphaVantageQuoteProvider(
                    settings.alpha_vantage_api_key,
                    settings.quote_timeout_seconds,
                    settings.quote_rate_limit_cooldown_seconds,
                )
            )
        elif name == "yfinance":
            providers.append(YFinanceQuoteProvider())
        elif name == "synthetic":
            providers.append(SyntheticQuoteProvider())

    logger.info(
        "Quote provider chain configured",
        providers=[provider.name for provider in providers],
    )

    return QuoteService(
        providers,
        timeout_seconds=settings.quote_timeout_seconds,
        cache_seconds=settings.quote_cache_seconds,
    )


@lru_cache()
def get_quote_service() -> QuoteService:
    """Get the shared quote service."""
    return build_quote_service(get_settings())
