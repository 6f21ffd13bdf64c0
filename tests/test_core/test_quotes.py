"""Tests for the quote provider chain."""

import asyncio
from typing import Optional
from unittest.mock import Mock, patch

import httpx
import pytest

from paperbroker.config.settings import Settings
from paperbroker.core.errors import QuoteUnavailableError
from paperbroker.core.quotes import (
    AlphaVantageQuoteProvider,
    FinnhubQuoteProvider,
    QuoteData,
    QuoteProvider,
    QuoteService,
    SyntheticQuoteProvider,
    YFinanceQuoteProvider,
    build_quote_service,
)


class StaticProvider(QuoteProvider):
    """Provider that returns a fixed price and counts its calls."""

    def __init__(self, name: str, price: Optional[float]):
        self.name = name
        self.price = price
        self.calls = 0

    async def fetch_quote(self, symbol: str) -> Optional[QuoteData]:
        self.calls += 1
        if self.price is None:
            return None
        return QuoteData(symbol=symbol, price=self.price, source=self.name)


class FailingProvider(QuoteProvider):
    name = "failing"

    async def fetch_quote(self, symbol: str) -> Optional[QuoteData]:
        raise RuntimeError("upstream exploded")


class SlowProvider(QuoteProvider):
    name = "slow"

    async def fetch_quote(self, symbol: str) -> Optional[QuoteData]:
        await asyncio.sleep(5)
        return QuoteData(symbol=symbol, price=1.0, source=self.name)


class TestSyntheticQuotes:
    """Test the deterministic offline provider."""

    def test_same_symbol_same_price(self):
        first = SyntheticQuoteProvider.quote_for("AAPL")
        second = SyntheticQuoteProvider.quote_for("AAPL")

        assert first.price == second.price
        assert first.change == second.change
        assert first.source == "synthetic"

    def test_price_within_range(self):
        for symbol in ("A", "AAPL", "MSFT", "BRK.B", "ZZZZZ"):
            quote = SyntheticQuoteProvider.quote_for(symbol)
            assert 50 <= quote.price <= 250
            assert -5 <= quote.change_percent <= 5

    @pytest.mark.asyncio
    async def test_fetch_quote_matches_quote_for(self):
        quote = await SyntheticQuoteProvider().fetch_quote("TSLA")
        assert quote == SyntheticQuoteProvider.quote_for("TSLA")


class TestQuoteService:
    """Test fallback, timeouts and caching."""

    @pytest.mark.asyncio
    async def test_first_provider_wins(self):
        primary = StaticProvider("primary", 101.0)
        backup = StaticProvider("backup", 99.0)
        service = QuoteService([primary, backup], cache_seconds=0)

        quote = await service.get_quote("aapl")

        assert quote.price == 101.0
        assert quote.symbol == "AAPL"
        assert backup.calls == 0

    @pytest.mark.asyncio
    async def test_falls_back_when_provider_has_nothing(self):
        empty = StaticProvider("empty", None)
        backup = StaticProvider("backup", 42.5)
        service = QuoteService([empty, backup], cache_seconds=0)

        quote = await service.get_quote("XYZ")

        assert quote.source == "backup"
        assert empty.calls == 1

    @pytest.mark.asyncio
    async def test_falls_back_when_provider_raises(self):
        backup = StaticProvider("backup", 10.0)
        service = QuoteService([FailingProvider(), backup], cache_seconds=0)

        quote = await service.get_quote("XYZ")

        assert quote.price == 10.0

    @pytest.mark.asyncio
    async def test_slow_provider_is_abandoned(self):
        backup = StaticProvider("backup", 7.0)
        service = QuoteService([SlowProvider(), backup], timeout_seconds=0.05, cache_seconds=0)

        quote = await service.get_quote("XYZ")

        assert quote.source == "backup"

    @pytest.mark.asyncio
    async def test_all_providers_fail(self):
        service = QuoteService(
            [StaticProvider("empty", None), FailingProvider()], cache_seconds=0
        )

        with pytest.raises(QuoteUnavailableError) as exc_info:
            await service.get_quote("NOPE")

        assert exc_info.value.code == "price_unavailable"
        assert exc_info.value.details == {"symbol": "NOPE"}

    @pytest.mark.asyncio
    async def test_quotes_are_cached(self):
        provider = StaticProvider("primary", 55.0)
        service = QuoteService([provider], cache_seconds=60)

        await service.get_quote("ABC")
        await service.get_quote("abc")

        assert provider.calls == 1

        service.clear_cache()
        await service.get_quote("ABC")
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_zero_cache_always_refetches(self):
        provider = StaticProvider("primary", 55.0)
        service = QuoteService([provider], cache_seconds=0)

        await service.get_quote("ABC")
        await service.get_quote("ABC")

        assert provider.calls == 2


class TestHTTPProviders:
    """Test response parsing and rate limit handling of the HTTP providers."""

    @pytest.mark.asyncio
    async def test_finnhub_parses_quote(self):
        provider = FinnhubQuoteProvider("key", timeout_seconds=1, cooldown_seconds=60)
        payload = {"c": 110.0, "pc": 100.0, "h": 111.0, "l": 99.0, "o": 101.0}

        with patch.object(provider, "_get_json", return_value=payload):
            quote = await provider.fetch_quote("AAPL")

        assert quote.price == 110.0
        assert quote.change == pytest.approx(10.0)
        assert quote.change_percent == pytest.approx(10.0)
        assert quote.source == "finnhub"

    @pytest.mark.asyncio
    async def test_finnhub_zero_price_is_no_quote(self):
        provider = FinnhubQuoteProvider("key", timeout_seconds=1, cooldown_seconds=60)

        with patch.object(provider, "_get_json", return_value={"c": 0, "pc": 0}):
            assert await provider.fetch_quote("DEAD") is None

    @pytest.mark.asyncio
    async def test_http_429_starts_cooldown(self):
        provider = FinnhubQuoteProvider("key", timeout_seconds=1, cooldown_seconds=60)
        request = httpx.Request("GET", FinnhubQuoteProvider.base_url)
        response = httpx.Response(429, request=request)

        def handler(_request):
            return response

        transport = httpx.MockTransport(handler)
        real_client = httpx.AsyncClient

        with patch(
            "paperbroker.core.quotes.httpx.AsyncClient",
            lambda **kwargs: real_client(transport=transport, **kwargs),
        ):
            assert await provider.fetch_quote("AAPL") is None

        assert provider.is_cooling_down
        # No request is made while cooling down
        with patch.object(provider, "_get_json") as get_json:
            assert await provider.fetch_quote("AAPL") is None
            get_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_alpha_vantage_parses_global_quote(self):
        provider = AlphaVantageQuoteProvider("key", timeout_seconds=1, cooldown_seconds=60)
        payload = {
            "Global Quote": {
                "02. open": "100.00",
                "03. high": "105.00",
                "04. low": "99.00",
                "05. price": "104.50",
                "06. volume": "123456",
                "08. previous close": "100.00",
                "09. change": "4.50",
                "10. change percent": "4.5000%",
            }
        }

        with patch.object(provider, "_get_json", return_value=payload):
            quote = await provider.fetch_quote("IBM")

        assert quote.price == 104.5
        assert quote.change_percent == pytest.approx(4.5)
        assert quote.volume == 123456

    @pytest.mark.asyncio
    async def test_alpha_vantage_daily_limit_note(self):
        provider = AlphaVantageQuoteProvider("key", timeout_seconds=1, cooldown_seconds=60)
        payload = {"Information": "You have reached the 25 requests per day limit."}

        with patch.object(provider, "_get_json", return_value=payload):
            assert await provider.fetch_quote("IBM") is None

        assert provider.is_cooling_down


class TestYFinanceProvider:
    """Test the yfinance provider with a mocked ticker."""

    @pytest.mark.asyncio
    @patch("paperbroker.core.quotes.yf")
    async def test_uses_latest_minute_close(self, mock_yf):
        intraday = Mock(empty=False)
        intraday.__getitem__ = Mock(return_value=Mock(iloc=Mock(__getitem__=Mock(return_value=150.0))))

        closes = Mock()
        closes.__len__ = Mock(return_value=5)
        closes.iloc = Mock(__getitem__=Mock(return_value=148.0))
        daily = Mock()
        daily.__getitem__ = Mock(return_value=Mock(dropna=Mock(return_value=closes)))

        mock_ticker = Mock()
        mock_ticker.history.side_effect = [intraday, daily]
        mock_yf.Ticker.return_value = mock_ticker

        quote = await YFinanceQuoteProvider().fetch_quote("AAPL")

        assert quote.price == 150.0
        assert quote.previous_close == 148.0
        assert quote.change == pytest.approx(2.0)
        mock_yf.Ticker.assert_called_once_with("AAPL")
        mock_ticker.history.assert_any_call(period="1d", interval="1m")
        mock_ticker.history.assert_any_call(period="5d")


class TestBuildQuoteService:
    """Test building the provider chain from settings."""

    def test_skips_keyless_providers(self, tmp_path):
        settings = Settings(
            data_directory=str(tmp_path),
            quote_providers="finnhub,alpha_vantage,yfinance,synthetic",
            finnhub_api_key=None,
            alpha_vantage_api_key=None,
        )

        service = build_quote_service(settings)

        assert [p.name for p in service.providers] == ["yfinance", "synthetic"]

    def test_keeps_configured_order(self, tmp_path):
        settings = Settings(
            data_directory=str(tmp_path),
            quote_providers="synthetic,finnhub",
            finnhub_api_key="abc",
            quote_timeout_seconds=2.5,
            quote_cache_seconds=15,
        )

        service = build_quote_service(settings)

        assert [p.name for p in service.providers] == ["synthetic", "finnhub"]
        assert service.timeout_seconds == 2.5
        assert service.cache_seconds == 15
