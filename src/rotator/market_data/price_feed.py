"""Price signal providers: per-token price and multi-timeframe momentum.

PriceSignalProvider is the boundary the strategy engine depends on.
DexToolsPriceFeed implements it against the DEXTools v2 token price
endpoint, which reports a price plus 5m/1h/6h/24h variations. A null
variation becomes the PriceChange null-data fallback, never a real 0%.
"""

from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation

import httpx

from rotator.config import PriceFeedSettings
from rotator.exceptions import PriceNotFoundError, RotatorError, UpstreamError
from rotator.logging import get_logger
from rotator.models import PriceChange, Timeframe, TokenConfig, TokenPriceSnapshot
from rotator.rate_limiter import RateLimiter

logger = get_logger(__name__)

# DEXTools response field -> timeframe
_VARIATION_FIELDS: dict[str, Timeframe] = {
    "variation5m": Timeframe.M5,
    "variation1h": Timeframe.H1,
    "variation6h": Timeframe.H6,
    "variation24h": Timeframe.H24,
}


class PriceSignalProvider(ABC):
    """Abstract source of token price snapshots."""

    @abstractmethod
    async def get_price_snapshot(self, symbol: str) -> TokenPriceSnapshot:
        """Return the current snapshot for one token.

        Raises:
            PriceNotFoundError: If the token is unknown or has no data.
            UpstreamError: If the feed fails.
        """
        ...

    async def get_all_price_snapshots(self) -> list[TokenPriceSnapshot]:
        """Return snapshots for every configured token, best effort.

        Individual failures are logged and omitted.
        """
        snapshots: list[TokenPriceSnapshot] = []
        for symbol in self.symbols():
            try:
                snapshots.append(await self.get_price_snapshot(symbol))
            except RotatorError as e:
                logger.warning("price_snapshot_skipped", symbol=symbol, error=str(e))
        return snapshots

    @abstractmethod
    def symbols(self) -> list[str]:
        """Symbols this provider serves, in registry order."""
        ...


class DexToolsPriceFeed(PriceSignalProvider):
    """DEXTools-backed price feed.

    Args:
        settings: Feed endpoint, chain id, and API key.
        registry: Token registry (symbol -> TokenConfig).
        rate_limiter: Shared gate for outbound calls.
        client: Optional preconfigured httpx client (tests inject a
            MockTransport-backed one).
    """

    def __init__(
        self,
        settings: PriceFeedSettings,
        registry: dict[str, TokenConfig],
        rate_limiter: RateLimiter,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._rate_limiter = rate_limiter
        self._client = client or httpx.AsyncClient(
            base_url=settings.base_url,
            headers={"X-API-KEY": settings.api_key.get_secret_value()},
            timeout=settings.request_timeout_seconds,
        )

    def symbols(self) -> list[str]:
        return list(self._registry)

    async def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        await self._client.aclose()

    async def get_price_snapshot(self, symbol: str) -> TokenPriceSnapshot:
        token = self._registry.get(symbol)
        if token is None:
            raise PriceNotFoundError(f"Token {symbol} is not in the registry")

        path = f"/token/{self._settings.chain_id}/{token.address}/price"
        try:
            response = await self._rate_limiter.call(self._client.get, path)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Price request for {symbol} failed: {e}") from e

        if response.status_code == 404:
            raise PriceNotFoundError(f"No price data for {symbol}")
        if response.status_code != 200:
            raise UpstreamError(
                f"Price request for {symbol} returned HTTP {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(f"Price response for {symbol} is not JSON") from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not data:
            raise PriceNotFoundError(f"No price data for {symbol}")
        if not isinstance(data, dict):
            raise UpstreamError(f"Malformed price data for {symbol}: expected an object")

        snapshot = self._parse_snapshot(token, data)
        logger.debug(
            "price_snapshot",
            symbol=symbol,
            price=str(snapshot.price),
            changes={c.timeframe.value: str(c.percentage) for c in snapshot.price_changes},
        )
        return snapshot

    @staticmethod
    def _parse_snapshot(token: TokenConfig, data: dict) -> TokenPriceSnapshot:
        raw_price = data.get("price")
        if raw_price is None:
            raise PriceNotFoundError(f"No price for {token.symbol}")
        try:
            price = Decimal(str(raw_price))
            changes = [
                PriceChange.from_variation(timeframe, data.get(field_name))
                for field_name, timeframe in _VARIATION_FIELDS.items()
            ]
        except (InvalidOperation, ValueError) as e:
            raise UpstreamError(f"Malformed price data for {token.symbol}: {e}") from e
        if not price.is_finite() or price <= 0:
            raise UpstreamError(f"Malformed price data for {token.symbol}: price {raw_price!r}")

        return TokenPriceSnapshot(
            symbol=token.symbol,
            name=token.name,
            price=price,
            price_changes=changes,
        )
