"""Market data layer -- token price snapshots and momentum signals."""

from rotator.market_data.price_feed import DexToolsPriceFeed, PriceSignalProvider

__all__ = ["DexToolsPriceFeed", "PriceSignalProvider"]
