"""
pricing_source.py - In-memory price sources

Classes:
- StaticPriceSource: Time-independent quotes
- TimeSeriesPriceSource: Time-varying quotes read at a movable clock

Both implement the PriceSource protocol from core. Prices are integers in
the reference currency scaled by 10**decimals (8 by default, the usual feed
precision). A missing price yields None, which the valuation engine rejects.
"""

from datetime import datetime
from bisect import bisect_right
from typing import Dict, List, Optional, Tuple

from .core import PriceQuote

DEFAULT_PRICE_DECIMALS = 8


class StaticPriceSource:
    """
    Price source with constant quotes (time-independent).

    A single source may serve several assets; the bank binds it per asset.

    Example:
        feed = StaticPriceSource({'native': 2_000_00000000, 'WBTC': 60_000_00000000})
        feed.latest_price('native')   # PriceQuote(price=200000000000, decimals=8)
    """

    def __init__(self, prices: Optional[Dict[str, int]] = None, decimals: int = DEFAULT_PRICE_DECIMALS):
        """
        Initialize with a static price map.

        Args:
            prices: Dictionary mapping asset identifiers to scaled prices
            decimals: Precision of every price in this source
        """
        self.decimals = decimals
        self.prices: Dict[str, int] = dict(prices or {})

    def latest_price(self, asset: str) -> Optional[PriceQuote]:
        """Return the quote for asset, or None if it has no price."""
        if asset not in self.prices:
            return None
        return PriceQuote(self.prices[asset], self.decimals)

    def update_price(self, asset: str, price: int):
        """Update the price of an asset."""
        self.prices[asset] = price

    def update_prices(self, prices: Dict[str, int]):
        """Update multiple prices at once."""
        self.prices.update(prices)

    def clear_price(self, asset: str):
        """Remove an asset's price, so the source reports no data for it."""
        self.prices.pop(asset, None)

    def __repr__(self):
        return f"StaticPriceSource({len(self.prices)} prices, decimals={self.decimals})"


class TimeSeriesPriceSource:
    """
    Price source with time-varying quotes.

    Stores observations per asset and answers with the most recent one at or
    before the source's clock. The clock only moves forward (advance_to).

    Example:
        feed = TimeSeriesPriceSource({
            'native': [(t0, 2_000_00000000), (t1, 2_100_00000000)],
        })
        feed.advance_to(t0)
        feed.latest_price('native').price   # 200000000000
    """

    def __init__(
        self,
        price_paths: Optional[Dict[str, List[Tuple[datetime, int]]]] = None,
        decimals: int = DEFAULT_PRICE_DECIMALS,
        start_time: Optional[datetime] = None,
    ):
        """
        Initialize price source.

        Args:
            price_paths: Optional dict mapping assets to lists of (timestamp, price)
            decimals: Precision of every price in this source
            start_time: Initial clock (default: 1970-01-01)
        """
        self.decimals = decimals
        self.current_time: datetime = start_time or datetime(1970, 1, 1)
        self.price_history: Dict[str, List[Tuple[datetime, int]]] = {}

        if price_paths:
            for asset, path in price_paths.items():
                if not path:
                    continue
                self.price_history[asset] = sorted(path, key=lambda x: x[0])

    def add_price(self, asset: str, timestamp: datetime, price: int):
        """Add a price observation for an asset at a specific time."""
        if asset not in self.price_history:
            self.price_history[asset] = []
        self.price_history[asset].append((timestamp, price))
        self.price_history[asset].sort(key=lambda x: x[0])

    def advance_to(self, timestamp: datetime):
        """
        Move the source's clock forward.

        Raises:
            ValueError: If timestamp is before the current clock
        """
        if timestamp < self.current_time:
            raise ValueError(f"Cannot move time backwards: {timestamp} < {self.current_time}")
        self.current_time = timestamp

    def latest_price(self, asset: str) -> Optional[PriceQuote]:
        """
        Return the most recent quote at or before the current clock.

        Returns None if there is no observation yet. Uses binary search.
        """
        history = self.price_history.get(asset)
        if not history:
            return None

        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, self.current_time)
        if idx == 0:
            return None
        return PriceQuote(history[idx - 1][1], self.decimals)

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return (
            f"TimeSeriesPriceSource({len(self.price_history)} assets, "
            f"{total_observations} observations, decimals={self.decimals})"
        )
