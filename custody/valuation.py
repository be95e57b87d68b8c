"""
valuation.py - Reference-currency valuation of asset amounts

Two layers, following the pure-function pattern used across the package:

1. value_of(): pure calculation, all inputs explicit
2. ValuationEngine: looks up the asset's listing, queries its price source,
   then calls value_of()

Key formula:
    value = amount * price * 10**REFERENCE_DECIMALS
            // (10**asset_decimals * 10**price_decimals)

Python integers never overflow, so the product is computed at full width
before the single division. Amounts are non-negative, so floor division
truncates toward zero.

Prices are never cached. Every valuation re-reads the price source.
"""

from __future__ import annotations
from typing import Mapping, Optional

from .core import (
    AssetListing, PriceQuote,
    REFERENCE_DECIMALS,
    AssetNotSupported, InvalidPriceData,
)


def validate_quote(asset: str, quote: Optional[PriceQuote]) -> PriceQuote:
    """Return quote unchanged, or raise InvalidPriceData when missing or non-positive."""
    if quote is None:
        raise InvalidPriceData(f"no price data for {asset}")
    if quote.price <= 0:
        raise InvalidPriceData(f"non-positive price for {asset}: {quote.price}")
    return quote


def value_of(amount: int, asset_decimals: int, quote: Optional[PriceQuote], asset: str = "asset") -> int:
    """
    Value a native-precision amount in the reference currency.

    Args:
        amount: Amount in the asset's native precision (non-negative)
        asset_decimals: Native precision of the asset
        quote: Price quote from the asset's price source
        asset: Asset identifier, used in error messages

    Returns:
        Value at REFERENCE_DECIMALS precision, truncated.

    Raises:
        InvalidPriceData: If quote is None or its price is <= 0
        ValueError: If amount is negative

    Example:
        # 1.5 units of an 8-decimal asset at $2,000.00 (8-decimal quote)
        value_of(150_000_000, 8, PriceQuote(200_000_000_000, 8))
        # -> 3000 * 10**18
    """
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    quote = validate_quote(asset, quote)
    numerator = amount * quote.price * 10 ** REFERENCE_DECIMALS
    denominator = 10 ** asset_decimals * 10 ** quote.decimals
    return numerator // denominator


class ValuationEngine:
    """
    Values amounts of listed assets using their bound price sources.

    The engine holds a reference to the bank's listing map, so registrations
    and deregistrations are visible immediately.
    """

    def __init__(self, listings: Mapping[str, AssetListing]):
        self._listings = listings

    def listing(self, asset: str) -> AssetListing:
        """Return the listing for asset or raise AssetNotSupported."""
        listing = self._listings.get(asset)
        if listing is None:
            raise AssetNotSupported(f"asset {asset} is not supported")
        return listing

    def quote(self, asset: str) -> PriceQuote:
        """Read and validate the current quote for asset."""
        return validate_quote(asset, self._read(self.listing(asset), asset))

    def value_of(self, asset: str, amount: int) -> int:
        """Value a native-precision amount of asset in the reference currency."""
        listing = self.listing(asset)
        return value_of(amount, listing.decimals, self._read(listing, asset), asset)

    @staticmethod
    def _read(listing: AssetListing, asset: str) -> Optional[PriceQuote]:
        """Query the bound source; any failure inside it is reported as InvalidPriceData."""
        try:
            return listing.price_source.latest_price(asset)
        except Exception as exc:
            raise InvalidPriceData(f"price source for {asset} failed: {exc}") from exc

    def __repr__(self):
        return f"ValuationEngine({len(self._listings)} listings)"
