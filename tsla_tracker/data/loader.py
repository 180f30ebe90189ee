"""Market data loading: live quote and fundamentals with offline fallback."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tsla_tracker.config import DataConfig
from tsla_tracker.data.cache import CachedValue, LastKnownCache
from tsla_tracker.data.models import FALLBACK_FUNDAMENTALS, Fundamentals, Quote
from tsla_tracker.data.yahoo import fetch_fundamentals, fetch_quote
from tsla_tracker.metrics.valuation import compute_multiple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarketSnapshot:
    """Inputs for one valuation pass.

    Attributes:
        quote: Live quote, or None if every source failed.
        fundamentals: Live fundamentals, or the built-in fallback.
        stale: True when the quote could not be refreshed.
        cached: Last known multiple, present when stale and a cache exists.
    """

    quote: Quote | None
    fundamentals: Fundamentals
    stale: bool
    cached: CachedValue | None = None

    @property
    def price(self) -> float | None:
        if self.quote is not None:
            return self.quote.current
        if self.cached is not None:
            return self.cached.price
        return None


def load_market_snapshot(config: DataConfig | None = None) -> MarketSnapshot:
    """Fetch quote and fundamentals, degrading gracefully.

    Loading sequence:
        1. Fetch fundamentals; keep the built-in fallback if that fails.
        2. Fetch the quote (Yahoo, then yfinance).
        3. On success, cache the resulting multiple. On failure, load the
           last cached multiple and mark the snapshot stale.

    Args:
        config: Adapter settings.

    Returns:
        MarketSnapshot ready for the valuation engine.
    """
    if config is None:
        config = DataConfig()

    fundamentals = fetch_fundamentals(config.symbol, config)
    if fundamentals is None:
        logger.info(
            "%s: using fallback fundamentals as of %s",
            config.symbol,
            FALLBACK_FUNDAMENTALS.as_of,
        )
        fundamentals = FALLBACK_FUNDAMENTALS

    cache = LastKnownCache(config.cache_path)
    quote = fetch_quote(config.symbol, config)

    if quote is None:
        cached = cache.load()
        if cached is not None:
            logger.warning(
                "%s: quote unavailable, showing cached %.2fx from %s",
                config.symbol,
                cached.multiple,
                cached.stored_at.isoformat(),
            )
        else:
            logger.warning("%s: quote unavailable and no cached value", config.symbol)
        return MarketSnapshot(
            quote=None, fundamentals=fundamentals, stale=True, cached=cached,
        )

    cache.store(compute_multiple(quote.current, fundamentals), quote.current)
    return MarketSnapshot(quote=quote, fundamentals=fundamentals, stale=False)
