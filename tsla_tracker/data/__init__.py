"""Market data models and adapters."""

from __future__ import annotations

from tsla_tracker.data.models import FALLBACK_FUNDAMENTALS, Fundamentals, Quote
from tsla_tracker.data.yahoo import fetch_candles, fetch_fundamentals, fetch_quote

__all__ = [
    "FALLBACK_FUNDAMENTALS",
    "Fundamentals",
    "Quote",
    "fetch_candles",
    "fetch_fundamentals",
    "fetch_quote",
]
