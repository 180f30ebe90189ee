"""Data models for quotes and fundamentals."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Fundamentals:
    """Snapshot of the two inputs needed to turn a price into a multiple.

    Attributes:
        trailing_revenue: Trailing twelve months revenue, in billions.
        shares_outstanding: Shares outstanding, in billions.
        as_of: Freshness tag (e.g. "2024-Q4" or "2025-Q2 (live)").
        source: "live" when fetched this session, "cached" for the
            built-in fallback values.
    """

    trailing_revenue: float
    shares_outstanding: float
    as_of: str
    source: str = "live"

    @property
    def is_live(self) -> bool:
        return self.source == "live"


@dataclass(frozen=True)
class Quote:
    """Latest market quote. Only ``current`` feeds the valuation engine.

    Attributes:
        current: Last traded price.
        open: Session open.
        high: Session high.
        low: Session low.
        previous_close: Prior session close.
        change: current - previous_close.
        change_percent: change / previous_close * 100 (0 if no close).
    """

    current: float
    open: float
    high: float
    low: float
    previous_close: float
    change: float
    change_percent: float


# Used until a live fetch succeeds, so the engine always has an input.
FALLBACK_FUNDAMENTALS = Fundamentals(
    trailing_revenue=97.0,
    shares_outstanding=3.19,
    as_of="2024-Q4",
    source="cached",
)
