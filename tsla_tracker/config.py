"""Tracker configuration: valuation tiers, gauge, data sources, chat limits."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

# Prices below this floor are treated as corrupted or meaningless.
MIN_PRICE_FLOOR: float = 0.01

# Midpoint of the fair tier; fair-value gap is measured against it.
REFERENCE_MULTIPLE: float = 9.5

# Absolute daily move (percent) that triggers a large-movement alert.
LARGE_MOVEMENT_THRESHOLD: float = 10.0


class TierTableError(ValueError):
    """Raised when a tier table does not partition [0, inf)."""


class Signal(Enum):
    """Action vocabulary attached to each valuation tier."""

    STRONG_BUY = "strong-buy"
    BUY = "buy"
    HOLD = "hold"
    WAIT = "wait"
    SELL = "sell"


@dataclass(frozen=True)
class Tier:
    """A labelled price-to-sales range with a recommended action.

    Attributes:
        id: Stable symbolic key (e.g. "fair").
        label: Display name.
        description: One-line guidance shown next to the label.
        min_multiple: Inclusive lower bound.
        max_multiple: Exclusive upper bound (math.inf for the last tier).
        color: Tier colour used for gauge arcs and chart lines.
        signal_color: Colour of the signal word.
        signal: Recommended action.
    """

    id: str
    label: str
    description: str
    min_multiple: float
    max_multiple: float
    color: str
    signal_color: str
    signal: Signal

    def contains(self, multiple: float) -> bool:
        return self.min_multiple <= multiple < self.max_multiple


VALUATION_TIERS: tuple[Tier, ...] = (
    Tier(
        id="bargain",
        label="BARGAIN BASEMENT",
        description="Strong buy signal",
        min_multiple=0.0,
        max_multiple=5.0,
        color="#00ff88",
        signal_color="#00ff88",
        signal=Signal.STRONG_BUY,
    ),
    Tier(
        id="cheap",
        label="CHEAP",
        description="Consider accumulating",
        min_multiple=5.0,
        max_multiple=7.0,
        color="#00d4aa",
        signal_color="#00d4aa",
        signal=Signal.BUY,
    ),
    Tier(
        id="fair",
        label="FAIR PRICED",
        description="Hold position",
        min_multiple=7.0,
        max_multiple=12.0,
        color="#ffd000",
        signal_color="#ffd000",
        signal=Signal.HOLD,
    ),
    Tier(
        id="expensive",
        label="EXPENSIVE",
        description="Caution advised",
        min_multiple=12.0,
        max_multiple=20.0,
        color="#ff8c00",
        signal_color="#ff8c00",
        signal=Signal.WAIT,
    ),
    Tier(
        id="overpriced",
        label="OVERPRICED",
        description="Consider taking profits",
        min_multiple=20.0,
        max_multiple=math.inf,
        color="#ff4757",
        signal_color="#ff4757",
        signal=Signal.SELL,
    ),
)


def validate_tier_table(tiers: tuple[Tier, ...] | list[Tier]) -> None:
    """Assert that *tiers* partition [0, inf) into contiguous ranges.

    Args:
        tiers: Tiers in ascending order.

    Raises:
        TierTableError: On an empty table, a first tier not starting at 0,
            a last tier not ending at infinity, an empty or inverted range,
            a gap, an overlap, or a duplicate id.
    """
    if not tiers:
        raise TierTableError("Tier table is empty")

    if tiers[0].min_multiple != 0:
        raise TierTableError(
            f"First tier {tiers[0].id!r} must start at 0, "
            f"got {tiers[0].min_multiple}"
        )
    if not math.isinf(tiers[-1].max_multiple):
        raise TierTableError(
            f"Last tier {tiers[-1].id!r} must be open-ended, "
            f"got max {tiers[-1].max_multiple}"
        )

    seen: set[str] = set()
    for tier in tiers:
        if tier.id in seen:
            raise TierTableError(f"Duplicate tier id {tier.id!r}")
        seen.add(tier.id)
        if not tier.min_multiple < tier.max_multiple:
            raise TierTableError(
                f"Tier {tier.id!r} has an empty range "
                f"[{tier.min_multiple}, {tier.max_multiple})"
            )

    for lower, upper in zip(tiers, tiers[1:]):
        if upper.min_multiple > lower.max_multiple:
            raise TierTableError(
                f"Gap between {lower.id!r} and {upper.id!r}: "
                f"[{lower.max_multiple}, {upper.min_multiple})"
            )
        if upper.min_multiple < lower.max_multiple:
            raise TierTableError(
                f"Overlap between {lower.id!r} and {upper.id!r} "
                f"at {upper.min_multiple}"
            )


validate_tier_table(VALUATION_TIERS)


@dataclass(frozen=True)
class ValuationConfig:
    """Tier table and reference multiple used by the valuation engine.

    Frozen: swapping the table means building a new, validated config.
    """

    tiers: tuple[Tier, ...] = VALUATION_TIERS
    reference_multiple: float = REFERENCE_MULTIPLE

    def __post_init__(self) -> None:
        object.__setattr__(self, "tiers", tuple(self.tiers))
        validate_tier_table(self.tiers)
        if not self.reference_multiple > 0:
            raise ValueError(
                f"reference_multiple must be positive, "
                f"got {self.reference_multiple}"
            )


@dataclass
class GaugeConfig:
    """Visible range and dial geometry of the valuation gauge."""

    min_multiple: float = 0.0
    max_multiple: float = 25.0
    sweep_start: float = 225.0
    sweep_end: float = 495.0
    segment_gap: float = 2.2


SEMICIRCLE_GAUGE = GaugeConfig(sweep_start=180.0, sweep_end=0.0)


@dataclass(frozen=True)
class FundamentalsBounds:
    """Sanity range (billions) for live fundamentals."""

    min_revenue: float = 50.0
    max_revenue: float = 200.0
    min_shares: float = 2.0
    max_shares: float = 5.0


def _default_cache_path() -> Path:
    override = os.environ.get("TSLA_TRACKER_CACHE")
    if override:
        return Path(override)
    return Path.home() / ".cache" / "tsla_tracker" / "last_known.json"


@dataclass
class DataConfig:
    """Market data adapter settings."""

    symbol: str = "TSLA"
    chart_url: str = "https://query1.finance.yahoo.com/v8/finance/chart"
    summary_url: str = "https://query1.finance.yahoo.com/v10/finance/quoteSummary"
    request_timeout: float = 5.0
    max_retries: int = 3
    backoff_factor: float = 1.0
    retry_status_codes: frozenset[int] = frozenset({429, 500, 502, 503, 504})
    bounds: FundamentalsBounds = field(default_factory=FundamentalsBounds)
    cache_path: Path = field(default_factory=_default_cache_path)


@dataclass
class ChatConfig:
    """Assistant quota settings."""

    pro_daily_questions: int = 10
    free_daily_questions: int = 3
