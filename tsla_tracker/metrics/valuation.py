"""Valuation engine: P/S multiple, tier resolution, and derived targets.

All functions are pure. Fundamentals are pre-scaled by the caller (revenue
and shares in the same magnitude, e.g. billions); no unit conversion
happens here.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd

from tsla_tracker.config import (
    REFERENCE_MULTIPLE,
    VALUATION_TIERS,
    Tier,
    ValuationConfig,
)
from tsla_tracker.data.models import Fundamentals

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceLevel:
    """Chart marker at the share price where a tier begins."""

    price: float
    multiple: float
    label: str
    color: str
    tier_id: str


@dataclass(frozen=True)
class BuyZone:
    """Nearest tier boundary below the current multiple.

    Attributes:
        implied_price: Share price at which the boundary is reached.
        boundary_multiple: The boundary multiple itself.
        tier_label: Label of the tier the boundary resolves to.
    """

    implied_price: float
    boundary_multiple: float
    tier_label: str


@dataclass(frozen=True)
class ValuationSnapshot:
    """Everything the presentation layer needs for one price.

    ``multiple``, ``tier`` and ``fair_value_gap`` are None when the
    fundamentals cannot produce a multiple, so "unknown" is never confused
    with a genuine zero.
    """

    price: float
    multiple: float | None
    tier: Tier | None
    fair_value_gap: float | None
    next_buy_zone: BuyZone | None
    price_levels: list[PriceLevel]
    fundamentals_as_of: str | None
    fundamentals_live: bool


def _usable(fundamentals: Fundamentals) -> bool:
    """True if fundamentals can convert between price and multiple."""
    return bool(fundamentals.trailing_revenue and fundamentals.shares_outstanding)


def compute_multiple(price: float, fundamentals: Fundamentals | None) -> float:
    """Convert a share price into a price-to-sales multiple.

    Args:
        price: Share price.
        fundamentals: Revenue and share count snapshot.

    Returns:
        market cap / trailing revenue, or 0.0 when fundamentals are missing
        or either field is zero.
    """
    if fundamentals is None or not _usable(fundamentals):
        return 0.0
    market_cap = price * fundamentals.shares_outstanding
    return market_cap / fundamentals.trailing_revenue


def multiple_series(
    prices: pd.Series, fundamentals: Fundamentals | None
) -> pd.Series:
    """Vectorised compute_multiple over a price series.

    The same fundamentals snapshot is applied to every price, so the result
    is only as accurate as that snapshot is for the whole window.
    """
    if fundamentals is None or not _usable(fundamentals):
        return pd.Series(np.zeros(len(prices)), index=prices.index, dtype=float, name="multiple")
    values = (
        np.asarray(prices, dtype=float)
        * fundamentals.shares_outstanding
        / fundamentals.trailing_revenue
    )
    return pd.Series(values, index=prices.index, name="multiple")


def resolve_tier(
    multiple: float, tiers: Sequence[Tier] = VALUATION_TIERS
) -> Tier:
    """Map a multiple to the tier whose [min, max) range contains it.

    A value on a boundary belongs to the upper tier. If no tier matches
    (only possible with a malformed table) the last tier is returned.

    Args:
        multiple: Price-to-sales multiple.
        tiers: Tiers in ascending order.

    Returns:
        The matching Tier.
    """
    for tier in tiers:
        if tier.contains(multiple):
            return tier
    logger.debug("Multiple %.4f matched no tier, using last tier", multiple)
    return tiers[-1]


def price_for_multiple(
    multiple: float, fundamentals: Fundamentals | None
) -> float | None:
    """Share price at which the stock would trade at *multiple*.

    Args:
        multiple: Target price-to-sales multiple.
        fundamentals: Revenue and share count snapshot.

    Returns:
        Implied price, or None when fundamentals are missing or zero.
    """
    if fundamentals is None or not _usable(fundamentals):
        return None
    return (
        multiple * fundamentals.trailing_revenue / fundamentals.shares_outstanding
    )


def price_levels(
    fundamentals: Fundamentals | None,
    tiers: Sequence[Tier] = VALUATION_TIERS,
    tier_ids: Iterable[str] | None = None,
) -> list[PriceLevel]:
    """Price markers for every tier lower bound above zero.

    Args:
        fundamentals: Revenue and share count snapshot.
        tiers: Tiers in ascending order.
        tier_ids: Optional subset of tier ids to mark. All tiers if None.

    Returns:
        One PriceLevel per marked tier, ascending by price. Empty when
        fundamentals are missing.
    """
    wanted = set(tier_ids) if tier_ids is not None else None
    levels: list[PriceLevel] = []
    for tier in tiers:
        # The first tier starts at zero and has no boundary to draw.
        if tier.min_multiple <= 0:
            continue
        if wanted is not None and tier.id not in wanted:
            continue
        price = price_for_multiple(tier.min_multiple, fundamentals)
        if price is None or price <= 0:
            continue
        levels.append(
            PriceLevel(
                price=price,
                multiple=tier.min_multiple,
                label=tier.label,
                color=tier.color,
                tier_id=tier.id,
            )
        )
    return levels


def fair_value_gap(
    multiple: float, reference_multiple: float = REFERENCE_MULTIPLE
) -> float:
    """Percentage deviation of *multiple* from the reference multiple.

    Positive means trading above fair value, negative below.
    """
    return (multiple - reference_multiple) / reference_multiple * 100


def next_buy_zone(
    multiple: float,
    fundamentals: Fundamentals | None,
    tiers: Sequence[Tier] = VALUATION_TIERS,
) -> BuyZone | None:
    """Find the nearest tier boundary strictly below *multiple*.

    Args:
        multiple: Current price-to-sales multiple.
        fundamentals: Revenue and share count snapshot.
        tiers: Tiers in ascending order.

    Returns:
        BuyZone for that boundary, or None when the multiple is already at
        or below the lowest boundary (or fundamentals are missing).
    """
    boundaries = sorted(
        (t.min_multiple for t in tiers if t.min_multiple > 0), reverse=True
    )
    for boundary in boundaries:
        if boundary < multiple:
            price = price_for_multiple(boundary, fundamentals)
            if price is None:
                return None
            return BuyZone(
                implied_price=price,
                boundary_multiple=boundary,
                tier_label=resolve_tier(boundary, tiers).label,
            )
    return None


def evaluate(
    price: float,
    fundamentals: Fundamentals | None,
    config: ValuationConfig | None = None,
) -> ValuationSnapshot:
    """Run the full valuation chain for one price.

    Args:
        price: Current share price.
        fundamentals: Revenue and share count snapshot (may be stale).
        config: Tier table and reference multiple. Defaults to the
            canonical table.

    Returns:
        ValuationSnapshot. Multiple-derived fields are None when the
        fundamentals are unusable.

    Raises:
        ValueError: If price is negative or not finite.
    """
    if not math.isfinite(price) or price < 0:
        raise ValueError(f"price must be a finite non-negative number, got {price}")
    if config is None:
        config = ValuationConfig()

    levels = price_levels(fundamentals, config.tiers)
    as_of = fundamentals.as_of if fundamentals is not None else None
    live = fundamentals.is_live if fundamentals is not None else False

    if fundamentals is None or not _usable(fundamentals):
        logger.warning("Fundamentals unavailable, valuation is unknown")
        return ValuationSnapshot(
            price=price,
            multiple=None,
            tier=None,
            fair_value_gap=None,
            next_buy_zone=None,
            price_levels=levels,
            fundamentals_as_of=as_of,
            fundamentals_live=live,
        )

    multiple = compute_multiple(price, fundamentals)
    tier = resolve_tier(multiple, config.tiers)
    logger.debug("Price %.2f -> %.2fx (%s)", price, multiple, tier.id)

    return ValuationSnapshot(
        price=price,
        multiple=multiple,
        tier=tier,
        fair_value_gap=fair_value_gap(multiple, config.reference_multiple),
        next_buy_zone=next_buy_zone(multiple, fundamentals, config.tiers),
        price_levels=levels,
        fundamentals_as_of=as_of,
        fundamentals_live=live,
    )
