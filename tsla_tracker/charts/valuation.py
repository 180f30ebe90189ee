"""Valuation charts: price with tier lines, gauge dial, multiple history.

All public functions return a matplotlib Figure.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.figure import Figure
from matplotlib.patches import Wedge

from tsla_tracker.config import VALUATION_TIERS, GaugeConfig, Tier
from tsla_tracker.data.models import Fundamentals
from tsla_tracker.metrics.gauge import needle_angle, polar_to_cartesian, tier_segments
from tsla_tracker.metrics.valuation import multiple_series, price_levels, resolve_tier

logger = logging.getLogger(__name__)

_BACKGROUND = "#0a0a0f"
_FOREGROUND = "#e6e6e6"
_PRICE_COLOR = "#4aa3ff"


def _style_axes(ax: plt.Axes) -> None:
    ax.set_facecolor(_BACKGROUND)
    ax.tick_params(colors=_FOREGROUND)
    for spine in ax.spines.values():
        spine.set_color("#333333")
    ax.xaxis.label.set_color(_FOREGROUND)
    ax.yaxis.label.set_color(_FOREGROUND)
    ax.title.set_color(_FOREGROUND)


def price_chart(
    candles: pd.DataFrame,
    fundamentals: Fundamentals | None,
    symbol: str = "TSLA",
    tiers: Sequence[Tier] = VALUATION_TIERS,
) -> Figure:
    """Close prices with a horizontal line at each tier's starting price.

    The y-axis is extended so every tier line is visible, even when the
    price has never reached it.

    Args:
        candles: DataFrame with ``time`` and ``close`` columns.
        fundamentals: Used to convert tier boundaries into prices.
        symbol: Ticker shown in the title.
        tiers: Tier table.

    Returns:
        Matplotlib Figure.
    """
    fig, ax = plt.subplots(figsize=(10, 6), facecolor=_BACKGROUND)
    _style_axes(ax)

    if candles.empty:
        logger.warning("%s: no candles to plot", symbol)
        ax.text(
            0.5, 0.5, "No price history available",
            ha="center", va="center", transform=ax.transAxes, color=_FOREGROUND,
        )
    else:
        ax.plot(candles["time"], candles["close"], color=_PRICE_COLOR, linewidth=1.2)

    levels = price_levels(fundamentals, tiers)
    for level in levels:
        ax.axhline(level.price, color=level.color, linestyle="--", linewidth=1)
        ax.annotate(
            f"{level.label} ({level.multiple:g}x) ${level.price:,.0f}",
            xy=(0.01, level.price),
            xycoords=("axes fraction", "data"),
            fontsize=8,
            color=level.color,
            va="bottom",
        )

    if levels and not candles.empty:
        top = max(max(lv.price for lv in levels), float(candles["close"].max()))
        bottom = min(float(candles["close"].min()), levels[0].price)
        ax.set_ylim(bottom * 0.9, top * 1.05)

    ax.set_title(f"{symbol} Price with Valuation Tiers")
    ax.set_ylabel("Price ($)")
    fig.tight_layout()
    return fig


def valuation_gauge(
    multiple: float | None,
    tiers: Sequence[Tier] = VALUATION_TIERS,
    config: GaugeConfig | None = None,
) -> Figure:
    """Dial with one coloured arc per tier and a needle at *multiple*.

    Args:
        multiple: Current multiple. None draws the needle at rest and
            labels the dial as unavailable.
        tiers: Tier table.
        config: Visible range and sweep.

    Returns:
        Matplotlib Figure.
    """
    if config is None:
        config = GaugeConfig()

    fig, ax = plt.subplots(figsize=(6, 6), facecolor=_BACKGROUND)
    ax.set_facecolor(_BACKGROUND)
    ax.set_aspect("equal")
    ax.set_xlim(-1.2, 1.2)
    ax.set_ylim(-1.2, 1.2)
    ax.axis("off")

    # Dial angles run clockwise from 12 o'clock; matplotlib runs
    # counter-clockwise from 3 o'clock.
    for segment in tier_segments(tiers, config):
        theta1 = 90 - max(segment.start_angle, segment.end_angle)
        theta2 = 90 - min(segment.start_angle, segment.end_angle)
        ax.add_patch(
            Wedge((0, 0), 1.0, theta1, theta2, width=0.18, color=segment.color)
        )

    angle = needle_angle(multiple, config)
    # polar_to_cartesian uses screen orientation; flip y for plotting.
    x, y = polar_to_cartesian(0, 0, 0.8, angle)
    ax.plot([0, x], [0, -y], color=_FOREGROUND, linewidth=3, solid_capstyle="round")
    ax.add_patch(plt.Circle((0, 0), 0.05, color=_FOREGROUND))

    if multiple is None:
        label, sub, color = "Awaiting price feed", "", _FOREGROUND
    else:
        tier = resolve_tier(multiple, tiers)
        label, sub, color = tier.label, f"{multiple:.1f}x P/S", tier.signal_color
    ax.text(0, -0.45, label, ha="center", va="center", fontsize=14,
            fontweight="bold", color=color)
    if sub:
        ax.text(0, -0.65, sub, ha="center", va="center", fontsize=11,
                color=_FOREGROUND)

    fig.tight_layout()
    return fig


def multiple_history(
    candles: pd.DataFrame,
    fundamentals: Fundamentals | None,
    tiers: Sequence[Tier] = VALUATION_TIERS,
) -> Figure:
    """Historical multiple implied by today's fundamentals, over tier bands.

    Args:
        candles: DataFrame with ``time`` and ``close`` columns.
        fundamentals: Revenue and share count snapshot.
        tiers: Tier table.

    Returns:
        Matplotlib Figure.
    """
    fig, ax = plt.subplots(figsize=(10, 5), facecolor=_BACKGROUND)
    _style_axes(ax)

    multiples = multiple_series(candles["close"], fundamentals)
    finite_max = float(np.nanmax(multiples)) if len(multiples) else 0.0
    top = max(finite_max * 1.1, 1.0)

    for tier in tiers:
        upper = tier.max_multiple if math.isfinite(tier.max_multiple) else top
        if tier.min_multiple >= top:
            continue
        ax.axhspan(tier.min_multiple, min(upper, top), color=tier.color, alpha=0.12)

    if len(multiples):
        ax.plot(candles["time"], multiples, color=_PRICE_COLOR, linewidth=1.2)

    ax.set_ylim(0, top)
    ax.set_title("Price-to-Sales Multiple")
    ax.set_ylabel("Multiple (x)")
    fig.tight_layout()
    return fig
