"""Gauge geometry: map a multiple onto a dial sweep."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from tsla_tracker.config import VALUATION_TIERS, GaugeConfig, Tier


@dataclass(frozen=True)
class GaugeSegment:
    """Arc drawn for one tier, in dial degrees."""

    tier_id: str
    color: str
    start_angle: float
    end_angle: float


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def value_to_angle(
    value: float,
    domain_min: float,
    domain_max: float,
    sweep_start: float,
    sweep_end: float,
) -> float:
    """Linearly map *value* from the domain onto the sweep.

    Values outside [domain_min, domain_max] clamp to the sweep's ends.
    The sweep may run in either direction (e.g. 180 -> 0 for a
    semicircle).

    Raises:
        ValueError: If the domain is empty.
    """
    if domain_max <= domain_min:
        raise ValueError(
            f"Empty gauge domain [{domain_min}, {domain_max}]"
        )
    clamped = clamp(value, domain_min, domain_max)
    fraction = (clamped - domain_min) / (domain_max - domain_min)
    return sweep_start + fraction * (sweep_end - sweep_start)


def needle_angle(multiple: float | None, config: GaugeConfig | None = None) -> float:
    """Dial angle for the needle. An unknown multiple rests at the start."""
    if config is None:
        config = GaugeConfig()
    value = config.min_multiple if multiple is None else multiple
    return value_to_angle(
        value,
        config.min_multiple,
        config.max_multiple,
        config.sweep_start,
        config.sweep_end,
    )


def polar_to_cartesian(
    cx: float, cy: float, radius: float, angle_deg: float
) -> tuple[float, float]:
    """Dial coordinates: 0 degrees points up, angles grow clockwise.

    Returns (x, y) in screen orientation (y grows downward).
    """
    angle_rad = math.radians(angle_deg - 90)
    return cx + radius * math.cos(angle_rad), cy + radius * math.sin(angle_rad)


def tier_segments(
    tiers: Sequence[Tier] = VALUATION_TIERS,
    config: GaugeConfig | None = None,
) -> list[GaugeSegment]:
    """Arc extents for each tier visible in the gauge domain.

    Adjacent segments are separated by ``config.segment_gap`` degrees,
    split evenly between the two sides. Tiers entirely outside the visible
    domain are skipped.
    """
    if config is None:
        config = GaugeConfig()

    direction = 1.0 if config.sweep_end >= config.sweep_start else -1.0
    half_gap = direction * config.segment_gap / 2

    visible: list[tuple[Tier, float, float]] = []
    for tier in tiers:
        start_value = clamp(tier.min_multiple, config.min_multiple, config.max_multiple)
        end_value = clamp(tier.max_multiple, config.min_multiple, config.max_multiple)
        if end_value > start_value:
            visible.append((tier, start_value, end_value))

    # Gaps only between drawn segments, never at the dial's ends.
    segments: list[GaugeSegment] = []
    last = len(visible) - 1
    for index, (tier, start_value, end_value) in enumerate(visible):
        start = value_to_angle(
            start_value, config.min_multiple, config.max_multiple,
            config.sweep_start, config.sweep_end,
        )
        end = value_to_angle(
            end_value, config.min_multiple, config.max_multiple,
            config.sweep_start, config.sweep_end,
        )
        if index > 0:
            start += half_gap
        if index < last:
            end -= half_gap

        segments.append(
            GaugeSegment(
                tier_id=tier.id,
                color=tier.color,
                start_angle=start,
                end_angle=end,
            )
        )
    return segments
