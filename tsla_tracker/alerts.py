"""Alert rule evaluation for price, valuation-tier, and large-move alerts.

Delivery (email) is handled elsewhere; this module only decides which
alerts fire for a user's settings and the latest market state.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Any

from tsla_tracker.config import LARGE_MOVEMENT_THRESHOLD, Tier
from tsla_tracker.data.models import Quote

logger = logging.getLogger(__name__)


class AlertKind(Enum):
    """Alert categories."""

    PRICE_HIGH = "price_high"
    PRICE_LOW = "price_low"
    VALUATION_CHANGE = "valuation_change"
    LARGE_MOVEMENT = "large_movement"


@dataclass
class AlertSettings:
    """Per-user alert preferences plus the state needed to detect changes.

    Attributes:
        price_alert_enabled: Enables the two price thresholds.
        price_threshold_high: Fire when price >= this value.
        price_threshold_low: Fire when price <= this value.
        valuation_alert_enabled: Fire when the tier changes.
        last_valuation_tier: Tier id recorded on the previous run.
        large_movement_alert_enabled: Fire on a daily move >= threshold.
        last_large_movement_alert: Date the last large-move alert fired.
        last_price_checked: Price recorded on the previous run.
    """

    price_alert_enabled: bool = False
    price_threshold_high: float | None = None
    price_threshold_low: float | None = None
    valuation_alert_enabled: bool = False
    last_valuation_tier: str | None = None
    large_movement_alert_enabled: bool = False
    last_large_movement_alert: date | None = None
    last_price_checked: float | None = None


@dataclass(frozen=True)
class Alert:
    """A triggered alert."""

    kind: AlertKind
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)


def evaluate_alerts(
    settings: AlertSettings,
    quote: Quote,
    tier: Tier | None,
    multiple: float | None,
    today: date,
    threshold: float = LARGE_MOVEMENT_THRESHOLD,
) -> list[Alert]:
    """Decide which alerts fire for the latest quote.

    Args:
        settings: User preferences and last recorded state.
        quote: Latest quote.
        tier: Current valuation tier, None when unknown.
        multiple: Current multiple, None when unknown.
        today: Current date, used to send at most one large-move alert
            per day.
        threshold: Absolute daily change percent for a large move.

    Returns:
        Triggered alerts, in evaluation order.
    """
    alerts: list[Alert] = []
    price = quote.current

    if settings.price_alert_enabled:
        high = settings.price_threshold_high
        if high and price >= high:
            alerts.append(Alert(
                kind=AlertKind.PRICE_HIGH,
                message=f"Price crossed above ${high:,.2f}",
                metadata={"price": price, "threshold": high},
            ))
        low = settings.price_threshold_low
        if low and price <= low:
            alerts.append(Alert(
                kind=AlertKind.PRICE_LOW,
                message=f"Price crossed below ${low:,.2f}",
                metadata={"price": price, "threshold": low},
            ))

    # No previous tier means nothing to compare against yet.
    if (
        settings.valuation_alert_enabled
        and tier is not None
        and settings.last_valuation_tier
        and settings.last_valuation_tier != tier.id
    ):
        alerts.append(Alert(
            kind=AlertKind.VALUATION_CHANGE,
            message=(
                f"Valuation changed from {settings.last_valuation_tier} "
                f"to {tier.id}"
            ),
            metadata={
                "price": price,
                "old_tier": settings.last_valuation_tier,
                "new_tier": tier.id,
                "multiple": multiple,
            },
        ))

    if (
        settings.large_movement_alert_enabled
        and abs(quote.change_percent) >= threshold
        and settings.last_large_movement_alert != today
    ):
        direction = "up" if quote.change_percent > 0 else "down"
        alerts.append(Alert(
            kind=AlertKind.LARGE_MOVEMENT,
            message=f"Large price movement: {quote.change_percent:+.2f}% {direction}",
            metadata={
                "price": price,
                "previous_close": quote.previous_close,
                "change_percent": quote.change_percent,
            },
        ))

    if alerts:
        logger.info(
            "%d alert(s) triggered: %s",
            len(alerts),
            ", ".join(a.kind.value for a in alerts),
        )
    return alerts


def advance_settings(
    settings: AlertSettings,
    quote: Quote,
    tier: Tier | None,
    alerts: list[Alert],
    today: date,
) -> AlertSettings:
    """Record the state observed on this run.

    The tier is only overwritten when known, so an outage does not reset
    change detection.
    """
    updated = replace(settings, last_price_checked=quote.current)
    if tier is not None:
        updated = replace(updated, last_valuation_tier=tier.id)
    if any(a.kind is AlertKind.LARGE_MOVEMENT for a in alerts):
        updated = replace(updated, last_large_movement_alert=today)
    return updated


def load_settings(path: Path) -> AlertSettings:
    """Read AlertSettings from a JSON file. Missing file gives defaults."""
    if not path.exists():
        logger.info("No alert settings at %s, using defaults", path)
        return AlertSettings()

    payload = json.loads(path.read_text())
    last_alert = payload.pop("last_large_movement_alert", None)
    known = set(AlertSettings.__dataclass_fields__)
    unknown = set(payload) - known
    if unknown:
        raise ValueError(f"Unknown alert settings: {sorted(unknown)}")
    return AlertSettings(
        **payload,
        last_large_movement_alert=(
            date.fromisoformat(last_alert) if last_alert else None
        ),
    )


def save_settings(settings: AlertSettings, path: Path) -> None:
    """Write AlertSettings to a JSON file."""
    payload = asdict(settings)
    if settings.last_large_movement_alert is not None:
        payload["last_large_movement_alert"] = (
            settings.last_large_movement_alert.isoformat()
        )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2))
