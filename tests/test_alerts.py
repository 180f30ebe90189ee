"""Tests for tsla_tracker.alerts."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest

from tsla_tracker.alerts import (
    AlertKind,
    AlertSettings,
    advance_settings,
    evaluate_alerts,
    load_settings,
    save_settings,
)
from tsla_tracker.config import VALUATION_TIERS, Tier
from tsla_tracker.data.models import Quote

TODAY = date(2025, 3, 14)


def _make_quote(current: float = 250.0, change_percent: float = 1.0) -> Quote:
    previous = current / (1 + change_percent / 100)
    return Quote(
        current=current,
        open=previous,
        high=max(current, previous),
        low=min(current, previous),
        previous_close=previous,
        change=current - previous,
        change_percent=change_percent,
    )


def _tier(tier_id: str) -> Tier:
    return next(t for t in VALUATION_TIERS if t.id == tier_id)


def _kinds(alerts: list) -> list[AlertKind]:
    return [a.kind for a in alerts]


class TestPriceAlerts:

    def test_high_threshold(self) -> None:
        settings = AlertSettings(price_alert_enabled=True, price_threshold_high=240.0)
        alerts = evaluate_alerts(settings, _make_quote(250.0), None, None, TODAY)
        assert _kinds(alerts) == [AlertKind.PRICE_HIGH]
        assert alerts[0].metadata == {"price": 250.0, "threshold": 240.0}

    def test_threshold_is_inclusive(self) -> None:
        settings = AlertSettings(
            price_alert_enabled=True,
            price_threshold_high=250.0,
            price_threshold_low=250.0,
        )
        alerts = evaluate_alerts(settings, _make_quote(250.0), None, None, TODAY)
        assert _kinds(alerts) == [AlertKind.PRICE_HIGH, AlertKind.PRICE_LOW]

    def test_low_threshold(self) -> None:
        settings = AlertSettings(price_alert_enabled=True, price_threshold_low=200.0)
        alerts = evaluate_alerts(settings, _make_quote(180.0), None, None, TODAY)
        assert _kinds(alerts) == [AlertKind.PRICE_LOW]

    def test_disabled(self) -> None:
        settings = AlertSettings(price_alert_enabled=False, price_threshold_high=100.0)
        assert evaluate_alerts(settings, _make_quote(250.0), None, None, TODAY) == []

    def test_within_band(self) -> None:
        settings = AlertSettings(
            price_alert_enabled=True,
            price_threshold_high=300.0,
            price_threshold_low=200.0,
        )
        assert evaluate_alerts(settings, _make_quote(250.0), None, None, TODAY) == []


class TestValuationChangeAlert:

    def test_fires_on_tier_change(self) -> None:
        settings = AlertSettings(valuation_alert_enabled=True, last_valuation_tier="cheap")
        alerts = evaluate_alerts(settings, _make_quote(), _tier("fair"), 8.22, TODAY)
        assert _kinds(alerts) == [AlertKind.VALUATION_CHANGE]
        assert alerts[0].metadata["old_tier"] == "cheap"
        assert alerts[0].metadata["new_tier"] == "fair"
        assert alerts[0].metadata["multiple"] == 8.22

    def test_silent_when_unchanged(self) -> None:
        settings = AlertSettings(valuation_alert_enabled=True, last_valuation_tier="fair")
        assert evaluate_alerts(settings, _make_quote(), _tier("fair"), 8.22, TODAY) == []

    def test_silent_on_first_run(self) -> None:
        settings = AlertSettings(valuation_alert_enabled=True)
        assert evaluate_alerts(settings, _make_quote(), _tier("fair"), 8.22, TODAY) == []

    def test_silent_when_tier_unknown(self) -> None:
        settings = AlertSettings(valuation_alert_enabled=True, last_valuation_tier="cheap")
        assert evaluate_alerts(settings, _make_quote(), None, None, TODAY) == []


class TestLargeMovementAlert:

    @pytest.mark.parametrize("change", [10.0, 12.5, -10.0, -15.0])
    def test_fires_at_or_beyond_threshold(self, change: float) -> None:
        settings = AlertSettings(large_movement_alert_enabled=True)
        alerts = evaluate_alerts(settings, _make_quote(change_percent=change), None, None, TODAY)
        assert _kinds(alerts) == [AlertKind.LARGE_MOVEMENT]

    def test_message_direction(self) -> None:
        settings = AlertSettings(large_movement_alert_enabled=True)
        down = evaluate_alerts(settings, _make_quote(change_percent=-11.0), None, None, TODAY)
        assert down[0].message.endswith("down")

    def test_below_threshold(self) -> None:
        settings = AlertSettings(large_movement_alert_enabled=True)
        assert evaluate_alerts(settings, _make_quote(change_percent=9.9), None, None, TODAY) == []

    def test_once_per_day(self) -> None:
        settings = AlertSettings(
            large_movement_alert_enabled=True, last_large_movement_alert=TODAY,
        )
        assert evaluate_alerts(settings, _make_quote(change_percent=12.0), None, None, TODAY) == []

    def test_fires_again_next_day(self) -> None:
        settings = AlertSettings(
            large_movement_alert_enabled=True,
            last_large_movement_alert=date(2025, 3, 13),
        )
        alerts = evaluate_alerts(settings, _make_quote(change_percent=12.0), None, None, TODAY)
        assert _kinds(alerts) == [AlertKind.LARGE_MOVEMENT]


class TestAdvanceSettings:

    def test_records_tier_and_price(self) -> None:
        settings = AlertSettings(last_valuation_tier="cheap")
        updated = advance_settings(settings, _make_quote(250.0), _tier("fair"), [], TODAY)
        assert updated.last_valuation_tier == "fair"
        assert updated.last_price_checked == 250.0
        assert settings.last_valuation_tier == "cheap"

    def test_unknown_tier_keeps_previous(self) -> None:
        settings = AlertSettings(last_valuation_tier="cheap")
        updated = advance_settings(settings, _make_quote(), None, [], TODAY)
        assert updated.last_valuation_tier == "cheap"

    def test_records_large_movement_date(self) -> None:
        settings = AlertSettings(large_movement_alert_enabled=True)
        quote = _make_quote(change_percent=15.0)
        alerts = evaluate_alerts(settings, quote, None, None, TODAY)
        updated = advance_settings(settings, quote, None, alerts, TODAY)
        assert updated.last_large_movement_alert == TODAY


class TestSettingsFile:

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        assert load_settings(tmp_path / "none.json") == AlertSettings()

    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "alerts" / "settings.json"
        settings = AlertSettings(
            price_alert_enabled=True,
            price_threshold_high=300.0,
            last_valuation_tier="fair",
            last_large_movement_alert=TODAY,
        )
        save_settings(settings, path)
        assert json.loads(path.read_text())["last_large_movement_alert"] == "2025-03-14"
        assert load_settings(path) == settings

    def test_unknown_key(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"email": "a@b.c"}))
        with pytest.raises(ValueError, match="Unknown alert settings"):
            load_settings(path)
