"""Tests for tsla_tracker.data.yahoo."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest
import requests

from tsla_tracker.config import DataConfig
from tsla_tracker.data.models import Quote
from tsla_tracker.data.yahoo import (
    RANGE_CONFIG,
    _current_quarter_label,
    fetch_candles,
    fetch_fundamentals,
    fetch_quote,
)

GET = "tsla_tracker.data.yahoo.requests.get"
SLEEP = "tsla_tracker.data.yahoo.time.sleep"
YF_FALLBACK = "tsla_tracker.data.yahoo._fetch_yfinance_quote"


def _response(payload: Any, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


def _chart_payload(**meta: Any) -> dict[str, Any]:
    base_meta = {
        "regularMarketPrice": 250.0,
        "previousClose": 240.0,
        "regularMarketOpen": 242.0,
        "regularMarketDayHigh": 255.0,
        "regularMarketDayLow": 241.0,
    }
    base_meta.update(meta)
    return {
        "chart": {
            "result": [{
                "meta": base_meta,
                "timestamp": [1700000000],
                "indicators": {"quote": [{
                    "open": [243.0], "high": [256.0], "low": [240.5], "close": [250.0],
                }]},
            }],
        },
    }


def _summary_payload(revenue: float = 97_690_000_000, shares: float = 3_216_000_000) -> dict[str, Any]:
    return {
        "quoteSummary": {
            "result": [{
                "defaultKeyStatistics": {"sharesOutstanding": {"raw": shares}},
                "financialData": {"totalRevenue": {"raw": revenue}},
            }],
        },
    }


# ---------------------------------------------------------------------------
# fetch_quote
# ---------------------------------------------------------------------------

class TestFetchQuote:

    def test_parses_chart_meta(self) -> None:
        with patch(GET, return_value=_response(_chart_payload())):
            quote = fetch_quote("TSLA")

        assert quote is not None
        assert quote.current == 250.0
        assert (quote.open, quote.high, quote.low) == (242.0, 255.0, 241.0)
        assert quote.previous_close == 240.0
        assert quote.change == 10.0
        assert quote.change_percent == pytest.approx(10.0 / 240.0 * 100)

    def test_open_high_low_fall_back_to_candle(self) -> None:
        payload = _chart_payload(
            regularMarketOpen=None, regularMarketDayHigh=None, regularMarketDayLow=None,
        )
        with patch(GET, return_value=_response(payload)):
            quote = fetch_quote("TSLA")

        assert quote is not None
        assert (quote.open, quote.high, quote.low) == (243.0, 256.0, 240.5)

    def test_previous_close_falls_back_to_chart_previous_close(self) -> None:
        payload = _chart_payload(previousClose=None, chartPreviousClose=200.0)
        with patch(GET, return_value=_response(payload)):
            quote = fetch_quote("TSLA")

        assert quote is not None
        assert quote.previous_close == 200.0
        assert quote.change_percent == pytest.approx(25.0)

    def test_missing_price_uses_yfinance(self) -> None:
        fallback = Quote(100.0, 99.0, 101.0, 98.0, 100.0, 0.0, 0.0)
        payload = _chart_payload(regularMarketPrice=None)
        with patch(GET, return_value=_response(payload)), \
                patch(YF_FALLBACK, return_value=fallback) as yf:
            quote = fetch_quote("TSLA")

        assert quote is fallback
        yf.assert_called_once_with("TSLA")

    def test_price_below_floor_is_rejected(self) -> None:
        payload = _chart_payload(regularMarketPrice=0.001)
        with patch(GET, return_value=_response(payload)), \
                patch(YF_FALLBACK, return_value=None):
            assert fetch_quote("TSLA") is None

    def test_all_sources_fail(self) -> None:
        with patch(GET, side_effect=requests.ConnectionError("down")), \
                patch(SLEEP), patch(YF_FALLBACK, return_value=None):
            assert fetch_quote("TSLA") is None

    def test_retries_on_rate_limit(self) -> None:
        with patch(GET, side_effect=[_response(None, 429), _response(_chart_payload())]), \
                patch(SLEEP) as sleep:
            quote = fetch_quote("TSLA")

        assert quote is not None
        assert quote.current == 250.0
        sleep.assert_called_once_with(1.0)

    def test_backoff_doubles(self) -> None:
        error = _response(None, 503)
        with patch(GET, return_value=error) as get, patch(SLEEP) as sleep, \
                patch(YF_FALLBACK, return_value=None):
            fetch_quote("TSLA", DataConfig(max_retries=3))

        assert get.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0, 4.0]

    def test_invalid_json_is_not_retried(self) -> None:
        response = MagicMock()
        response.status_code = 200
        response.json.side_effect = ValueError("bad json")
        with patch(GET, return_value=response) as get, \
                patch(YF_FALLBACK, return_value=None):
            assert fetch_quote("TSLA") is None

        assert get.call_count == 1


# ---------------------------------------------------------------------------
# fetch_candles
# ---------------------------------------------------------------------------

class TestFetchCandles:

    def test_builds_frame(self) -> None:
        payload = {
            "chart": {"result": [{
                "timestamp": [1700000000, 1700086400, 1700172800],
                "indicators": {"quote": [{
                    "open": [200.0, 205.0, 210.0],
                    "high": [206.0, 211.0, 215.0],
                    "low": [198.0, 203.0, 208.0],
                    "close": [205.0, 210.0, 212.0],
                }]},
            }]},
        }
        with patch(GET, return_value=_response(payload)):
            df = fetch_candles("TSLA", "1M")

        assert list(df.columns) == ["time", "open", "high", "low", "close"]
        assert len(df) == 3
        assert df["time"].iloc[0] == pd.Timestamp(1700000000, unit="s", tz="UTC")

    def test_drops_missing_and_zero_rows(self) -> None:
        payload = {
            "chart": {"result": [{
                "timestamp": [1, 2, 3, 4],
                "indicators": {"quote": [{
                    "open": [200.0, None, 0.0, 210.0],
                    "high": [206.0, 211.0, 215.0, 215.0],
                    "low": [198.0, 203.0, 208.0, 208.0],
                    "close": [205.0, 210.0, 212.0, None],
                }]},
            }]},
        }
        with patch(GET, return_value=_response(payload)):
            df = fetch_candles("TSLA", "1Y")

        assert list(df["close"]) == [205.0]

    def test_passes_range_parameters(self) -> None:
        with patch(GET, return_value=_response({"chart": {"result": []}})) as get:
            fetch_candles("TSLA", "1D")

        assert get.call_args.kwargs["params"] == RANGE_CONFIG["1D"]

    def test_empty_on_failure(self) -> None:
        with patch(GET, return_value=_response({"chart": {"result": None}})):
            df = fetch_candles("TSLA", "5Y")

        assert df.empty
        assert list(df.columns) == ["time", "open", "high", "low", "close"]

    def test_invalid_range(self) -> None:
        with pytest.raises(ValueError, match="Invalid range"):
            fetch_candles("TSLA", "3M")


# ---------------------------------------------------------------------------
# fetch_fundamentals
# ---------------------------------------------------------------------------

class TestFetchFundamentals:

    def test_parses_and_scales_to_billions(self) -> None:
        with patch(GET, return_value=_response(_summary_payload())):
            f = fetch_fundamentals("TSLA")

        assert f is not None
        assert f.trailing_revenue == 97.69
        assert f.shares_outstanding == 3.22
        assert f.is_live
        assert f.as_of.endswith("(live)")

    def test_out_of_range_revenue_rejected(self) -> None:
        # Reported in thousands rather than units.
        with patch(GET, return_value=_response(_summary_payload(revenue=97_690_000))):
            assert fetch_fundamentals("TSLA") is None

    def test_out_of_range_shares_rejected(self) -> None:
        with patch(GET, return_value=_response(_summary_payload(shares=32_000_000_000))):
            assert fetch_fundamentals("TSLA") is None

    def test_missing_statistics(self) -> None:
        payload = {"quoteSummary": {"result": [{"financialData": {}}]}}
        with patch(GET, return_value=_response(payload)):
            assert fetch_fundamentals("TSLA") is None

    def test_malformed_payload(self) -> None:
        with patch(GET, return_value=_response({"quoteSummary": {"result": []}})):
            assert fetch_fundamentals("TSLA") is None

    def test_request_failure(self) -> None:
        with patch(GET, side_effect=requests.Timeout("slow")), patch(SLEEP):
            assert fetch_fundamentals("TSLA") is None


class TestCurrentQuarterLabel:

    @pytest.mark.parametrize(
        ("month", "expected"),
        [(1, "2025-Q1 (live)"), (6, "2025-Q2 (live)"), (7, "2025-Q3 (live)"), (12, "2025-Q4 (live)")],
    )
    def test_quarters(self, month: int, expected: str) -> None:
        assert _current_quarter_label(datetime(2025, month, 15)) == expected
