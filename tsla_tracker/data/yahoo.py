"""Yahoo Finance adapter: quote, candles, and fundamentals.

Requests go straight to the public Yahoo endpoints with retry and
exponential backoff on 429/5xx. Quotes fall back to yfinance when the
chart endpoint is unavailable.
"""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime
from typing import Any

import pandas as pd
import requests

from tsla_tracker.config import MIN_PRICE_FLOOR, DataConfig
from tsla_tracker.data.models import Fundamentals, Quote

logger = logging.getLogger(__name__)

# Display range -> Yahoo chart parameters.
RANGE_CONFIG: dict[str, dict[str, str]] = {
    "1D": {"range": "1d", "interval": "5m"},
    "1M": {"range": "1mo", "interval": "1d"},
    "1Y": {"range": "1y", "interval": "1d"},
    "5Y": {"range": "5y", "interval": "1d"},
}

_CANDLE_COLUMNS = ["time", "open", "high", "low", "close"]


def _get_json(
    url: str, params: dict[str, str], config: DataConfig
) -> dict[str, Any] | None:
    """GET a Yahoo endpoint with retry logic.

    Args:
        url: Endpoint URL.
        params: Query parameters.
        config: Timeout and retry policy.

    Returns:
        Decoded JSON body, or None after all attempts fail.
    """
    for attempt in range(config.max_retries):
        try:
            response = requests.get(
                url,
                params=params,
                headers={"User-Agent": "Mozilla/5.0"},
                timeout=config.request_timeout,
            )

            if response.status_code in config.retry_status_codes:
                sleep_time = config.backoff_factor * (2**attempt)
                logger.warning(
                    "Yahoo returned %d, retrying in %.1fs (attempt %d/%d)",
                    response.status_code,
                    sleep_time,
                    attempt + 1,
                    config.max_retries,
                )
                time.sleep(sleep_time)
                continue

            response.raise_for_status()
            data = response.json()
            if not isinstance(data, dict):
                logger.warning("Yahoo returned unexpected payload type")
                return None
            return data

        except ValueError as e:
            # requests' JSONDecodeError is also a RequestException
            logger.warning("Yahoo returned invalid JSON: %s", e)
            return None
        except requests.RequestException as e:
            if attempt < config.max_retries - 1:
                sleep_time = config.backoff_factor * (2**attempt)
                logger.warning(
                    "Yahoo request failed: %s. Retrying in %.1fs "
                    "(attempt %d/%d)",
                    e,
                    sleep_time,
                    attempt + 1,
                    config.max_retries,
                )
                time.sleep(sleep_time)
            else:
                logger.error(
                    "Yahoo request failed after %d attempts: %s",
                    config.max_retries,
                    e,
                )

    logger.error("Yahoo request to %s failed after %d attempts", url, config.max_retries)
    return None


def _chart_result(data: dict[str, Any] | None) -> dict[str, Any] | None:
    """Extract chart.result[0] from a chart payload."""
    if not data:
        return None
    results = (data.get("chart") or {}).get("result") or []
    if not results:
        return None
    return results[0]


def _first(values: list[Any] | None) -> float | None:
    if values and values[0] is not None:
        return float(values[0])
    return None


def fetch_quote(symbol: str, config: DataConfig | None = None) -> Quote | None:
    """Fetch the latest quote for *symbol*.

    Tries the Yahoo chart endpoint first, then yfinance.

    Args:
        symbol: Ticker symbol.
        config: Adapter settings.

    Returns:
        Quote, or None if unavailable from all sources.
    """
    if config is None:
        config = DataConfig()

    url = f"{config.chart_url}/{symbol}"
    result = _chart_result(_get_json(url, {"interval": "1d", "range": "1d"}, config))
    if result is not None:
        quote = _parse_chart_quote(symbol, result)
        if quote is not None:
            logger.info("%s: live price $%.2f", symbol, quote.current)
            return quote

    logger.warning("%s: Yahoo chart failed, trying yfinance", symbol)
    return _fetch_yfinance_quote(symbol)


def _parse_chart_quote(symbol: str, result: dict[str, Any]) -> Quote | None:
    """Build a Quote from a chart result's meta and first candle."""
    meta = result.get("meta") or {}
    price = meta.get("regularMarketPrice")
    if not price:
        logger.warning("%s: chart payload has no regularMarketPrice", symbol)
        return None

    current = float(price)
    if not math.isfinite(current) or current < MIN_PRICE_FLOOR:
        logger.warning("%s: price below floor (%.4f)", symbol, current)
        return None

    candles = ((result.get("indicators") or {}).get("quote") or [{}])[0] or {}
    prev_close = float(
        meta.get("previousClose") or meta.get("chartPreviousClose") or current
    )
    change = current - prev_close
    change_percent = (change / prev_close) * 100 if prev_close else 0.0

    return Quote(
        current=current,
        open=float(meta.get("regularMarketOpen") or _first(candles.get("open")) or current),
        high=float(meta.get("regularMarketDayHigh") or _first(candles.get("high")) or current),
        low=float(meta.get("regularMarketDayLow") or _first(candles.get("low")) or current),
        previous_close=prev_close,
        change=change,
        change_percent=change_percent,
    )


def _fetch_yfinance_quote(symbol: str) -> Quote | None:
    """Fetch a quote from yfinance (fallback)."""
    try:
        import yfinance as yf  # type: ignore[import-untyped]  # lazy import

        hist = yf.Ticker(symbol).history(period="5d")
        if hist.empty:
            return None

        last = hist.iloc[-1]
        current = float(last["Close"])
        if not math.isfinite(current) or current < MIN_PRICE_FLOOR:
            logger.warning("%s: yfinance price below floor (%.4f)", symbol, current)
            return None

        prev_close = float(hist["Close"].iloc[-2]) if len(hist) > 1 else current
        change = current - prev_close
        return Quote(
            current=current,
            open=float(last["Open"]),
            high=float(last["High"]),
            low=float(last["Low"]),
            previous_close=prev_close,
            change=change,
            change_percent=(change / prev_close) * 100 if prev_close else 0.0,
        )
    except Exception as e:
        logger.warning("%s: yfinance error: %s", symbol, e)

    return None


def fetch_candles(
    symbol: str, range_key: str = "5Y", config: DataConfig | None = None
) -> pd.DataFrame:
    """Fetch OHLC history for a display range.

    Args:
        symbol: Ticker symbol.
        range_key: One of RANGE_CONFIG's keys ("1D", "1M", "1Y", "5Y").
        config: Adapter settings.

    Returns:
        DataFrame with columns time (UTC datetime), open, high, low, close.
        Rows missing open or close are dropped. Empty on failure.

    Raises:
        ValueError: If range_key is not supported.
    """
    if range_key not in RANGE_CONFIG:
        raise ValueError(
            f"Invalid range {range_key!r}. Must be one of {sorted(RANGE_CONFIG)}"
        )
    if config is None:
        config = DataConfig()

    url = f"{config.chart_url}/{symbol}"
    result = _chart_result(_get_json(url, RANGE_CONFIG[range_key], config))
    if result is None:
        logger.warning("%s: no %s history available", symbol, range_key)
        return pd.DataFrame(columns=_CANDLE_COLUMNS)

    timestamps = result.get("timestamp")
    quote = ((result.get("indicators") or {}).get("quote") or [None])[0]
    if not timestamps or not quote:
        logger.warning("%s: %s history payload is empty", symbol, range_key)
        return pd.DataFrame(columns=_CANDLE_COLUMNS)

    df = pd.DataFrame({
        "time": pd.to_datetime(timestamps, unit="s", utc=True),
        "open": quote.get("open"),
        "high": quote.get("high"),
        "low": quote.get("low"),
        "close": quote.get("close"),
    })
    df = df.dropna(subset=["open", "close"])
    df = df[(df["open"] != 0) & (df["close"] != 0)].reset_index(drop=True)

    logger.info("%s: fetched %d %s candles", symbol, len(df), range_key)
    return df


def _current_quarter_label(now: datetime | None = None) -> str:
    if now is None:
        now = datetime.now()
    quarter = (now.month - 1) // 3 + 1
    return f"{now.year}-Q{quarter} (live)"


def fetch_fundamentals(
    symbol: str, config: DataConfig | None = None
) -> Fundamentals | None:
    """Fetch trailing revenue and shares outstanding, in billions.

    Values outside the configured sanity bounds are rejected, since the
    endpoint occasionally returns figures in the wrong scale.

    Args:
        symbol: Ticker symbol.
        config: Adapter settings.

    Returns:
        Live Fundamentals, or None if unavailable or out of bounds.
    """
    if config is None:
        config = DataConfig()

    url = f"{config.summary_url}/{symbol}"
    data = _get_json(url, {"modules": "defaultKeyStatistics,financialData"}, config)
    if not data:
        return None

    try:
        result = data["quoteSummary"]["result"][0]
        stats = result.get("defaultKeyStatistics")
        financial = result.get("financialData") or {}
        if not stats:
            logger.warning("%s: quoteSummary has no key statistics", symbol)
            return None
        shares = float((stats.get("sharesOutstanding") or {}).get("raw") or 0) / 1e9
        revenue = float((financial.get("totalRevenue") or {}).get("raw") or 0) / 1e9
    except (KeyError, IndexError, TypeError, ValueError) as e:
        logger.warning("%s: malformed quoteSummary payload: %s", symbol, e)
        return None

    bounds = config.bounds
    if not (
        bounds.min_revenue <= revenue <= bounds.max_revenue
        and bounds.min_shares <= shares <= bounds.max_shares
    ):
        logger.warning(
            "%s: fundamentals out of range (revenue %.2fB, shares %.2fB)",
            symbol,
            revenue,
            shares,
        )
        return None

    fundamentals = Fundamentals(
        trailing_revenue=round(revenue, 2),
        shares_outstanding=round(shares, 2),
        as_of=_current_quarter_label(),
        source="live",
    )
    logger.info(
        "%s: live fundamentals revenue %.2fB, shares %.2fB",
        symbol,
        fundamentals.trailing_revenue,
        fundamentals.shares_outstanding,
    )
    return fundamentals
