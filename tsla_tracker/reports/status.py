"""Status report rendering using Jinja2 templates and WeasyPrint.

Renders the current valuation, tier price levels and charts into an HTML
page, optionally converted to PDF.
"""

from __future__ import annotations

import base64
import io
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import jinja2
import matplotlib
import matplotlib.pyplot as plt
import pandas as pd

from tsla_tracker.charts.valuation import multiple_history, price_chart, valuation_gauge

if TYPE_CHECKING:
    from matplotlib.figure import Figure

    from tsla_tracker.data.loader import MarketSnapshot
    from tsla_tracker.metrics.valuation import ValuationSnapshot

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"


def render_status_html(
    market: MarketSnapshot,
    valuation: ValuationSnapshot | None,
    candles: pd.DataFrame | None = None,
    symbol: str = "TSLA",
) -> str:
    """Render the status page as an HTML string.

    Args:
        market: Loaded market inputs (quote, fundamentals, staleness).
        valuation: Engine output, None when there is no price at all.
        candles: Price history for the charts. Charts needing it are
            skipped when None or empty.
        symbol: Ticker shown in the title.

    Returns:
        Rendered HTML.
    """
    # Use non-interactive backend for rendering
    matplotlib.use("Agg")

    context = _build_context(market, valuation, candles, symbol)
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=True,
    )
    template = env.get_template("status.html")
    return template.render(**context)


def write_status_pdf(html_content: str, output_path: Path) -> Path:
    """Convert rendered HTML to PDF.

    Returns:
        Path to the generated PDF file.
    """
    import weasyprint  # lazy import: needs system Pango libraries

    output_path.parent.mkdir(parents=True, exist_ok=True)
    pdf_doc = weasyprint.HTML(string=html_content).write_pdf()
    output_path.write_bytes(pdf_doc)
    logger.info("PDF report generated: %s", output_path)
    return output_path


def format_fair_value_gap(gap: float) -> str:
    """Describe a signed fair-value gap, e.g. "-13.5% below fair value"."""
    if gap == 0:
        return "at fair value"
    direction = "above" if gap > 0 else "below"
    return f"{gap:+.1f}% {direction} fair value"


def _build_context(
    market: MarketSnapshot,
    valuation: ValuationSnapshot | None,
    candles: pd.DataFrame | None,
    symbol: str,
) -> dict[str, Any]:
    """Build the Jinja2 template context with formatted values and charts."""
    multiple = valuation.multiple if valuation is not None else None
    if multiple is None and market.cached is not None:
        multiple = market.cached.multiple

    price = market.price
    zone = valuation.next_buy_zone if valuation is not None else None
    gap = valuation.fair_value_gap if valuation is not None else None

    if zone is not None:
        zone_text = (
            f"${zone.implied_price:,.2f} ({zone.boundary_multiple:g}x, "
            f"{zone.tier_label})"
        )
    elif valuation is not None and valuation.multiple is not None:
        zone_text = "Already in the lowest tier"
    else:
        zone_text = "Unavailable"

    charts: list[str] = []
    try:
        charts.append(_fig_to_base64(valuation_gauge(multiple)))
    except Exception:
        logger.exception("Failed to render gauge")
    if candles is not None and not candles.empty:
        for fn in (price_chart, multiple_history):
            try:
                charts.append(_fig_to_base64(fn(candles, market.fundamentals)))
            except Exception:
                logger.exception("Failed to render chart %s", fn.__name__)

    return {
        "title": f"{symbol} Valuation Status",
        "generated_at": datetime.now().strftime("%d %B %Y %H:%M"),
        "fundamentals_as_of": market.fundamentals.as_of,
        "fundamentals_live": market.fundamentals.is_live,
        "stale": market.stale,
        "tier": valuation.tier if valuation is not None else None,
        "price": f"${price:,.2f}" if price is not None else "Unavailable",
        "multiple": f"{multiple:.1f}x" if multiple is not None else "Unavailable",
        "fair_value_gap": (
            format_fair_value_gap(gap) if gap is not None else "Unavailable"
        ),
        "next_buy_zone": zone_text,
        "levels": valuation.price_levels if valuation is not None else [],
        "charts": charts,
    }


def _fig_to_base64(fig: Figure) -> str:
    """Convert a matplotlib figure to a base64-encoded PNG string."""
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=120, bbox_inches="tight")
    plt.close(fig)
    buf.seek(0)
    result = base64.b64encode(buf.read()).decode("ascii")
    buf.close()
    return result
