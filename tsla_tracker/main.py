"""CLI entry point for the TSLA valuation tracker."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

import matplotlib
import matplotlib.pyplot as plt

from tsla_tracker.alerts import (
    advance_settings,
    evaluate_alerts,
    load_settings,
    save_settings,
)
from tsla_tracker.charts.valuation import multiple_history, price_chart, valuation_gauge
from tsla_tracker.chat import ChatContext, ChatSession, QuestionLimitError
from tsla_tracker.config import DataConfig, ValuationConfig
from tsla_tracker.data.loader import MarketSnapshot, load_market_snapshot
from tsla_tracker.data.yahoo import RANGE_CONFIG, fetch_candles
from tsla_tracker.metrics.valuation import ValuationSnapshot, evaluate, price_levels
from tsla_tracker.reports.status import (
    format_fair_value_gap,
    render_status_html,
    write_status_pdf,
)

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list (defaults to sys.argv[1:]).

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog="tsla-tracker",
        description="TSLA price-to-sales valuation tracker",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--symbol",
        default="TSLA",
        help="Ticker symbol (default: TSLA)",
    )
    common.add_argument(
        "--cache-path",
        type=Path,
        default=None,
        help="Last-known value cache (default: ~/.cache/tsla_tracker)",
    )
    common.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers.add_parser(
        "status", parents=[common], help="Show current valuation tier"
    )
    subparsers.add_parser(
        "levels", parents=[common], help="Show tier boundary prices"
    )

    chart_parser = subparsers.add_parser(
        "chart", parents=[common], help="Save a chart as PNG"
    )
    chart_parser.add_argument(
        "--kind",
        choices=["price", "gauge", "multiple"],
        default="price",
        help="Chart type (default: price)",
    )
    chart_parser.add_argument(
        "--range",
        dest="range_key",
        choices=sorted(RANGE_CONFIG),
        default="5Y",
        help="History range (default: 5Y)",
    )
    chart_parser.add_argument(
        "--output",
        type=Path,
        default=Path("output/chart.png"),
        help="Output PNG path (default: output/chart.png)",
    )

    report_parser = subparsers.add_parser(
        "report", parents=[common], help="Generate an HTML status report"
    )
    report_parser.add_argument(
        "--output",
        type=Path,
        default=Path("output/status.html"),
        help="Output HTML path (default: output/status.html)",
    )
    report_parser.add_argument(
        "--pdf",
        type=Path,
        default=None,
        help="Also write a PDF to this path",
    )
    report_parser.add_argument(
        "--range",
        dest="range_key",
        choices=sorted(RANGE_CONFIG),
        default="1Y",
        help="History range for charts (default: 1Y)",
    )

    alerts_parser = subparsers.add_parser(
        "alerts", parents=[common], help="Evaluate alert rules"
    )
    alerts_parser.add_argument(
        "--settings",
        type=Path,
        required=True,
        help="Alert settings JSON file",
    )
    alerts_parser.add_argument(
        "--no-save",
        action="store_true",
        help="Do not write the updated state back to the settings file",
    )

    chat_parser = subparsers.add_parser(
        "chat", parents=[common], help="Ask the assistant a question"
    )
    chat_parser.add_argument("message", help="Question to ask")
    chat_parser.add_argument(
        "--pro",
        action="store_true",
        help="Answer as for a Pro subscriber",
    )

    return parser.parse_args(argv)


def _data_config(args: argparse.Namespace) -> DataConfig:
    config = DataConfig(symbol=args.symbol)
    if args.cache_path is not None:
        config.cache_path = args.cache_path
    return config


def _evaluate(market: MarketSnapshot) -> ValuationSnapshot | None:
    """Run the engine on the snapshot's price, if there is one."""
    price = market.price
    if price is None:
        return None
    return evaluate(price, market.fundamentals, ValuationConfig())


def run_status(args: argparse.Namespace) -> None:
    """Execute the status command."""
    config = _data_config(args)
    market = load_market_snapshot(config)
    valuation = _evaluate(market)

    if valuation is None:
        if market.cached is not None:
            print(f"{config.symbol}: last known multiple "
                  f"{market.cached.multiple:.1f}x (stale)")
        else:
            print(f"{config.symbol}: price unavailable")
        return

    stale = " (stale)" if market.stale else ""
    print(f"{config.symbol} ${valuation.price:,.2f}{stale}")
    if valuation.multiple is None or valuation.tier is None:
        print("Valuation unavailable: fundamentals missing")
        return

    print(f"P/S multiple:   {valuation.multiple:.1f}x")
    print(f"Tier:           {valuation.tier.label} ({valuation.tier.signal.value})")
    if valuation.fair_value_gap is not None:
        print(f"Fair value gap: {format_fair_value_gap(valuation.fair_value_gap)}")
    zone = valuation.next_buy_zone
    if zone is None:
        print("Next buy zone:  already in the lowest tier")
    else:
        print(
            f"Next buy zone:  ${zone.implied_price:,.2f} "
            f"({zone.boundary_multiple:g}x, {zone.tier_label})"
        )
    source = "live" if valuation.fundamentals_live else "cached"
    print(f"Fundamentals:   {valuation.fundamentals_as_of} [{source}]")


def run_levels(args: argparse.Namespace) -> None:
    """Execute the levels command."""
    market = load_market_snapshot(_data_config(args))
    for level in price_levels(market.fundamentals):
        print(f"{level.label:<18} {level.multiple:>5g}x  ${level.price:>10,.2f}")


def run_chart(args: argparse.Namespace) -> None:
    """Execute the chart command."""
    matplotlib.use("Agg")

    config = _data_config(args)
    market = load_market_snapshot(config)

    if args.kind == "gauge":
        valuation = _evaluate(market)
        multiple = valuation.multiple if valuation is not None else None
        if multiple is None and market.cached is not None:
            multiple = market.cached.multiple
        fig = valuation_gauge(multiple)
    else:
        candles = fetch_candles(config.symbol, args.range_key, config)
        if args.kind == "price":
            fig = price_chart(candles, market.fundamentals, symbol=config.symbol)
        else:
            fig = multiple_history(candles, market.fundamentals)

    output: Path = args.output
    output.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output, dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.info("Chart written to %s", output)


def run_report(args: argparse.Namespace) -> None:
    """Execute the report command."""
    config = _data_config(args)
    market = load_market_snapshot(config)
    valuation = _evaluate(market)
    candles = fetch_candles(config.symbol, args.range_key, config)

    html_content = render_status_html(market, valuation, candles, config.symbol)
    output: Path = args.output
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(html_content)
    logger.info("Report written to %s", output)

    if args.pdf is not None:
        write_status_pdf(html_content, args.pdf)


def run_alerts(args: argparse.Namespace) -> None:
    """Execute the alerts command."""
    settings = load_settings(args.settings)
    market = load_market_snapshot(_data_config(args))
    if market.quote is None:
        logger.error("No live quote, skipping alert evaluation")
        sys.exit(1)

    valuation = evaluate(market.quote.current, market.fundamentals)
    today = date.today()
    alerts = evaluate_alerts(
        settings, market.quote, valuation.tier, valuation.multiple, today,
    )
    for alert in alerts:
        print(f"[{alert.kind.value}] {alert.message}")
    if not alerts:
        print("No alerts triggered")

    if not args.no_save:
        updated = advance_settings(
            settings, market.quote, valuation.tier, alerts, today,
        )
        save_settings(updated, args.settings)


def run_chat(args: argparse.Namespace) -> None:
    """Execute the chat command."""
    market = load_market_snapshot(_data_config(args))
    valuation = _evaluate(market)
    context = ChatContext(
        price=market.price,
        tier=valuation.tier if valuation is not None else None,
        multiple=valuation.multiple if valuation is not None else None,
        is_pro=args.pro,
    )
    session = ChatSession(is_pro=args.pro)
    try:
        print(session.ask(args.message, context))
    except (ValueError, QuestionLimitError) as e:
        logger.error("%s", e)
        sys.exit(1)


COMMANDS = {
    "status": run_status,
    "levels": run_levels,
    "chart": run_chart,
    "report": run_report,
    "alerts": run_alerts,
    "chat": run_chat,
}


def main(argv: list[str] | None = None) -> None:
    """Main entry point.

    Args:
        argv: Argument list (defaults to sys.argv[1:]).
    """
    args = _parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    command = COMMANDS.get(args.command)
    if command is None:
        logger.error("Unknown command: %s", args.command)
        sys.exit(1)
    command(args)


if __name__ == "__main__":
    main()
