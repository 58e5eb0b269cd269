"""Fetch the Bank of Taiwan rate board once and print it."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from fx_twbank.config import PipelineSettings
from fx_twbank.display import RateBoard, rates_to_frame
from fx_twbank.errors import FetchCancelledError
from fx_twbank.ingestion.strategy import order_strategies
from fx_twbank.pipeline import RatePipeline
from fx_twbank.utils.logger import get_logger, set_verbosity

LOGGER = get_logger(__name__)

__all__ = ["build_settings", "main", "parse_args"]


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--show-spot",
        action="store_true",
        help="Include spot (account-based) buy/sell/mid columns",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Per-relay timeout in seconds (default 10)",
    )
    parser.add_argument("--model", help="Model used for structured extraction")
    parser.add_argument(
        "--strategies",
        help="Comma-separated relay names to try, in order (e.g. 'CodeTabs,AllOrigins')",
    )
    parser.add_argument(
        "--condense-html",
        action="store_true",
        help="Strip table markup before sending page text to the model",
    )
    parser.add_argument("--csv", dest="csv_path", help="Also write the rates to this CSV file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> PipelineSettings:
    return PipelineSettings.from_env(
        timeout=args.timeout,
        model=args.model,
        strategies=order_strategies(args.strategies.split(",")) if args.strategies else None,
        condense_html=args.condense_html or None,
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    set_verbosity(args.verbose)
    try:
        settings = build_settings(args)
    except (KeyError, ValueError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    board = RateBoard(RatePipeline(settings).run_fetch_cycle)
    board.show_spot = args.show_spot
    try:
        outcome = board.refresh()
    except FetchCancelledError:
        print("Cancelled.", file=sys.stderr)
        return 130
    if not outcome.ok:
        print(outcome.error, file=sys.stderr)
        return 1

    relay = outcome.attempted[-1] if outcome.attempted else "unknown relay"
    print(f"Updated {outcome.completed_at.astimezone():%H:%M} via {relay}")
    print(board.render())
    if args.csv_path:
        rates_to_frame(board.rates, show_spot=True).to_csv(args.csv_path, index=False)
        LOGGER.info("Wrote %s rates to %s", len(board.rates), args.csv_path)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
