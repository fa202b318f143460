"""Command-line interface — offline risk calculators and oracle quote check."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time

from .config import load_config
from .engine.risk import (
    calculate_cvar,
    calculate_il,
    calculate_risk_score,
    calculate_var,
)
from .errors import LPShieldError
from .fixed_point import HF_SCALE, PRICE_SCALE, USD_SCALE, to_scaled
from .logging_setup import configure_logging
from .oracles import PythOracle

logger = logging.getLogger(__name__)


def _add_scenario_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--value", required=True, help="Position value in USD")
    parser.add_argument(
        "--confidence",
        type=int,
        default=95,
        choices=[90, 95, 99],
        help="Confidence level (default: 95)",
    )
    parser.add_argument(
        "scenarios",
        nargs="+",
        type=int,
        help="IL scenario outcomes in bps",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="lpshield",
        description="LP impermanent-loss risk engine",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    il_parser = sub.add_parser("il", help="Impermanent loss between two prices")
    il_parser.add_argument("initial", help="Initial price of X in Y")
    il_parser.add_argument("current", help="Current price of X in Y")

    var_parser = sub.add_parser("var", help="Value at Risk from IL scenarios")
    _add_scenario_args(var_parser)
    var_parser.add_argument(
        "--horizon", type=int, default=24, help="Horizon in hours (default: 24)"
    )

    cvar_parser = sub.add_parser("cvar", help="Expected shortfall from IL scenarios")
    _add_scenario_args(cvar_parser)

    score_parser = sub.add_parser("score", help="Composite risk score")
    score_parser.add_argument("--il", type=int, required=True, help="Current IL in bps")
    score_parser.add_argument(
        "--threshold", type=int, required=True, help="IL threshold in bps"
    )
    score_parser.add_argument("--var", required=True, help="VaR95 in USD")
    score_parser.add_argument("--cvar", required=True, help="CVaR95 in USD")
    score_parser.add_argument("--value", required=True, help="Position value in USD")
    score_parser.add_argument(
        "--volatility", type=int, default=0, help="Volatility in bps (default: 0)"
    )
    score_parser.add_argument(
        "--health-factor", default=None, help="Hedge health factor, e.g. 1.4"
    )

    quote_parser = sub.add_parser("quote", help="Fetch oracle quotes and check age")
    quote_parser.add_argument(
        "symbols", nargs="*", help="Symbols to fetch (default: all configured)"
    )

    return parser


def _usd(amount: int) -> str:
    return f"${amount / USD_SCALE:,.2f}"


async def _quote(args: argparse.Namespace) -> None:
    config = load_config(args.config)
    oracle = PythOracle(config.price_oracle.pyth)
    quotes = await oracle.fetch_quotes(args.symbols or None)
    if not quotes:
        logger.error("No quotes returned")
        sys.exit(1)

    now = int(time.time())
    max_age = config.risk.max_price_age_seconds
    for symbol, quote in sorted(quotes.items()):
        age = now - quote.updated_at
        status = "STALE" if age >= max_age else "fresh"
        print(f"{symbol}: {quote.price / PRICE_SCALE:,.4f} (age {age}s, {status})")


def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    if args.command == "il":
        il = calculate_il(
            to_scaled(args.initial, PRICE_SCALE), to_scaled(args.current, PRICE_SCALE)
        )
        print(f"Impermanent loss: {il} bps ({il / 100:.2f}%)")
    elif args.command == "var":
        var = calculate_var(
            to_scaled(args.value, USD_SCALE),
            args.horizon,
            sorted(args.scenarios),
            args.confidence,
        )
        print(f"VaR{args.confidence} ({args.horizon}h): {_usd(var)}")
    elif args.command == "cvar":
        cvar = calculate_cvar(
            to_scaled(args.value, USD_SCALE), sorted(args.scenarios), args.confidence
        )
        print(f"CVaR{args.confidence}: {_usd(cvar)}")
    elif args.command == "score":
        hf = None
        if args.health_factor is not None:
            hf = to_scaled(args.health_factor, HF_SCALE)
        score = calculate_risk_score(
            args.il,
            args.threshold,
            to_scaled(args.var, USD_SCALE),
            to_scaled(args.cvar, USD_SCALE),
            to_scaled(args.value, USD_SCALE),
            args.volatility,
            hf,
        )
        print(f"Risk score: {score}/100")
    elif args.command == "quote":
        asyncio.run(_quote(args))


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging(args.log_level)
    try:
        _run(args)
    except LPShieldError as e:
        print(f"error [{e.code}]: {e}", file=sys.stderr)
        sys.exit(2)
