"""Command-line interface for the Stone lending client core."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from .config import AppConfig, load_config
from .errors import StoneError
from .logging_setup import configure_logging
from .models import Action, Market, Position, PriceQuote, TimelineEntry
from .services import LendingService
from .utils.format import format_relative_time, to_micro

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="stonelend",
        description="Risk, price-update and history tooling for Stone lending markets",
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

    snapshot = sub.add_parser("snapshot", help="Risk snapshot for a user's position")
    snapshot.add_argument("market", help="Market name from config")
    snapshot.add_argument("user", help="Wallet address")

    prices = sub.add_parser("prices", help="Current prices from Pyth")
    prices.add_argument(
        "denoms",
        nargs="*",
        help="Denoms to price (default: every denom of every configured market)",
    )

    prepare = sub.add_parser("prepare", help="Build the instruction batch for an action")
    prepare.add_argument("market", help="Market name from config")
    prepare.add_argument("action", choices=[a.value for a in Action])
    prepare.add_argument("amount", help="Amount in display units, e.g. 12.5")
    prepare.add_argument("--sender", required=True, help="Wallet address that signs")
    prepare.add_argument("--borrower", default=None, help="Borrower (liquidate, repay on behalf)")

    history = sub.add_parser("history", help="Transaction history for a user")
    history.add_argument("user", help="Wallet address")
    history.add_argument("--limit", type=int, default=None, help="Number of entries")

    return parser


# ---------------------------------------------------------------------------
# JSON rendering
# ---------------------------------------------------------------------------


def _quote_dict(quote: PriceQuote) -> dict[str, Any]:
    return {
        "price": str(quote.price),
        "confidence": str(quote.confidence),
        "publish_time": quote.publish_time,
    }


def _market_dict(market: Market) -> dict[str, Any]:
    return {
        "address": market.address,
        "collateral_denom": market.collateral_denom,
        "debt_denom": market.debt_denom,
        "liquidation_threshold": str(market.liquidation_threshold),
        "loan_to_value": str(market.loan_to_value),
    }


def _position_dict(position: Position) -> dict[str, str]:
    return {
        "collateral_amount": position.collateral_amount,
        "supply_amount": position.supply_amount,
        "debt_amount": position.debt_amount,
    }


def _timeline_dict(entry: TimelineEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "action": entry.action.value,
        "amount": entry.amount,
        "denom": entry.denom,
        "status": entry.status,
        "tx_hash": entry.tx_hash,
        "error": entry.error,
        "timestamp_ms": entry.timestamp_ms,
        "age": format_relative_time(entry.timestamp_ms // 1000),
        "source": entry.source,
    }


def _all_denoms(config: AppConfig) -> list[str]:
    denoms: list[str] = []
    for market in config.markets.values():
        denoms.extend((market.collateral_denom, market.debt_denom))
    return list(dict.fromkeys(denoms))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _run(args: argparse.Namespace, config: AppConfig) -> dict[str, Any]:
    """Execute the selected command and return its JSON payload."""
    service = LendingService(config)

    if args.command == "snapshot":
        market = await service.load_market(args.market)
        position, snapshot = await service.load_snapshot(market, args.user)
        return {
            "market": _market_dict(market),
            "user": args.user,
            "position": _position_dict(position),
            "prices": {d: _quote_dict(q) for d, q in service.cache.prices().items()},
            "risk": snapshot.to_dict(),
        }

    if args.command == "prices":
        quotes = await service.refresh_prices(args.denoms or _all_denoms(config))
        return {denom: _quote_dict(quote) for denom, quote in quotes.items()}

    if args.command == "prepare":
        market = service.configured_market(args.market)
        amount = to_micro(args.amount, config.risk.decimals)
        batch = await service.prepare_transaction(
            Action(args.action), market, amount, args.sender, args.borrower
        )
        return {
            "needs_price_update": batch.needs_price_update,
            "instructions": [i.to_dict() for i in batch.instructions],
        }

    if args.command == "history":
        entries = await service.load_history(args.user, args.limit)
        return {"transactions": [_timeline_dict(e) for e in entries]}

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging(args.log_level)
    config = load_config(args.config)

    try:
        payload = asyncio.run(_run(args, config))
    except (StoneError, KeyError, ValueError) as e:
        logger.error("%s", e)
        sys.exit(1)

    print(json.dumps(payload, indent=2, ensure_ascii=False))
