#!/usr/bin/env python3
"""
Command-line access to the exchange client.

Loads config (YAML + env), runs one API call and prints the JSON result.
Exit codes: 0 ok, 1 remote error, 2 no data for the requested pair.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List, Optional, Sequence

from btce_connector.core.config import DEFAULT_CONFIG_PATH, load_config_with_overrides
from btce_connector.core.logger import get_logger, setup_logging
from btce_connector.exchange.client import ExchangeClient
from btce_connector.exchange.exceptions import PairNotFoundError, RemoteError

logger = get_logger("cli")


def _parse_filters(pairs: Optional[List[str]]) -> Dict[str, str]:
    filters: Dict[str, str] = {}
    for raw in pairs or []:
        key, sep, value = raw.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"filter must look like KEY=VALUE, got {raw!r}")
        filters[key.strip()] = value.strip()
    return filters


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="btce-connector", description=__doc__.strip().splitlines()[0])
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="YAML config path")
    parser.add_argument("--log-level", default=None, help="override app.log_level")
    parser.add_argument("--json-logs", action="store_true", help="emit logs as JSON lines")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("info", help="account balances and rights (getInfo)")
    sub.add_parser("pairs", help="trading pairs and their limits")

    depth = sub.add_parser("depth", help="order book for one pair")
    depth.add_argument("pair")
    depth.add_argument("--limit", type=int, default=None)

    for name, help_text in (
        ("trade-history", "own trades (TradeHistory)"),
        ("trans-history", "account transactions (TransHistory)"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument(
            "--filter", action="append", metavar="KEY=VALUE",
            help="history filter, e.g. count=10; repeatable",
        )

    trade = sub.add_parser("trade", help="place an order")
    trade.add_argument("pair")
    trade.add_argument("type", choices=["buy", "sell"])
    trade.add_argument("rate", help="decimal string, sent as-is")
    trade.add_argument("amount", help="decimal string, sent as-is")

    cancel = sub.add_parser("cancel", help="cancel an order")
    cancel.add_argument("order_id")

    redeem = sub.add_parser("redeem", help="redeem a coupon code")
    redeem.add_argument("code")

    return parser


def _dispatch(client: ExchangeClient, args: argparse.Namespace) -> Any:
    if args.command == "info":
        return client.get_info()
    if args.command == "pairs":
        return client.get_pairs_info()
    if args.command == "depth":
        return client.get_depth(args.pair, args.limit)
    if args.command == "trade-history":
        return client.get_trade_history(_parse_filters(args.filter))
    if args.command == "trans-history":
        return client.get_trans_history(_parse_filters(args.filter))
    if args.command == "trade":
        return client.trade(args.pair, args.type, args.rate, args.amount)
    if args.command == "cancel":
        return client.cancel_order(args.order_id)
    if args.command == "redeem":
        return client.redeem_coupon(args.code)
    raise ValueError(f"unknown command {args.command!r}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    cfg = load_config_with_overrides(args.config)
    setup_logging(
        log_level=args.log_level or cfg.app.log_level,
        log_dir=cfg.app.log_dir,
        json_output=args.json_logs or cfg.app.json_logs,
    )

    try:
        with ExchangeClient(cfg.exchange) as client:
            result = _dispatch(client, args)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    except RemoteError as e:
        logger.error("Exchange call failed", command=args.command, error=e.message, status_code=e.status_code)
        print(f"error: {e.message}", file=sys.stderr)
        return 1
    except PairNotFoundError as e:
        print(f"error: no depth returned for {e.pair}", file=sys.stderr)
        return 2

    print(json.dumps(result, indent=2, sort_keys=True, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
