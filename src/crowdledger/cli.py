"""Crowdledger CLI: inspect parameters, replay scenarios, query token balances.

Usage:
    python -m crowdledger.cli show-params
    python -m crowdledger.cli check-params
    python -m crowdledger.cli simulate --scenario scenarios/demo.json --events data/events.jsonl
    python -m crowdledger.cli token-balance --token 0x... --address 0x...
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from crowdledger.persistence.event_log import EventLog
from crowdledger.policy.resolver import ParameterResolver
from crowdledger.simulation import load_scenario, run_scenario
from crowdledger.utilities.logger import setup_logger


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"


def cmd_show_params(args: argparse.Namespace) -> int:
    resolver = ParameterResolver.from_config_dir(args.config)
    print(json.dumps(resolver.raw(), indent=2))
    return 0


def cmd_check_params(args: argparse.Namespace) -> int:
    """Validate the parameter file; non-zero exit on any error."""
    resolver = ParameterResolver.from_config_dir(args.config)
    errors = resolver.validate()
    if errors:
        for error in errors:
            print(f"  FAIL: {error}", file=sys.stderr)
        return 1
    print("Parameters OK")
    return 0


def cmd_simulate(args: argparse.Namespace) -> int:
    resolver = ParameterResolver.from_config_dir(args.config)
    errors = resolver.validate()
    if errors:
        print(f"Failed: {'; '.join(errors)}", file=sys.stderr)
        return 1
    scenario = load_scenario(args.scenario)
    event_log = None
    if args.events is not None:
        args.events.parent.mkdir(parents=True, exist_ok=True)
        event_log = EventLog(storage_path=args.events)

    outcome = run_scenario(scenario, resolver, event_log=event_log)
    print(json.dumps(outcome.report(), indent=2, default=str))
    if outcome.failed_steps:
        print(
            f"{len(outcome.failed_steps)} step(s) failed: {outcome.failed_steps}",
            file=sys.stderr,
        )
        return 1
    return 0


def cmd_token_balance(args: argparse.Namespace) -> int:
    """Read an ERC-20 balance over the RPC endpoint named in .env."""
    from dotenv import load_dotenv
    from crowdledger.funding.token import Web3Token

    load_dotenv()
    rpc_url = args.rpc_url or os.getenv("RPC_URL")
    if not rpc_url:
        print("Failed: RPC_URL is not set (pass --rpc-url or add it to .env)", file=sys.stderr)
        return 1
    token = Web3Token.connect(rpc_url, args.token)
    print(json.dumps({"address": args.address, "balance": token.balance_of(args.address)}))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crowdledger",
        description="Crowdledger: crowdfunding ledger with cycle-based fee sharing",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command")

    # show-params
    sub.add_parser("show-params", help="Print the configured fund parameters")

    # check-params
    sub.add_parser("check-params", help="Validate the configured fund parameters")

    # simulate
    p_sim = sub.add_parser("simulate", help="Replay a JSON scenario against a fund")
    p_sim.add_argument("--scenario", type=Path, required=True, help="Scenario JSON file")
    p_sim.add_argument("--events", type=Path, help="Append fund events to this JSONL file")

    # token-balance
    p_bal = sub.add_parser("token-balance", help="Query an ERC-20 token balance")
    p_bal.add_argument("--token", required=True, help="Token contract address")
    p_bal.add_argument("--address", required=True, help="Holder address")
    p_bal.add_argument("--rpc-url", help="RPC endpoint (default: RPC_URL from .env)")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    setup_logger("crowdledger", level=logging.DEBUG if args.verbose else logging.WARNING)

    commands = {
        "show-params": cmd_show_params,
        "check-params": cmd_check_params,
        "simulate": cmd_simulate,
        "token-balance": cmd_token_balance,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
