"""Command line interface for Chatia."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from chatia.config import get_config
from chatia.orchestrator import Orchestrator
from chatia.providers import build_registry


def _print(obj: Any) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def cmd_ask(args: argparse.Namespace, config: Any) -> int:
    prompt = (args.prompt or "").strip()
    if not prompt:
        print("prompt required", file=sys.stderr)
        return 2
    orchestrator = Orchestrator.from_config(config)
    result = orchestrator.orchestrate(
        prompt,
        caller_id=args.caller_id,
        providers=args.provider,
        timeout_ms=args.timeout_ms,
        include_memory=args.include_memory,
        language=args.language,
    )
    _print(result.to_dict())
    return 0


def cmd_providers(args: argparse.Namespace, config: Any) -> int:
    registry = build_registry(config)
    if args.providers_cmd == "enable":
        ok = registry.enable(args.name)
        _print({"success": ok, "providers": registry.list_capabilities()})
        return 0 if ok else 1
    if args.providers_cmd == "disable":
        ok = registry.disable(args.name)
        _print({"success": ok, "providers": registry.list_capabilities()})
        return 0 if ok else 1
    if args.providers_cmd == "health":
        results = registry.health_check_all()
        _print({"results": results, "providers": registry.list_capabilities()})
        return 0
    _print({"providers": registry.list_capabilities()})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chatia")
    sub = parser.add_subparsers(dest="command")

    ask = sub.add_parser("ask", help="Fan a prompt out to providers and print the combined answer")
    ask.add_argument("--prompt", required=True)
    ask.add_argument("--provider", action="append", help="Restrict to this provider (repeatable)")
    ask.add_argument("--timeout-ms", type=int)
    ask.add_argument("--include-memory", action="store_true")
    ask.add_argument("--caller-id", default="cli")
    ask.add_argument("--language")

    providers = sub.add_parser("providers")
    providers_sub = providers.add_subparsers(dest="providers_cmd")
    providers_sub.add_parser("list")
    enable = providers_sub.add_parser("enable")
    enable.add_argument("name")
    disable = providers_sub.add_parser("disable")
    disable.add_argument("name")
    providers_sub.add_parser("health")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = get_config()
    logging.basicConfig(level=config.log_level, stream=sys.stderr)
    if args.command == "ask":
        return cmd_ask(args, config)
    if args.command == "providers":
        return cmd_providers(args, config)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
