#!/usr/bin/env python3
"""
Command-line interface for the multi-provider router.

Commands:
    status              Show enabled providers and their availability
    models              List pinnable model ids
    chat PROMPT         Send one routed request
    usage LOG_FILE      Summarise a usage JSONL log
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from multiprovider.base import ChatMessage, RateLimitError
from multiprovider.config import get_config
from multiprovider.router import MultiProviderRouter, RouterError, create_router
from multiprovider.usage_tracker import UsageTracker


def cmd_status(router: MultiProviderRouter, args: argparse.Namespace) -> int:
    status = router.get_provider_status()
    current = router.get_current_provider()

    if args.json:
        print(json.dumps({"providers": status, "current": current}, indent=2))
        return 0

    print("Provider Status")
    print("===============")
    if not status:
        print("No providers enabled. Set at least one *_API_KEY in the environment.")
        return 1
    for provider in router.registry.all():
        if not provider.enabled:
            state = "disabled"
        elif status.get(provider.name):
            state = "available"
        else:
            state = "cooling down"
        marker = "*" if provider.name == current else " "
        print(f" {marker} {provider.priority}. {provider.name:<12} {provider.default_model:<40} {state}")
    return 0


def cmd_models(router: MultiProviderRouter, args: argparse.Namespace) -> int:
    entries = router.catalog.entries()

    if args.json:
        print(json.dumps(
            [dict(e.to_dict(), available=router.catalog.is_available(e.model_id)) for e in entries],
            indent=2,
        ))
        return 0

    for entry in entries:
        available = "yes" if router.catalog.is_available(entry.model_id) else "no"
        print(f"  {entry.model_id:<26} {entry.provider_name:<12} {entry.backend_model:<44} {available}")
    return 0


def cmd_chat(router: MultiProviderRouter, args: argparse.Namespace) -> int:
    messages = []
    if args.system:
        messages.append(ChatMessage.system(args.system))
    messages.append(ChatMessage.user(args.prompt))

    try:
        response = router.generate_response(messages, args.model)
    except RateLimitError as e:
        if args.json:
            print(json.dumps({"error": "rate_limited", "rate_limit": e.rate_limit.to_dict()}, indent=2))
        else:
            print(e.human_message, file=sys.stderr)
        return 2
    except RouterError as e:
        if args.json:
            print(json.dumps({"error": str(e)}, indent=2))
        else:
            print(str(e), file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(response.to_dict(), indent=2))
    else:
        print(response.text)
        print(f"\n[{response.provider_name} / {response.model}]", file=sys.stderr)
    return 0


def cmd_usage(args: argparse.Namespace) -> int:
    if not args.log_file.exists():
        print(f"Error: Log file not found: {args.log_file}", file=sys.stderr)
        return 1

    tracker = UsageTracker.from_log(args.log_file)
    if args.json:
        print(json.dumps(tracker.to_dict(), indent=2, default=str))
    else:
        print(tracker.format_summary())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Multi-provider chat router with automatic failover"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log routing decisions")
    parser.add_argument("--json", action="store_true", help="Output as JSON")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show provider availability")
    sub.add_parser("models", help="List pinnable model ids")

    chat = sub.add_parser("chat", help="Send one routed request")
    chat.add_argument("prompt", help="User message")
    chat.add_argument("--model", default=None, help="Pin a model id (default: auto)")
    chat.add_argument("--system", default=None, help="Optional system prompt")

    usage = sub.add_parser("usage", help="Summarise a usage log")
    usage.add_argument("log_file", type=Path, help="Path to JSONL usage log")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "usage":
        return cmd_usage(args)

    router = create_router(get_config())
    handlers = {
        "status": cmd_status,
        "models": cmd_models,
        "chat": cmd_chat,
    }
    return handlers[args.command](router, args)


if __name__ == "__main__":
    sys.exit(main())
