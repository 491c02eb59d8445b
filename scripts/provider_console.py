#!/usr/bin/env python3
"""Exercise a provider store through pyprov from the command line.

Reads the default provider, lists every provider and optionally applies
one optimistic update, printing each subscriber notification as it fires.

Usage
-----
Against a REST backend::

    python scripts/provider_console.py --base-url https://store.example.com/api

Against a local JSON file (a list of provider records)::

    python scripts/provider_console.py --seed providers.json --default openai

Options::

    --update ID           Provider to update
    --set FIELD=VALUE     Field to change (repeatable; VALUE is parsed as JSON when possible)
    --latency SECONDS     Simulated latency for the in-memory store
    --verbose, -v         Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import aiohttp

from pyprov import HttpGateway, InMemoryGateway, Provider, ProviderService, PyprovError
from pyprov._redact import redact_for_log


def _parse_assignment(raw: str) -> tuple[str, Any]:
    field, sep, value = raw.partition("=")
    if not sep or not field:
        raise argparse.ArgumentTypeError(f"expected FIELD=VALUE, got {raw!r}")
    try:
        return field, json.loads(value)
    except json.JSONDecodeError:
        return field, value


def _load_seed(path: str) -> list[Provider]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("items", [])
    return [Provider.model_validate(item) for item in payload]


def _describe(provider: Provider | None) -> str:
    if provider is None:
        return "<none>"
    state = "enabled" if provider.enabled else "disabled"
    return f"{provider.id:<16} {provider.type:<16} {state:<9} {provider.name}"


async def _run(args: argparse.Namespace, gateway: Any) -> int:
    async with ProviderService(gateway) as service:
        try:
            await service.initialize()
            print(f"default : {_describe(service.get_default_snapshot())}")
        except PyprovError as exc:
            print(f"default : unavailable ({exc})", file=sys.stderr)

        for provider in await service.list_entities():
            print(f"  {_describe(provider)}")

        if not args.update:
            return 0

        change = dict(args.assignments)
        if not change:
            print("--update needs at least one --set FIELD=VALUE", file=sys.stderr)
            return 2

        def _on_change() -> None:
            entry = service.cache.entry(args.update)
            marker = "optimistic" if entry is not None and entry.optimistic else "confirmed"
            print(f"[notify] {marker:<10} {_describe(service.get_snapshot(args.update))}")

        service.subscribe(args.update, _on_change)
        print(f"update  : {args.update} {json.dumps(redact_for_log(change))}")
        try:
            result = await service.update(args.update, change)
        except PyprovError as exc:
            print(f"update failed: {exc}", file=sys.stderr)
            print(f"rolled back : {_describe(service.get_snapshot(args.update))}")
            return 1
        print(f"stored  : {_describe(result)}")
    return 0


async def main() -> int:
    parser = argparse.ArgumentParser(description="Inspect and update providers through pyprov.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--base-url", help="REST backend root (serves /providers)")
    source.add_argument("--seed", help="JSON file with provider records for an in-memory store")
    parser.add_argument("--default", help="Default provider id for the in-memory store")
    parser.add_argument("--latency", type=float, default=0.0, help="Simulated latency for the in-memory store")
    parser.add_argument("--update", help="Provider id to update")
    parser.add_argument(
        "--set",
        dest="assignments",
        action="append",
        default=[],
        type=_parse_assignment,
        metavar="FIELD=VALUE",
        help="Field to change (repeatable)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    if args.seed:
        gateway = InMemoryGateway(_load_seed(args.seed), default_id=args.default, latency=args.latency)
        return await _run(args, gateway)

    async with aiohttp.ClientSession() as http_session:
        return await _run(args, HttpGateway(args.base_url, http_session))


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
