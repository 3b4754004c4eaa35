#!/usr/bin/env python3
"""Deploy the order-set library, the linked auction contract and its proxy."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, List, Sequence

from proxy_bootstrap.config import load_config
from proxy_bootstrap.deploy import deploy_from_config
from proxy_bootstrap.errors import DeploymentError, NetworkUnavailable
from proxy_bootstrap.initializer import InitCall
from proxy_bootstrap.manifest import format_summary
from proxy_bootstrap.plan import InitializationStrategy


def _json_value(raw: str) -> Any:
    """Parse ``raw`` as JSON, falling back to the plain string (handy for addresses)."""

    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--strategy",
        choices=[strategy.value for strategy in InitializationStrategy],
        default=InitializationStrategy.RELAYED.value,
        help="How to run the initializer: relayed through the proxy constructor (default), "
        "directly on the logic contract before the proxy, or not at all.",
    )
    parser.add_argument("--artifacts", type=Path, default=None, help="Directory of compiled artifacts.")
    parser.add_argument("--library", default="IterableOrderedOrderSet", help="Library artifact name.")
    parser.add_argument("--logic", default="NFTAuction", help="Logic contract artifact name.")
    parser.add_argument("--proxy", default="Proxy", help="Proxy artifact name.")
    parser.add_argument("--initializer", default="initialize", help="Initializer name or full signature.")
    parser.add_argument(
        "--init-arg",
        action="append",
        default=[],
        help="Initializer argument, JSON encoded. Repeat for several arguments.",
    )
    parser.add_argument(
        "--proxy-arg",
        action="append",
        default=[],
        help="Extra proxy constructor argument placed after the logic address (e.g. an admin).",
    )
    parser.add_argument("--confirmations", type=int, default=None, help="Blocks to wait for per step.")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait for each confirmation.")
    parser.add_argument("--manifest", type=Path, default=None, help="Where to write the deployment manifest.")
    parser.add_argument("--json", action="store_true", help="Emit the manifest as JSON.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log each step as it runs.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, format="%(levelname)s %(message)s")

    try:
        config = load_config()
    except (RuntimeError, ValueError) as exc:
        print(f"[❌] {exc}")
        return 1

    overrides = {}
    if args.artifacts is not None:
        overrides["artifacts_dir"] = args.artifacts
    if args.confirmations is not None:
        overrides["confirmations"] = args.confirmations
    if args.timeout is not None:
        overrides["timeout"] = args.timeout
    if args.manifest is not None:
        overrides["manifest_path"] = args.manifest
    if overrides:
        config = replace(config, **overrides)

    init_args: List[Any] = [_json_value(raw) for raw in args.init_arg]
    proxy_args: List[Any] = [_json_value(raw) for raw in args.proxy_arg]

    try:
        manifest = deploy_from_config(
            config,
            args.strategy,
            library=args.library,
            logic=args.logic,
            proxy=args.proxy,
            initializer=InitCall(args.initializer, tuple(init_args)),
            proxy_args=proxy_args,
        )
    except NetworkUnavailable as exc:
        print(f"Network error while contacting {config.rpc_url}: {exc}")
        return 2
    except DeploymentError as exc:
        print(f"[❌] {exc}")
        if exc.manifest is not None:
            print(format_summary(exc.manifest))
            print(f"[💾] Partial manifest: {config.resolved_manifest_path}")
        return 1

    if args.json:
        json.dump(manifest.as_dict(), sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        print("[✅] Deployment confirmed")
        print(format_summary(manifest))
        print(f"[💾] Manifest: {config.resolved_manifest_path}")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
