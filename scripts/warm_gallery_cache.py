#!/usr/bin/env python3
"""
Warm the gallery service's per-emoji caches.

Asks a running gallery service to run discovery for the given emoji (all
supported emoji by default) and to start background refills, so the first
user request for each emoji is served from the ready queue.
"""

import argparse
import json
import os
import sys
from pathlib import Path
from typing import List, Optional

import httpx


def warm(*, service_url: str, keys: List[str], timeout: float) -> dict:
    """Call the warm endpoint and return its summary."""
    response = httpx.post(
        f"{service_url.rstrip('/')}/api/cache/warm",
        json={"keys": keys},
        timeout=timeout,
    )
    response.raise_for_status()
    return response.json()


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Warm gallery caches for emoji keys.")
    parser.add_argument("--service-url", default=os.getenv("GALLERY_SERVICE_URL", "http://localhost:8080"), help="Gallery service URL")
    parser.add_argument("--emoji", action="append", default=[], help="Emoji to warm (repeatable; default: all)")
    parser.add_argument("--timeout", type=float, default=300.0, help="Request timeout in seconds; discovery is slow")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        summary = warm(service_url=args.service_url, keys=args.emoji, timeout=args.timeout)
    except KeyboardInterrupt:
        return 130
    except httpx.HTTPError as exc:
        print(f"[cache-warm] failed: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2, ensure_ascii=False))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2, ensure_ascii=False), encoding="utf-8")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
