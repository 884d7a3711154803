#!/usr/bin/env python3
from __future__ import annotations

"""
POST generated volume bars to a running /api/volume endpoint.

Bars are consecutive 1m MNQ bars ending at the current minute, so they pass the
future-timestamp check and land in the dashboard's 1h window.

Usage:
  python -m volume_delta_feed.scripts.post_sample_bars --url http://localhost:3000/api/volume --count 5
  python -m volume_delta_feed.scripts.post_sample_bars --single
"""

import argparse
import json
import random
import sys
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen


DEFAULT_URL = "http://localhost:3000/api/volume"


def generate_live_bars(count: int = 5, now: Optional[datetime] = None, seed: Optional[int] = None) -> List[dict]:
    rng = random.Random(seed)
    now = (now or datetime.now(timezone.utc)).replace(second=0, microsecond=0)
    bars = []
    for i in range(count):
        bar_time = now - timedelta(minutes=count - 1 - i)
        open_volume = rng.randint(12000, 16999)
        close_volume = rng.randint(12000, 16999)
        bars.append(
            {
                "symbol": "MNQ",
                "related_symbol": "QQQ",
                "bar_time": bar_time.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "open_volume": open_volume,
                "close_volume": close_volume,
                "delta_volume": open_volume - close_volume,
                "timeframe": "1m",
                "source": "NinjaTrader",
            }
        )
    return bars


def post_json(url: str, payload) -> Tuple[int, dict]:
    """POST a JSON payload; returns (status, decoded body) for both success and HTTP errors."""
    data = json.dumps(payload).encode("utf-8")
    req = Request(url, data=data, method="POST", headers={"Content-Type": "application/json", "User-Agent": "volume-feed/1.0"})
    try:
        with urlopen(req, timeout=15) as resp:
            return resp.status, json.loads(resp.read())
    except HTTPError as e:
        return e.code, _decode_error_body(e.read())


def _decode_error_body(raw: bytes) -> dict:
    # error pages from proxies or the framework itself may be HTML
    try:
        body = json.loads(raw or b"{}")
    except ValueError:
        return {"error": raw.decode("utf-8", errors="replace").strip()}
    return body if isinstance(body, dict) else {"error": body}


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="POST sample volume bars to the ingestion API")
    parser.add_argument("--url", default=DEFAULT_URL, help="Ingestion endpoint URL")
    parser.add_argument("--count", type=int, default=5, help="Number of bars in the batch")
    parser.add_argument("--single", action="store_true", help="Send one bar as an object instead of an array")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for volumes")
    args = parser.parse_args(argv)

    bars = generate_live_bars(1 if args.single else args.count, seed=args.seed)
    payload = bars[0] if args.single else bars

    try:
        status, body = post_json(args.url, payload)
    except URLError as e:
        print(f"[ERROR] network error: {e}", file=sys.stderr)
        return 2

    print(f"status={status} body={json.dumps(body)}")
    if status != 200:
        print(f"[ERROR] API rejected bars: {body.get('errors')}", file=sys.stderr)
        return 1
    print(f"inserted={body.get('inserted')}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
