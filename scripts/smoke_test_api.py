#!/usr/bin/env python3
"""
Smoke test against a running API server (python -m uvicorn app.main:app --port 35821)
"""
import sys

import httpx

BASE_URL = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:35821"

CHECKS = [
    ("GET", "/api/health", None, 200),
    ("GET", "/api/journal", None, 200),
    ("GET", "/api/journal/stats", None, 200),
    ("GET", "/api/journal/strategy-tags", None, 200),
    ("GET", "/api/connections", None, 200),
    ("GET", "/api/alerts/rules", None, 200),
    ("GET", "/api/settings/smoke-test", None, 200),
    ("POST", "/api/accounting/cost-basis", {"symbol": "BTC", "transactions": []}, 200),
    ("POST", "/api/cex/balance", {"exchangeId": "binance"}, 400),
    ("GET", "/api/proxy/ping", None, 400),
]


def run_checks(base_url: str) -> bool:
    print(f"🚀 Smoke testing {base_url}")
    print("=" * 60)
    failures = 0
    with httpx.Client(base_url=base_url, timeout=30) as client:
        for method, path, body, expected in CHECKS:
            try:
                response = client.request(method, path, json=body)
            except httpx.HTTPError as e:
                print(f"❌ {method} {path}: {e}")
                failures += 1
                continue
            ok = response.status_code == expected
            failures += 0 if ok else 1
            print(f"{'✅' if ok else '❌'} {method} {path} -> {response.status_code} (expected {expected})")
    print("=" * 60)
    print(f"{len(CHECKS) - failures}/{len(CHECKS)} checks passed")
    return failures == 0


if __name__ == "__main__":
    sys.exit(0 if run_checks(BASE_URL) else 1)
