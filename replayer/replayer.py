#!/usr/bin/env python3
"""
Replayer that drives load against the latency-lab /api/test endpoint.
Each response echoes sleep_ms and worker_pid; a summary is printed at the end.
"""
import math
import os
import statistics
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import requests

TARGET_URL = os.getenv("TARGET_URL", "http://localhost:5000/api/test")
TOTAL_REQUESTS = int(os.getenv("REQUESTS", "200"))
CONCURRENCY = int(os.getenv("CONCURRENCY", "8"))
TIMEOUT_SEC = float(os.getenv("REPLAYER_TIMEOUT", "5"))


@dataclass
class ReplaySummary:
    ok: int = 0
    errors: int = 0
    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    mean_sleep_ms: float = 0.0
    per_worker: dict = field(default_factory=dict)


def _percentile(sorted_values, q):
    if not sorted_values:
        return 0.0
    idx = min(len(sorted_values) - 1, max(0, math.ceil(q * len(sorted_values)) - 1))
    return sorted_values[idx]


def summarize(samples, errors):
    """samples: list of (round_trip_ms, response json)."""
    rtts = sorted(rtt for rtt, _ in samples)
    sleeps = [body.get("sleep_ms", 0) for _, body in samples]
    return ReplaySummary(
        ok=len(samples),
        errors=errors,
        p50_ms=_percentile(rtts, 0.50),
        p95_ms=_percentile(rtts, 0.95),
        p99_ms=_percentile(rtts, 0.99),
        mean_sleep_ms=statistics.fmean(sleeps) if sleeps else 0.0,
        per_worker=dict(Counter(body.get("worker_pid") for _, body in samples)),
    )


def replay(url=TARGET_URL, total=TOTAL_REQUESTS, concurrency=CONCURRENCY, session=None):
    session = session or requests.Session()

    def hit(_):
        start = time.perf_counter()
        try:
            r = session.get(url, timeout=TIMEOUT_SEC)
            r.raise_for_status()
            return (time.perf_counter() - start) * 1000.0, r.json()
        except Exception as e:
            print("[replayer] request error:", e)
            return None

    with ThreadPoolExecutor(max_workers=max(1, concurrency)) as pool:
        results = list(pool.map(hit, range(total)))
    samples = [r for r in results if r is not None]
    return summarize(samples, errors=len(results) - len(samples))


if __name__ == "__main__":
    print(f"[replayer] {TOTAL_REQUESTS} requests -> {TARGET_URL} (concurrency {CONCURRENCY})")
    s = replay()
    print(f"[replayer] ok={s.ok} errors={s.errors}")
    print(f"[replayer] p50={s.p50_ms:.1f}ms p95={s.p95_ms:.1f}ms p99={s.p99_ms:.1f}ms "
          f"mean sleep_ms={s.mean_sleep_ms:.1f}")
    for pid, n in sorted(s.per_worker.items(), key=lambda kv: str(kv[0])):
        print(f"[replayer] worker {pid}: {n}")
