"""
In-memory worker metrics, safe to update from threads and coroutines.

  counters        tasks.submitted.<provider>, tasks.failed.<provider>,
                  polls.transient_errors, requests.<route>, errors.<stage>
  stage latency   last SAMPLE_WINDOW durations per stage → p50 / p95 / avg
  recent errors   last ERROR_WINDOW failures with stage and exception type

Nothing is persisted; a restart starts from zero. Served on GET /metrics.
"""

import threading
import time
from collections import Counter, defaultdict, deque
from typing import Deque

SAMPLE_WINDOW = 100
ERROR_WINDOW = 50

_guard = threading.Lock()
_counts: Counter = Counter()
_stage_ms: dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=SAMPLE_WINDOW))
_errors: Deque[dict] = deque(maxlen=ERROR_WINDOW)
_since = time.time()


def inc_counter(name: str, amount: int = 1):
    with _guard:
        _counts[name] += amount


def record_latency(stage: str, duration_ms: float):
    with _guard:
        _stage_ms[stage].append(duration_ms)


def record_error(stage: str, error_type: str, message: str):
    entry = {
        "timestamp": time.time(),
        "stage": stage,
        "error_type": error_type,
        "message": message[:300],
    }
    with _guard:
        _errors.append(entry)


def reset():
    global _since
    with _guard:
        _counts.clear()
        _stage_ms.clear()
        _errors.clear()
        _since = time.time()


def _percentile(ordered: list[float], fraction: float) -> float:
    index = min(len(ordered) - 1, int(len(ordered) * fraction))
    return ordered[index]


def get_snapshot() -> dict:
    """Counters, per-stage latency summary and the ten newest errors."""
    with _guard:
        latency = {}
        for stage, window in _stage_ms.items():
            if not window:
                continue
            ordered = sorted(window)
            latency[stage] = {
                "p50": _percentile(ordered, 0.5),
                "p95": _percentile(ordered, 0.95),
                "avg": sum(ordered) / len(ordered),
                "count": len(ordered),
            }
        counters = dict(_counts)
        recent = list(_errors)[-10:]
        started = _since

    now = time.time()
    return {
        "timestamp": now,
        "uptime_seconds": now - started,
        "counters": counters,
        "latency": latency,
        "recent_errors": recent,
    }
