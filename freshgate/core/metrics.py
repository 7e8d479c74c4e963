"""Per-run operation metrics: timings, counts, successes and failures."""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from freshgate.core.logger import logger


class MetricsSink:
    """Thread-safe collector created once per run and passed explicitly.

    The caller flushes it at the end of the run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._timings: Dict[str, List[float]] = defaultdict(list)
        self._counts: Dict[str, int] = defaultdict(int)
        self._successes: Dict[str, int] = defaultdict(int)
        self._failures: Dict[str, int] = defaultdict(int)

    @contextmanager
    def timer(self, operation: str) -> Iterator[None]:
        """Record the wall time of the enclosed block under ``operation``."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            with self._lock:
                self._timings[operation].append(elapsed_ms)

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[name] += amount

    def record_success(self, operation: str) -> None:
        with self._lock:
            self._successes[operation] += 1

    def record_failure(self, operation: str, reason: Optional[str] = None) -> None:
        with self._lock:
            self._failures[operation] += 1
            if reason:
                self._counts[f"{operation}.{reason}"] += 1

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Return a copy of everything collected so far, keyed by operation."""
        with self._lock:
            operations = set(self._timings) | set(self._successes) | set(self._failures)
            summary: Dict[str, Dict[str, Any]] = {}
            for op in sorted(operations):
                timings = self._timings.get(op, [])
                summary[op] = {
                    "calls": len(timings),
                    "avg_ms": round(sum(timings) / len(timings), 2) if timings else 0.0,
                    "max_ms": round(max(timings), 2) if timings else 0.0,
                    "successes": self._successes.get(op, 0),
                    "failures": self._failures.get(op, 0),
                }
            summary["counters"] = dict(self._counts)
            return summary

    def flush(self) -> Dict[str, Dict[str, Any]]:
        """Log a summary line per operation, reset, and return the flushed snapshot."""
        summary = self.snapshot()
        for op, values in summary.items():
            if op == "counters":
                continue
            total = values["successes"] + values["failures"]
            rate = values["successes"] / total * 100 if total else 0.0
            logger.info(
                f"MetricsSink: op={op} calls={values['calls']} avg_ms={values['avg_ms']} "
                f"max_ms={values['max_ms']} success_rate={rate:.1f}%"
            )
        if summary["counters"]:
            counters = " ".join(f"{k}={v}" for k, v in sorted(summary["counters"].items()))
            logger.info(f"MetricsSink: counters {counters}")
        with self._lock:
            self._timings.clear()
            self._counts.clear()
            self._successes.clear()
            self._failures.clear()
        return summary
