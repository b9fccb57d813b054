#!filepath: chunkstat/observability/instrumentation.py
from __future__ import annotations

import threading
from collections import OrderedDict
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from typing import Dict

from chunkstat.observability.timer import Timer
from chunkstat.utils.logger import logs


@dataclass
class Instrumentation:
    """
    Per-chunk timeline of one or more reductions.

    1. Only record=True timers (leaves, one per chunk range) land in the
       timeline; record=False timers are pure scopes with no side effects
    2. Leaves may carry a row count, so `report()` can give rows/s
    3. Nothing here logs on the hot path; `report()` is the cold path

    Workers time leaves concurrently; the timeline is lock-protected and the
    underlying Timer is scoped per thread.
    """

    enabled: bool = True

    def __post_init__(self):
        self._timer = Timer(enabled=self.enabled)
        self._lock = threading.Lock()
        self.timeline: Dict[str, float] = OrderedDict()
        self.rows: Dict[str, int] = {}

    def timer(self, name: str, *, record: bool = True, rows: int | None = None):
        if not self.enabled:
            return nullcontext()
        return self._leaf(name, record, rows)

    @contextmanager
    def _leaf(self, name: str, record: bool, rows: int | None):
        self._timer.start(name)
        try:
            yield
        finally:
            elapsed = self._timer.end(name)
            if record:
                with self._lock:
                    self.timeline[name] = elapsed
                    if rows is not None:
                        self.rows[name] = rows

    @property
    def total_seconds(self) -> float:
        with self._lock:
            return sum(self.timeline.values())

    def reset(self) -> None:
        with self._lock:
            self.timeline.clear()
            self.rows.clear()

    def report(self, title: str = "chunks") -> None:
        with self._lock:
            items = list(self.timeline.items())
            total_rows = sum(self.rows.values())
        if not items:
            logs.info(f"[Timeline] {title}: nothing recorded")
            return

        total = sum(v for _, v in items)
        slowest = max(items, key=lambda kv: kv[1])
        rate = f", {total_rows / total:,.0f} rows/s" if total_rows and total > 0 else ""
        logs.info(
            f"[Timeline] {title}: {len(items)} leaves, total={total:.4f}s{rate}, "
            f"slowest={slowest[0]} ({slowest[1]:.4f}s)"
        )
