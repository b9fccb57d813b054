#!filepath: chunkstat/observability/timer.py
import threading
import time
from typing import Dict


class Timer:
    """
    高精度计时器（thread-aware）
    - start(name)
    - end(name) → elapsed seconds

    Keys are scoped per thread so concurrent chunk workers may time the
    same name without clobbering each other.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._start: Dict[tuple, float] = {}
        self._lock = threading.Lock()

    def start(self, name: str):
        if not self.enabled:
            return
        with self._lock:
            self._start[(threading.get_ident(), name)] = time.perf_counter()

    def end(self, name: str) -> float:
        if not self.enabled:
            return 0.0
        with self._lock:
            started = self._start.pop((threading.get_ident(), name), None)
        if started is None:
            return 0.0
        return time.perf_counter() - started
