#!filepath: chunkstat/storage/buffers.py
from __future__ import annotations

import threading
import weakref

import numpy as np


class ResidentMemory:
    """
    Process-wide ledger of live chunk buffers handed out by `read_chunk`.

    A buffer is counted from `track()` until the array is garbage collected,
    so reclamation here is deferred; only the durable backing store is
    released deterministically.
    """

    _lock = threading.Lock()
    _bytes: int = 0
    _buffers: int = 0

    @classmethod
    def track(cls, array: np.ndarray) -> np.ndarray:
        nbytes = int(array.nbytes)
        with cls._lock:
            cls._bytes += nbytes
            cls._buffers += 1
        weakref.finalize(array, cls._untrack, nbytes)
        return array

    @classmethod
    def _untrack(cls, nbytes: int) -> None:
        with cls._lock:
            cls._bytes -= nbytes
            cls._buffers -= 1

    @classmethod
    def current(cls) -> int:
        with cls._lock:
            return cls._bytes

    @classmethod
    def live_buffers(cls) -> int:
        with cls._lock:
            return cls._buffers
