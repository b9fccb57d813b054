# chunkstat/chunking/executor.py
from __future__ import annotations

import os
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Iterable, Optional

from chunkstat.aggregators.base import Accumulator
from chunkstat.chunking.types import ChunkRange
from chunkstat.observability.instrumentation import Instrumentation
from chunkstat.storage.container import ContainerHandle, ContainerStore
from chunkstat.utils.errors import (
    ChunkProcessingError,
    ChunkStatError,
    InvalidArgument,
    RangeOutOfBounds,
    ReductionCancelled,
)
from chunkstat.utils.logger import logs

_NO_STATE = object()


class CancelToken:
    """Cooperative cancellation, checked by workers between chunk steps."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ReductionCancelled(self.reason or "cancelled")


class ChunkExecutor:
    """
    ChunkExecutor

    - one fresh accumulator state per range (workers never share state)
    - read_chunk → absorb, per range, on 1..N worker threads
    - partial states merged by the coordinator thread only, pairwise tree
      in range order
    - all-or-nothing: the first failure aborts the pass and every partial
      state is dropped; ChunkProcessingError{range, cause} is raised
    - the container is held read-only (ContainerStore.reading) for the pass
    """

    def __init__(
        self,
        store: ContainerStore,
        *,
        max_workers: int | None = 1,
        timeout: float | None = None,
        inst: Instrumentation | None = None,
    ):
        if max_workers is not None and max_workers < 1:
            raise InvalidArgument(f"max_workers must be >= 1, got {max_workers}")
        if timeout is not None and timeout <= 0:
            raise InvalidArgument(f"timeout must be > 0, got {timeout}")

        self.store = store
        self.max_workers = max_workers
        self.timeout = timeout
        self.inst = inst if inst is not None else Instrumentation(enabled=False)

    # --------------------------------------------------
    def run(
        self,
        handle: ContainerHandle,
        ranges: Iterable[ChunkRange],
        accumulator: Accumulator,
        initial_state: Any = _NO_STATE,
        *,
        cancel: CancelToken | None = None,
    ) -> Any:
        ranges = self._validate_ranges(handle, ranges)
        token = cancel or CancelToken()
        deadline = None if self.timeout is None else time.monotonic() + self.timeout

        logs.info(
            f"[ChunkExecutor] start {accumulator.name} "
            f"identity={handle.identity} chunks={len(ranges)}"
        )

        with self.store.reading(handle):
            workers = self._resolve_workers(ranges)
            if workers <= 1:
                partials = self._run_sequential(handle, ranges, accumulator, token, deadline)
            else:
                partials = self._run_parallel(handle, ranges, accumulator, token, deadline, workers)

        state = self._tree_combine(accumulator, partials)

        if initial_state is not _NO_STATE:
            if state is _NO_STATE:
                state = initial_state
            else:
                span = partials[0][0].span(partials[-1][0])
                state = self._combine(accumulator, initial_state, state, span)
        elif state is _NO_STATE:
            state = accumulator.initial_state()

        logs.info(f"[ChunkExecutor] done {accumulator.name} identity={handle.identity}")
        return state

    # ---------------- internal ----------------

    def _resolve_workers(self, ranges: list[ChunkRange]) -> int:
        if not ranges:
            return 1
        cpu = os.cpu_count() or 1
        if self.max_workers is None:
            return min(cpu, len(ranges))
        return max(1, min(self.max_workers, len(ranges)))

    @staticmethod
    def _validate_ranges(handle: ContainerHandle, ranges: Iterable[ChunkRange]) -> list[ChunkRange]:
        ranges = [r if isinstance(r, ChunkRange) else ChunkRange(*r) for r in ranges]
        for rng in ranges:
            if rng.end > handle.rows:
                raise RangeOutOfBounds(rng, handle.shape)

        ordered = sorted(ranges)
        for prev, cur in zip(ordered, ordered[1:]):
            if cur.start < prev.end:
                raise InvalidArgument(f"ranges {prev} and {cur} overlap")
        return ranges

    def _check(self, token: CancelToken, deadline: float | None) -> None:
        if deadline is not None and time.monotonic() >= deadline:
            token.cancel(f"timed out after {self.timeout}s")
        token.raise_if_cancelled()

    def _absorb_range(
        self,
        handle: ContainerHandle,
        rng: ChunkRange,
        accumulator: Accumulator,
        token: CancelToken,
        deadline: float | None,
    ) -> Any:
        self._check(token, deadline)

        with self.inst.timer(f"{accumulator.name}{rng}", rows=len(rng)):
            chunk = self.store.read_chunk(handle, rng)
            self._check(token, deadline)
            try:
                return accumulator.absorb(accumulator.initial_state(), chunk)
            except Exception as e:
                raise ChunkProcessingError(rng, e) from e

    def _run_sequential(self, handle, ranges, accumulator, token, deadline) -> list[tuple[ChunkRange, Any]]:
        try:
            return [
                (rng, self._absorb_range(handle, rng, accumulator, token, deadline))
                for rng in ranges
            ]
        except ChunkStatError as e:
            self._log_abort(accumulator, e)
            raise

    def _run_parallel(self, handle, ranges, accumulator, token, deadline, workers) -> list[tuple[ChunkRange, Any]]:
        logs.info(f"[ChunkExecutor] run parallel | workers={workers}")

        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="chunkstat")
        futures = {
            pool.submit(self._absorb_range, handle, rng, accumulator, token, deadline): i
            for i, rng in enumerate(ranges)
        }
        try:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            done, pending = wait(futures, timeout=remaining, return_when=FIRST_EXCEPTION)

            if pending and not any(f.exception() is not None for f in done):
                token.cancel(f"timed out after {self.timeout}s")
                raise ReductionCancelled(token.reason)

            # 第一个失败即整体失败 (lowest range index wins for a stable report)
            for fut, _ in sorted(futures.items(), key=lambda kv: kv[1]):
                if fut in done and fut.exception() is not None:
                    raise fut.exception()

            results: list[Any] = [None] * len(ranges)
            for fut, i in futures.items():
                results[i] = fut.result()
            return list(zip(ranges, results))

        except BaseException as e:
            token.cancel(f"aborted: {type(e).__name__}")
            if isinstance(e, ChunkStatError):
                self._log_abort(accumulator, e)
            raise
        finally:
            pool.shutdown(wait=True, cancel_futures=True)

    def _tree_combine(self, accumulator: Accumulator, partials: list[tuple[ChunkRange, Any]]) -> Any:
        if not partials:
            return _NO_STATE

        level = list(partials)
        while len(level) > 1:
            merged = []
            for i in range(0, len(level) - 1, 2):
                (ra, sa), (rb, sb) = level[i], level[i + 1]
                span = ra.span(rb)
                merged.append((span, self._combine(accumulator, sa, sb, span)))
            if len(level) % 2:
                merged.append(level[-1])
            level = merged

        return level[0][1]

    def _combine(self, accumulator: Accumulator, a: Any, b: Any, span: ChunkRange) -> Any:
        try:
            return accumulator.combine(a, b)
        except Exception as e:
            err = ChunkProcessingError(span, e)
            self._log_abort(accumulator, err)
            raise err from e

    @staticmethod
    def _log_abort(accumulator: Accumulator, err: Exception) -> None:
        logs.error(f"[ChunkExecutor] {accumulator.name} aborted, partial state discarded: {err}")
