#!filepath: chunkstat/api.py
from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

import pandas as pd

from chunkstat.aggregators.base import Accumulator
from chunkstat.aggregators.mean import MeanAccumulator
from chunkstat.aggregators.median import ApproxMedian, ExactMedian
from chunkstat.aggregators.variance import StdAccumulator, VarianceAccumulator
from chunkstat.chunking.executor import CancelToken, ChunkExecutor
from chunkstat.chunking.planner import Partition, plan
from chunkstat.chunking.types import ChunkRange
from chunkstat.config.app_config import AppConfig
from chunkstat.io import delimited, persist
from chunkstat.observability.instrumentation import Instrumentation
from chunkstat.regression.engine import CholeskyRegression, LinearModelResult
from chunkstat.storage.buffers import ResidentMemory
from chunkstat.storage.container import ContainerHandle, ContainerStore
from chunkstat.utils.errors import InvalidArgument
from chunkstat.utils.logger import logs


class Statistic(str, Enum):
    MEAN = "mean"
    VARIANCE = "variance"
    STD = "std"
    MEDIAN_EXACT = "median_exact"
    MEDIAN_APPROX = "median_approx"

    @classmethod
    def parse(cls, value: "Statistic | str") -> "Statistic":
        try:
            return cls(value)
        except ValueError:
            raise InvalidArgument(
                f"unknown statistic {value!r}; expected one of {[s.value for s in cls]}"
            ) from None


class ChunkStat:
    """
    Out-of-core statistics facade.

    Owns one ContainerStore (built from config.storage) and runs every
    reduction through a ChunkExecutor over planner ranges.

        cs = ChunkStat(AppConfig())
        h = cs.open("prices.csv")
        cs.aggregate(h, "close", "mean", partition={"chunk_count": 8})
        cs.fit_linear_model(h, "close", ["open", "volume"])
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        store: ContainerStore | None = None,
        configure_logging: bool = False,
    ):
        self.config = config or AppConfig.load()
        if configure_logging:
            logs.configure(self.config.log)

        self.store = store or ContainerStore.from_config(self.config.storage)
        self.inst = Instrumentation() if self.config.execution.instrument else None

    # --------------------------------------------------
    # containers
    # --------------------------------------------------
    def open(
        self,
        path: str | Path,
        format: str = "csv",
        dtype_hints: Optional[Mapping[str, Any]] = None,
        **kwargs,
    ) -> ContainerHandle:
        return delimited.open_delimited(self.store, path, format, dtype_hints, **kwargs)

    def from_array(self, array: Any, *, columns: Optional[Sequence[str]] = None) -> ContainerHandle:
        return delimited.from_array(
            self.store, array, columns=columns, chunk_rows=self.config.execution.default_chunk_size
        )

    def from_frame(self, df: pd.DataFrame, *, dtype: Any = None) -> ContainerHandle:
        return delimited.from_frame(
            self.store, df, dtype=dtype, chunk_rows=self.config.execution.default_chunk_size
        )

    def alias(self, handle: ContainerHandle) -> ContainerHandle:
        return self.store.alias(handle)

    def release(self, handle: ContainerHandle) -> None:
        self.store.release(handle)

    def save(self, handle: ContainerHandle, location: str | Path | None = None) -> Path:
        return persist.save(
            self.store,
            handle,
            location,
            chunk_rows=self.config.execution.default_chunk_size,
            root=self.config.storage.saved_root,
        )

    def load(self, location: str | Path) -> ContainerHandle:
        return persist.load(self.store, location, chunk_rows=self.config.execution.default_chunk_size)

    def size_of(self, *handles: Any) -> int:
        return self.store.size_of(*handles)

    @staticmethod
    def resident_memory() -> int:
        return ResidentMemory.current()

    # --------------------------------------------------
    # reductions
    # --------------------------------------------------
    def plan(self, handle: ContainerHandle, partition: Any = None) -> list[ChunkRange]:
        if partition is None:
            partition = Partition(chunk_size=self.config.execution.default_chunk_size)
        return plan(handle.rows, Partition.parse(partition))

    def executor(self, max_workers: int | None = None) -> ChunkExecutor:
        execution = self.config.execution
        return ChunkExecutor(
            self.store,
            max_workers=max_workers or execution.max_workers,
            timeout=execution.timeout,
            inst=self.inst,
        )

    def reduce(
        self,
        handle: ContainerHandle,
        accumulator: Accumulator,
        partition: Any = None,
        *,
        max_workers: int | None = None,
        cancel: CancelToken | None = None,
    ) -> Any:
        """One chunked pass: plan → execute → finalize."""
        ranges = self.plan(handle, partition)
        if self.inst is not None:
            self.inst.reset()
        state = self.executor(max_workers).run(handle, ranges, accumulator, cancel=cancel)
        if self.inst is not None:
            self.inst.report(accumulator.name)
        return accumulator.finalize(state)

    @logs.catch(msg="aggregate failed")
    def aggregate(
        self,
        handle: ContainerHandle,
        column: int | str | None,
        statistic: Statistic | str,
        partition: Any = None,
        *,
        max_workers: int | None = None,
        cancel: CancelToken | None = None,
        bins: int | None = None,
        value_range: Optional[tuple[float, float]] = None,
        ddof: int = 1,
    ) -> float:
        stat = Statistic.parse(statistic)
        col = self.store.column_index(handle, column)
        ranges = self.plan(handle, partition)
        executor = self.executor(max_workers)
        stats_cfg = self.config.statistics

        def run_pass(acc: Accumulator) -> Any:
            return executor.run(handle, ranges, acc, cancel=cancel)

        logs.info(f"[aggregate] {stat.value} column={column!r} identity={handle.identity} chunks={len(ranges)}")

        if self.inst is not None:
            self.inst.reset()

        # one read hold across every pass: medians take several
        with self.store.reading(handle):
            if stat is Statistic.MEDIAN_EXACT:
                value = ExactMedian(
                    col,
                    bins=bins or stats_cfg.median_bins,
                    collect_limit=stats_cfg.median_collect_limit,
                ).compute(run_pass)
            elif stat is Statistic.MEDIAN_APPROX:
                value = ApproxMedian(
                    col, bins=bins or stats_cfg.median_bins, value_range=value_range
                ).compute(run_pass)
            else:
                if stat is Statistic.MEAN:
                    acc: Accumulator = MeanAccumulator(col)
                elif stat is Statistic.VARIANCE:
                    acc = VarianceAccumulator(col, ddof=ddof)
                else:
                    acc = StdAccumulator(col, ddof=ddof)
                value = acc.finalize(run_pass(acc))

        if self.inst is not None:
            self.inst.report(stat.value)
        return value

    @logs.catch(msg="fit_linear_model failed")
    def fit_linear_model(
        self,
        handle: ContainerHandle,
        response_column: int | str,
        predictor_columns: Sequence[int | str],
        partition: Any = None,
        ridge: float = 0.0,
        *,
        max_workers: int | None = None,
        cancel: CancelToken | None = None,
    ) -> LinearModelResult:
        if len(handle.shape) != 2:
            raise InvalidArgument("fit_linear_model needs a 2-D (rows x cols) container")
        if isinstance(predictor_columns, (str, int)):
            predictor_columns = [predictor_columns]

        response = self.store.column_index(handle, response_column)
        predictors = [self.store.column_index(handle, c) for c in predictor_columns]
        names = [
            handle.columns[i] if handle.columns is not None else f"x{i}"
            for i in predictors
        ]

        model = CholeskyRegression(
            predictors,
            response,
            ridge=ridge,
            tolerance=self.config.statistics.pivot_tolerance,
            names=names,
        )
        return self.reduce(handle, model, partition, max_workers=max_workers, cancel=cancel)


# --------------------------------------------------
# module-level facade over a lazily built default engine
# --------------------------------------------------
_default: Optional[ChunkStat] = None


def default_engine() -> ChunkStat:
    global _default
    if _default is None:
        _default = ChunkStat()
    return _default


def set_default_engine(engine: Optional[ChunkStat]) -> None:
    global _default
    _default = engine


def open(path: str | Path, format: str = "csv", dtype_hints: Optional[Mapping[str, Any]] = None, **kwargs) -> ContainerHandle:
    return default_engine().open(path, format, dtype_hints, **kwargs)


def save(handle: ContainerHandle, location: str | Path | None = None) -> Path:
    return default_engine().save(handle, location)


def load(location: str | Path) -> ContainerHandle:
    return default_engine().load(location)


def aggregate(handle: ContainerHandle, column: Any, statistic: Statistic | str, partition: Any = None, **kwargs) -> float:
    return default_engine().aggregate(handle, column, statistic, partition, **kwargs)


def fit_linear_model(
    handle: ContainerHandle,
    response_column: int | str,
    predictor_columns: Sequence[int | str],
    partition: Any = None,
    ridge: float = 0.0,
    **kwargs,
) -> LinearModelResult:
    return default_engine().fit_linear_model(
        handle, response_column, predictor_columns, partition, ridge, **kwargs
    )


def size_of(*handles: Any) -> int:
    return default_engine().size_of(*handles)


def resident_memory() -> int:
    return ResidentMemory.current()
