#!filepath: chunkstat/aggregators/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

import numpy as np

from chunkstat.utils.errors import InvalidArgument

State = TypeVar("State")
Result = TypeVar("Result")


class Accumulator(ABC, Generic[State, Result]):
    """
    Accumulator 抽象基类

    - 不做任何 I/O（the executor reads chunks and hands them in）
    - absorb / combine return NEW states; inputs are never mutated, so one
      state may be shared by several partial results without copying
    - combine MUST be associative and commutative: the final value cannot
      depend on how rows were partitioned or in which order partials merge
    - finalize consumes the state once
    """

    @abstractmethod
    def initial_state(self) -> State:
        ...

    @abstractmethod
    def absorb(self, state: State, chunk: np.ndarray) -> State:
        ...

    @abstractmethod
    def combine(self, a: State, b: State) -> State:
        ...

    @abstractmethod
    def finalize(self, state: State) -> Result:
        ...

    @property
    def name(self) -> str:
        return self.__class__.__name__


class ColumnAccumulator(Accumulator[State, Result], ABC):
    """
    Accumulator over one numeric column.

    Chunks arrive either 1-D or 2-D (rows x cols); `column` picks the
    column of a 2-D chunk. Values are promoted to float64 and checked for NaN.
    """

    def __init__(self, column: int | None = None):
        self.column = column

    def values(self, chunk: np.ndarray) -> np.ndarray:
        arr = np.asarray(chunk)
        if arr.ndim == 2:
            if self.column is None:
                raise InvalidArgument(f"{self.name}: column is required for 2-D chunks")
            arr = arr[:, self.column]
        elif arr.ndim != 1:
            raise InvalidArgument(f"{self.name}: expected 1-D or 2-D chunk, got ndim={arr.ndim}")

        arr = arr.astype(np.float64, copy=False)
        if arr.size and np.isnan(arr).any():
            raise InvalidArgument(f"{self.name}: NaN values are not supported")
        return arr
