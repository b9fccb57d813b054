#!filepath: chunkstat/config/execution_config.py
from typing import Optional

from pydantic import BaseModel, Field


class ExecutionConfig(BaseModel):
    max_workers: Optional[int] = Field(default=1, ge=1)
    default_chunk_size: int = Field(default=65_536, ge=1)
    timeout: Optional[float] = Field(default=None, gt=0)
    # per-chunk timeline, reported after every reduction
    instrument: bool = False


class StatisticsConfig(BaseModel):
    median_bins: int = Field(default=1024, ge=2)
    # exact median: collect the candidate bin once it holds at most this many values
    median_collect_limit: int = Field(default=65_536, ge=1)
    pivot_tolerance: float = Field(default=1e-10, gt=0)
