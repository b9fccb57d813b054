#!filepath: chunkstat/config/storage_config.py
from enum import Enum

from pydantic import BaseModel, Field


class StorageBackend(str, Enum):
    MEMORY = "memory"
    FILE = "file"


class RetryConfig(BaseModel):
    max_attempts: int = Field(default=4, ge=1)
    delay: float = Field(default=0.05, ge=0)
    backoff: float = Field(default=2.0, ge=1)
    jitter: bool = True


class StorageConfig(BaseModel):
    backend: StorageBackend = StorageBackend.MEMORY
    root: str = "data/backing"
    # default parent directory for save() without an explicit location
    saved_root: str = "data/saved"
    # fixed per-identity header overhead C used by size_of
    header_bytes: int = Field(default=16, ge=0)
    write_wait_timeout: float = Field(default=30.0, gt=0)
    retry: RetryConfig = RetryConfig()
