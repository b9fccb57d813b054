#!filepath: chunkstat/utils/retry.py
import time
import random
from functools import wraps
from typing import Callable, Iterator, Tuple, Type

from chunkstat.utils.logger import logs


class Retry:
    """
    有界重试策略：指数退避 + 可选 jitter。

        policy = Retry.from_config(storage.retry, exceptions=(OSError,))
        data = policy.call(f.read, n)

    The last failure is re-raised unchanged; callers translate it into
    their own error type (see `storage.backing_store`). Nothing retries
    forever: at most `max_attempts` calls, `max_attempts - 1` sleeps.
    """

    def __init__(
        self,
        exceptions: Tuple[Type[Exception], ...] = (Exception,),
        max_attempts: int = 3,
        delay: float = 0.05,
        backoff: float = 2.0,
        jitter: bool = True,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if delay < 0 or backoff < 1:
            raise ValueError("delay must be >= 0 and backoff >= 1")
        self.exceptions = exceptions
        self.max_attempts = max_attempts
        self.delay = delay
        self.backoff = backoff
        self.jitter = jitter

    @classmethod
    def from_config(cls, config, exceptions: Tuple[Type[Exception], ...] = (OSError,)) -> "Retry":
        """Build from a `RetryConfig` (max_attempts / delay / backoff / jitter)."""
        return cls(
            exceptions,
            max_attempts=config.max_attempts,
            delay=config.delay,
            backoff=config.backoff,
            jitter=config.jitter,
        )

    def delays(self) -> Iterator[float]:
        """Sleep before attempt 2, 3, ...: delay * backoff^k, ±20% with jitter."""
        wait = self.delay
        while True:
            yield wait * random.uniform(0.8, 1.2) if self.jitter else wait
            wait *= self.backoff

    def call(self, func: Callable, *args, **kwargs):
        name = getattr(func, "__name__", repr(func))
        waits = self.delays()

        for attempt in range(1, self.max_attempts + 1):
            try:
                return func(*args, **kwargs)
            except self.exceptions as e:
                if attempt == self.max_attempts:
                    logs.error(f"[Retry] {name} failed after {self.max_attempts} attempts: {e}")
                    raise

                wait = next(waits)
                logs.warning(
                    f"[Retry] {name} attempt {attempt}/{self.max_attempts} failed: {e}. "
                    f"retrying in {wait:.3f}s"
                )
                time.sleep(wait)

    def wrap(self, func: Callable) -> Callable:
        @wraps(func)
        def inner(*args, **kwargs):
            return self.call(func, *args, **kwargs)

        return inner

    # ---------- 一次性调用 ----------
    @staticmethod
    def run(
        func: Callable,
        *args,
        exceptions: Tuple[Type[Exception], ...] = (Exception,),
        max_attempts: int = 3,
        delay: float = 0.05,
        backoff: float = 2.0,
        jitter: bool = True,
        **kwargs,
    ):
        return Retry(exceptions, max_attempts, delay, backoff, jitter).call(func, *args, **kwargs)

    @staticmethod
    def decorator(
        exceptions: Tuple[Type[Exception], ...] = (Exception,),
        max_attempts: int = 3,
        delay: float = 0.05,
        backoff: float = 2.0,
        jitter: bool = True,
    ) -> Callable:
        return Retry(exceptions, max_attempts, delay, backoff, jitter).wrap
