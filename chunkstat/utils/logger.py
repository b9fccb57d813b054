#!filepath: chunkstat/utils/logger.py
import os
from functools import wraps
from time import perf_counter
from typing import Callable, Optional

from loguru import logger

from chunkstat.config.log_config import LogConfig

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<7} | {thread.name} | {message}"


class Logging:
    """
    Process-wide logger facade over loguru.
    ---------------------------------------
    - one rotating file sink, chunkstat_<date>.log
    - executor worker threads share the sink (enqueue=True)
    - `catch` decorator: log with traceback, re-raise, optional timing
    ---------------------------------------
    Messages carry a bracketed component tag: [ChunkExecutor], [Container] ...
    """

    def __init__(self, config: Optional[LogConfig] = None):
        self.config = config or LogConfig()
        self._configure()

    def _configure(self) -> None:
        cfg = self.config
        os.makedirs(cfg.dir, exist_ok=True)

        logger.remove()
        logger.add(
            sink=os.path.join(cfg.dir, "chunkstat_{time:YYYY-MM-DD}.log"),
            rotation=cfg.rotation,
            retention=cfg.retention,
            level=cfg.level,
            format=LOG_FORMAT,
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )
        logger.debug(f"[Logging] sink ready dir={cfg.dir} level={cfg.level}")

    def configure(self, config: LogConfig) -> None:
        """Re-point the sink, e.g. after `AppConfig.load()`."""
        self.config = config
        self._configure()

    @property
    def log_dir(self) -> str:
        return self.config.dir

    # ---------- 基础接口 ----------
    def debug(self, msg: str, *args, **kwargs):
        logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        logger.error(msg, *args, **kwargs)

    # ---------- 日志装饰器 ----------
    def catch(self, msg: str = "failed", log_time: bool = True) -> Callable:
        """
        Public entry points only. Domain errors pass through unchanged;
        the traceback lands in the file sink once, at the outermost call.
        """

        def decorator(func: Callable):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start = perf_counter()
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    logger.opt(exception=e).error(f"[{func.__name__}] {msg}: {type(e).__name__}: {e}")
                    raise

                if log_time:
                    logger.info(f"[TIME] {func.__name__} took {perf_counter() - start:.4f}s")
                return result

            return wrapper

        return decorator


logs = Logging(LogConfig(dir=os.getenv("CHUNKSTAT_LOG_DIR", "logs")))
