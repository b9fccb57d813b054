#!filepath: chunkstat/config/app_config.py
import os

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

from .log_config import LogConfig
from .storage_config import StorageConfig
from .execution_config import ExecutionConfig, StatisticsConfig

# env var -> (section, key)
ENV_OVERRIDES = {
    "CHUNKSTAT_STORAGE_ROOT": ("storage", "root"),
    "CHUNKSTAT_STORAGE_BACKEND": ("storage", "backend"),
    "CHUNKSTAT_LOG_LEVEL": ("log", "level"),
    "CHUNKSTAT_MAX_WORKERS": ("execution", "max_workers"),
}


def package_root() -> str:
    """
    chunkstat/config/app_config.py → chunkstat/config → chunkstat
    """
    return os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


class AppConfig(BaseModel):
    log: LogConfig = LogConfig()
    storage: StorageConfig = StorageConfig()
    execution: ExecutionConfig = ExecutionConfig()
    statistics: StatisticsConfig = StatisticsConfig()

    @classmethod
    def load(cls, path: str | None = None, env_file: str | None = None) -> "AppConfig":
        """
        加载 YAML 配置 + .env
        - 默认使用 chunkstat/config/base.yml
        - CHUNKSTAT_* env vars win over the file
        """
        load_dotenv(env_file or os.path.join(os.getcwd(), ".env"))

        if path is None:
            path = os.path.join(package_root(), "config", "base.yml")

        if not os.path.exists(path):
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                raw.setdefault(section, {})[key] = value

        return cls(**raw)
