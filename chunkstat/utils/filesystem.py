#!filepath: chunkstat/utils/filesystem.py
import os
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator

from chunkstat.utils.logger import logs


class FileSystem:
    """
    文件系统工具
    - ensure_dir      目录不存在则创建
    - atomic_writer   <path>.tmp → fsync → rename; 失败时删除 tmp
    - remove          文件或目录
    """

    @staticmethod
    def ensure_dir(path: str | Path) -> Path:
        p = Path(path)
        if not p.is_dir():
            p.mkdir(parents=True, exist_ok=True)
            logs.debug(f"[FS] created dir: {p}")
        return p

    @staticmethod
    def get_file_size(path: str | Path) -> int:
        """0 for a missing file."""
        try:
            return Path(path).stat().st_size
        except FileNotFoundError:
            return 0

    @staticmethod
    @contextmanager
    def atomic_writer(path: str | Path) -> Iterator[BinaryIO]:
        """
        Stream into <path>.tmp; the target only appears, complete, on clean
        exit. Readers never observe a partially written file.
        """
        path = Path(path)
        FileSystem.ensure_dir(path.parent)
        tmp_path = path.with_name(path.name + ".tmp")

        try:
            with open(tmp_path, "wb") as f:
                yield f
                f.flush()
                os.fsync(f.fileno())
            tmp_path.replace(path)
        except BaseException:
            FileSystem.remove(tmp_path)
            raise
        logs.debug(f"[FS] atomic write done: {path}")

    @staticmethod
    def safe_write(path: str | Path, data: bytes) -> None:
        with FileSystem.atomic_writer(path) as f:
            f.write(data)

    @staticmethod
    def remove(path: str | Path) -> None:
        p = Path(path)
        if p.is_dir():
            shutil.rmtree(p)
        elif p.exists():
            p.unlink()
        else:
            return
        logs.debug(f"[FS] removed: {p}")
