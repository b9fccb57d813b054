#!filepath: tests/utils/test_filesystem_utils.py
from chunkstat.utils.filesystem import FileSystem


def test_ensure_dir_creates_parents(tmp_path):
    p = FileSystem.ensure_dir(tmp_path / "a" / "b")
    assert p.is_dir()
    assert FileSystem.ensure_dir(p) == p


def test_safe_write_replaces_atomically(tmp_path):
    target = tmp_path / "sub" / "manifest.json"
    FileSystem.safe_write(target, b"one")
    FileSystem.safe_write(target, b"two")

    assert target.read_bytes() == b"two"
    assert not (tmp_path / "sub" / "manifest.json.tmp").exists()


def test_file_size_and_remove(tmp_path):
    f = tmp_path / "data.bin"
    assert FileSystem.get_file_size(f) == 0

    f.write_bytes(b"12345")
    assert FileSystem.get_file_size(f) == 5

    FileSystem.remove(f)
    assert not f.exists()
    FileSystem.remove(f)  # already gone

    d = FileSystem.ensure_dir(tmp_path / "dir")
    (d / "x").write_bytes(b"x")
    FileSystem.remove(d)
    assert not d.exists()


def test_atomic_writer_leaves_nothing_on_failure(tmp_path):
    target = tmp_path / "data.bin"

    try:
        with FileSystem.atomic_writer(target) as f:
            f.write(b"partial")
            raise RuntimeError("reader died")
    except RuntimeError:
        pass

    assert not target.exists()
    assert not (tmp_path / "data.bin.tmp").exists()


def test_atomic_writer_streams(tmp_path):
    target = tmp_path / "out" / "data.bin"
    with FileSystem.atomic_writer(target) as f:
        for block in (b"ab", b"cd"):
            f.write(block)
    assert target.read_bytes() == b"abcd"
