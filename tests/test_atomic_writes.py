"""
Tests for atomic file writing with fsync to prevent corruption.
"""
from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from storage import atomic
from storage.atomic import atomic_write_bytes, atomic_write_text


def _mode(path: Path) -> int:
    return stat.S_IMODE(path.stat().st_mode)


class TestAtomicWriteText:
    """Test atomic_write_text functionality."""

    def test_creates_file(self, tmp_path):
        path = tmp_path / "token"
        atomic_write_text(path, "tok.thumbprint")
        assert path.read_text() == "tok.thumbprint"

    def test_overwrites_existing(self, tmp_path):
        path = tmp_path / "token"
        path.write_text("old content")
        atomic_write_text(path, "new content")
        assert path.read_text() == "new content"

    def test_no_temp_file_left(self, tmp_path):
        """Only the target file remains after a successful write."""
        path = tmp_path / "token"
        atomic_write_text(path, "content")
        assert [p.name for p in tmp_path.iterdir()] == ["token"]

    def test_creates_parent_dirs(self, tmp_path):
        path = tmp_path / ".well-known" / "acme-challenge" / "token"
        atomic_write_text(path, "content")
        assert path.read_text() == "content"


class TestAtomicWriteBytes:
    """Test atomic_write_bytes functionality."""

    def test_default_mode_is_world_readable(self, tmp_path):
        path = tmp_path / "fullchain.pem"
        atomic_write_bytes(path, b"chain")
        assert _mode(path) == 0o644

    def test_private_mode_is_applied(self, tmp_path):
        path = tmp_path / "key.pem"
        atomic_write_bytes(path, b"secret", mode=0o600)
        assert _mode(path) == 0o600

    def test_replacing_file_takes_new_mode(self, tmp_path):
        path = tmp_path / "key.pem"
        path.write_bytes(b"old")
        path.chmod(0o666)
        atomic_write_bytes(path, b"new", mode=0o600)
        assert path.read_bytes() == b"new"
        assert _mode(path) == 0o600

    def test_failed_rename_keeps_old_content_and_cleans_temp(self, tmp_path, monkeypatch):
        path = tmp_path / "fullchain.pem"
        path.write_bytes(b"old chain")

        def failing_replace(src, dst):
            raise OSError("simulated rename failure")

        monkeypatch.setattr(atomic.os, "replace", failing_replace)

        with pytest.raises(OSError):
            atomic_write_bytes(path, b"new chain")

        assert path.read_bytes() == b"old chain"
        assert list(tmp_path.glob(".*.tmp")) == []

    def test_parent_that_is_a_file_raises(self, tmp_path):
        blocker = tmp_path / "ssl"
        blocker.write_text("not a directory")
        with pytest.raises(OSError):
            atomic_write_bytes(blocker / "fullchain.pem", b"chain")


class TestAtomicWriteIntegration:
    """Integration tests for atomic writes in realistic scenarios."""

    def test_multiple_writes_to_same_dir(self, tmp_path):
        files = []
        for i in range(5):
            path = tmp_path / f"token{i}"
            atomic_write_text(path, f"content {i}")
            files.append(path)

        for i, path in enumerate(files):
            assert path.read_text() == f"content {i}"
        assert list(tmp_path.glob(".*.tmp")) == []

    def test_concurrent_writes_to_different_files(self, tmp_path):
        """Concurrent writes in one directory do not share temp files."""
        import concurrent.futures

        def write_file(i):
            path = tmp_path / f"concurrent{i}"
            atomic_write_text(path, f"content {i}")
            return path

        with concurrent.futures.ThreadPoolExecutor(max_workers=4) as executor:
            paths = list(executor.map(write_file, range(10)))

        for i, path in enumerate(paths):
            assert path.read_text() == f"content {i}"
        assert list(tmp_path.glob(".*.tmp")) == []
        assert len(os.listdir(tmp_path)) == 10
