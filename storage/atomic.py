"""
Atomic file writing with fsync, used for PEM files and challenge tokens.

Pattern:
  1. Write to a temporary file in the destination directory
  2. fsync, then set the final permission bits on the temp file
  3. Rename over the destination (atomic on POSIX filesystems)

Readers (nginx, the ACME validation request) therefore see either the old
file or the complete new one, never a partial write, and a private key is
never visible with looser permissions than requested.
"""
from __future__ import annotations

import os
import tempfile
from pathlib import Path

DEFAULT_FILE_MODE = 0o644
DEFAULT_DIR_MODE = 0o755


def atomic_write_bytes(
    path: Path,
    content: bytes,
    mode: int = DEFAULT_FILE_MODE,
    dir_mode: int = DEFAULT_DIR_MODE,
) -> None:
    """
    Atomically replace *path* with *content* and permission bits *mode*.

    Missing parent directories are created with *dir_mode*.
    """
    path = Path(path)
    path.parent.mkdir(mode=dir_mode, parents=True, exist_ok=True)

    # mkstemp creates the file 0o600, so secrets are never briefly world-readable
    fd, temp_path = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
            os.fchmod(f.fileno(), mode)

        os.replace(temp_path, path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


def atomic_write_text(
    path: Path,
    content: str,
    mode: int = DEFAULT_FILE_MODE,
    encoding: str = "utf-8",
) -> None:
    """Text wrapper around :func:`atomic_write_bytes`."""
    atomic_write_bytes(path, content.encode(encoding), mode=mode)
