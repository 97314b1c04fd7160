"""
PEM filesystem storage for the managed certificate.

Two files, both configurable:
  CERT_PATH  — full chain (leaf + intermediates), mode 0o644 so the web
               server can read it
  KEY_PATH   — certificate private key, mode 0o600

All writes are atomic: temp file + fsync + atomic rename.
"""
from __future__ import annotations

import logging
import stat
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from agent.errors import PersistenceError
from storage.atomic import atomic_write_bytes

if TYPE_CHECKING:
    from agent.issuance import IssuedCertificate

logger = logging.getLogger(__name__)

CERT_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP | stat.S_IROTH  # 0o644
KEY_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR  # 0o600


def read_certificate_pem(cert_path: str) -> Optional[bytes]:
    """
    Return the raw bytes at *cert_path*, or None if the file does not exist.

    Other I/O errors (permission denied, path is a directory) propagate.
    """
    try:
        return Path(cert_path).read_bytes()
    except FileNotFoundError:
        return None


def save_certificate_and_key(
    issued: IssuedCertificate,
    cert_path: str,
    key_path: str,
) -> None:
    """
    Write the certificate chain and its private key.

    The certificate goes first: if the key write then fails the run aborts
    before any reload, so the running service keeps serving its old pair.
    """
    try:
        atomic_write_bytes(Path(cert_path), issued.certificate, mode=CERT_FILE_MODE)
    except OSError as exc:
        raise PersistenceError(f"saving certificate to {cert_path}: {exc}") from exc

    try:
        atomic_write_bytes(Path(key_path), issued.private_key, mode=KEY_FILE_MODE)
    except OSError as exc:
        raise PersistenceError(f"saving private key to {key_path}: {exc}") from exc

    logger.info("Wrote certificate to %s and private key to %s", cert_path, key_path)
