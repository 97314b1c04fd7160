"""
HTTP-01 challenge responder (webroot style).

Writes the key-authorization for each token into a directory that an
already-running web server exposes as ``/.well-known/acme-challenge/``:

    location /.well-known/acme-challenge/ {
        root /usr/share/nginx/challenge;
    }

The agent and the web server only share this directory; nothing is served
from this process.
"""
from __future__ import annotations

import enum
import logging
import os
from pathlib import Path

from storage.atomic import DEFAULT_DIR_MODE, DEFAULT_FILE_MODE, atomic_write_text

logger = logging.getLogger(__name__)


class CleanupOutcome(enum.Enum):
    REMOVED = "removed"
    ALREADY_ABSENT = "already-absent"
    FAILED = "failed"

    @property
    def ok(self) -> bool:
        return self is not CleanupOutcome.FAILED


class WebrootChallengeResponder:
    """
    Publishes and removes HTTP-01 tokens under *base_path*.

    Called by the authority adapter during validation; *domain* is accepted
    for interface symmetry with other challenge types and only used in logs.
    """

    def __init__(self, base_path: str) -> None:
        self.base_path = Path(base_path)

    def token_path(self, token: str) -> Path:
        # Tokens are base64url per RFC 8555 §8.3; anything else could escape base_path
        if not token or "/" in token or "\\" in token or token in (".", ".."):
            raise ValueError(f"invalid challenge token: {token!r}")
        return self.base_path / token

    def present(self, domain: str, token: str, key_authorization: str) -> Path:
        """
        Write *key_authorization* as the full content of ``<base_path>/<token>``.

        Raises OSError if the directory or file cannot be written; the
        validation attempt for *domain* must not proceed in that case.
        """
        path = self.token_path(token)
        self.base_path.mkdir(mode=DEFAULT_DIR_MODE, parents=True, exist_ok=True)
        atomic_write_text(path, key_authorization, mode=DEFAULT_FILE_MODE)
        logger.info("Published challenge token %s for %s", token, domain)
        return path

    def cleanup(self, domain: str, token: str, key_authorization: str = "") -> CleanupOutcome:
        """
        Remove the token file.

        A file that is already gone counts as success.  Any other failure is
        logged and reported as ``CleanupOutcome.FAILED`` rather than raised,
        so it never undoes an issuance that already happened.
        """
        path = self.token_path(token)
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.debug("Challenge token %s for %s was already removed", token, domain)
            return CleanupOutcome.ALREADY_ABSENT
        except OSError as exc:
            logger.warning("Failed to remove challenge token %s for %s: %s", path, domain, exc)
            return CleanupOutcome.FAILED

        logger.info("Removed challenge token %s for %s", token, domain)
        return CleanupOutcome.REMOVED
