"""
Shared pytest fixtures.

Certificate factory
-------------------
`make_cert` writes a self-signed PEM certificate with chosen SAN entries and
lifetime, so the decision engine can be exercised without a CA.

Settings patch
--------------
`agent_settings` mutates the module-level `config.settings` singleton so a
run reads and writes only under tmp_path, restoring the originals afterwards.
`pebble_settings` additionally points the agent at a local Pebble server.
"""
from __future__ import annotations

import datetime
import socket
from pathlib import Path
from typing import Callable, Sequence

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import ExtensionOID, NameOID


# ─── Pebble availability check ────────────────────────────────────────────────

def _pebble_running(host: str = "localhost", port: int = 14000) -> bool:
    """Return True if Pebble's ACME port is open."""
    try:
        with socket.create_connection((host, port), timeout=1):
            return True
    except OSError:
        return False


requires_pebble = pytest.mark.skipif(
    not _pebble_running(),
    reason="Pebble not running — start with: docker run -p 14000:14000 -e PEBBLE_VA_ALWAYS_VALID=1 ghcr.io/letsencrypt/pebble",
)


# ─── Certificates ─────────────────────────────────────────────────────────────

NOW = datetime.datetime(2026, 1, 15, 12, 0, 0, tzinfo=datetime.timezone.utc)


def build_cert_pem(
    dns_names: Sequence[str],
    not_after: datetime.datetime,
    not_before: datetime.datetime | None = None,
    common_name: str | None = None,
    raw_san: bytes | None = None,
) -> bytes:
    """
    Self-signed EC certificate.  *raw_san* replaces the subjectAltName with
    an undecoded extension carrying those bytes.
    """
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name or (dns_names[0] if dns_names else "test"))])
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before or (not_after - datetime.timedelta(days=90)))
        .not_valid_after(not_after)
    )
    if raw_san is not None:
        builder = builder.add_extension(
            x509.UnrecognizedExtension(ExtensionOID.SUBJECT_ALTERNATIVE_NAME, raw_san),
            critical=False,
        )
    elif dns_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(d) for d in dns_names]),
            critical=False,
        )
    cert = builder.sign(key, hashes.SHA256())
    return cert.public_bytes(Encoding.PEM)


@pytest.fixture()
def make_cert(tmp_path: Path) -> Callable[..., Path]:
    """Write a self-signed cert to tmp_path and return its path."""

    def _make(
        dns_names: Sequence[str],
        not_after: datetime.datetime,
        filename: str = "fullchain.pem",
        **kwargs,
    ) -> Path:
        path = tmp_path / filename
        path.write_bytes(build_cert_pem(dns_names, not_after, **kwargs))
        return path

    return _make


# ─── Settings patch ───────────────────────────────────────────────────────────

_PATCHED = (
    "EMAIL", "DOMAIN", "SAN", "CERT_PATH", "KEY_PATH", "CA_DIR_URL",
    "EXPIRY_DAYS_THRESHOLD", "CHALLENGE_BASE_PATH", "RELOAD_COMMAND",
    "ACME_INSECURE", "ACME_CA_BUNDLE",
)


@pytest.fixture()
def agent_settings(tmp_path: Path):
    """
    Mutate the live settings singleton so every path lives under tmp_path,
    restore original values after the test.
    """
    from config import settings

    originals = {k: getattr(settings, k) for k in _PATCHED}

    settings.EMAIL = "admin@example.com"
    settings.DOMAIN = "example.com"
    settings.SAN = []
    settings.CERT_PATH = str(tmp_path / "ssl" / "fullchain.pem")
    settings.KEY_PATH = str(tmp_path / "ssl" / "key.pem")
    settings.CA_DIR_URL = "https://acme.test/directory"
    settings.EXPIRY_DAYS_THRESHOLD = 30
    settings.CHALLENGE_BASE_PATH = str(tmp_path / "webroot" / ".well-known" / "acme-challenge")
    settings.RELOAD_COMMAND = "nginx -s reload"
    settings.ACME_INSECURE = False
    settings.ACME_CA_BUNDLE = ""

    yield settings

    for k, v in originals.items():
        setattr(settings, k, v)


@pytest.fixture()
def pebble_settings(agent_settings):
    agent_settings.CA_DIR_URL = "https://localhost:14000/dir"
    agent_settings.DOMAIN = "acme-test.localhost"
    agent_settings.ACME_INSECURE = True
    agent_settings.RELOAD_COMMAND = ""
    return agent_settings
