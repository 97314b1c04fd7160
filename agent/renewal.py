"""
Renewal decision engine.

Given the path of the currently installed certificate, the domain set it must
cover and a threshold in days, decide whether a new certificate is needed:

  1. no file                      → renew ("absent")
  2. file present but unreadable  → CertificateParseError (caller decides)
  3. a required name not covered  → renew ("domain-mismatch")
  4. days remaining <= threshold  → renew ("expiring")
  5. otherwise                    → keep  ("valid")

Name coverage follows standard TLS hostname verification: subjectAltName
DNS entries, case-insensitive, a wildcard matching exactly one left-most
label, IP addresses matched against IP SAN entries.  The subject common name
is not consulted.
"""
from __future__ import annotations

import enum
import ipaddress
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import FrozenSet, Optional, Sequence, Tuple

from cryptography import x509

from storage import filesystem as fs

logger = logging.getLogger(__name__)


# ─── Errors ───────────────────────────────────────────────────────────────────


class CertificateEvaluationError(Exception):
    """The existing certificate could not be evaluated."""


class CertificateParseError(CertificateEvaluationError):
    """The existing certificate file is unreadable or not a PEM certificate."""


# ─── Value types ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RenewalTarget:
    """Primary domain plus alternate names, in order, duplicates kept."""

    domain: str
    alternate_names: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.domain:
            raise ValueError("primary domain must not be empty")
        object.__setattr__(self, "alternate_names", tuple(self.alternate_names))

    @property
    def domains(self) -> list[str]:
        return [self.domain, *self.alternate_names]


@dataclass(frozen=True)
class CertificateSnapshot:
    """Read-only view of an installed certificate."""

    dns_names: FrozenSet[str]
    ip_addresses: FrozenSet[str]
    not_after: datetime

    @classmethod
    def from_pem(cls, pem: bytes) -> "CertificateSnapshot":
        """Parse the first certificate of a PEM file (leaf of a full chain)."""
        try:
            cert = x509.load_pem_x509_certificates(pem)[0]
        except (ValueError, IndexError) as exc:
            raise CertificateParseError(f"failed to parse certificate: {exc}") from exc

        try:
            san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
            dns_names = frozenset(n.lower().rstrip(".") for n in san.get_values_for_type(x509.DNSName))
            ip_addresses = frozenset(str(ip) for ip in san.get_values_for_type(x509.IPAddress))
        except x509.ExtensionNotFound:
            dns_names, ip_addresses = frozenset(), frozenset()
        except (ValueError, x509.DuplicateExtension) as exc:
            # Extensions are decoded lazily, so a malformed SAN only surfaces here
            raise CertificateParseError(f"failed to parse certificate extensions: {exc}") from exc

        try:
            not_after = cert.not_valid_after_utc
        except ValueError as exc:
            raise CertificateParseError(f"failed to parse certificate validity: {exc}") from exc

        return cls(dns_names=dns_names, ip_addresses=ip_addresses, not_after=not_after)

    def covers(self, hostname: str) -> bool:
        """Return True if the certificate is valid for *hostname*."""
        host = hostname.strip().lower().rstrip(".")
        try:
            ip = ipaddress.ip_address(host.strip("[]"))
        except ValueError:
            pass
        else:
            return str(ip) in self.ip_addresses

        return any(_match_hostname(pattern, host) for pattern in self.dns_names)

    def days_remaining(self, now: Optional[datetime] = None) -> int:
        """Whole days until expiry, floored; negative once expired."""
        now = now or datetime.now(tz=timezone.utc)
        return (self.not_after - now) // timedelta(days=1)


class RenewalReason(str, enum.Enum):
    ABSENT = "absent"
    PARSE_FAILURE = "parse-failure"
    DOMAIN_MISMATCH = "domain-mismatch"
    EXPIRING = "expiring"
    VALID = "valid"


@dataclass(frozen=True)
class RenewalDecision:
    renew: bool
    reason: RenewalReason
    days_remaining: Optional[int] = None
    detail: str = ""

    def __post_init__(self) -> None:
        if self.renew == (self.reason is RenewalReason.VALID):
            raise ValueError(f"inconsistent decision: renew={self.renew} reason={self.reason.value}")


# ─── Engine ───────────────────────────────────────────────────────────────────


def evaluate(
    cert_path: str,
    required_domains: Sequence[str],
    expiry_threshold_days: int,
    now: Optional[datetime] = None,
) -> RenewalDecision:
    """
    Decide whether the certificate at *cert_path* must be renewed.

    Raises CertificateParseError if the file exists but cannot be read or
    parsed; a missing file is the normal first-run state, not an error.
    """
    try:
        pem = fs.read_certificate_pem(cert_path)
    except OSError as exc:
        raise CertificateParseError(f"failed to read {cert_path}: {exc}") from exc

    if pem is None:
        return RenewalDecision(True, RenewalReason.ABSENT, detail=f"no certificate at {cert_path}")

    snapshot = CertificateSnapshot.from_pem(pem)

    for domain in required_domains:
        if not snapshot.covers(domain):
            logger.info("Certificate is not valid for domain %s", domain)
            return RenewalDecision(
                True,
                RenewalReason.DOMAIN_MISMATCH,
                detail=f"certificate does not cover {domain}",
            )

    days = snapshot.days_remaining(now)
    logger.info("Certificate expires in %d days", days)

    if days <= expiry_threshold_days:
        return RenewalDecision(
            True,
            RenewalReason.EXPIRING,
            days_remaining=days,
            detail=f"{days} days left, threshold {expiry_threshold_days}",
        )
    return RenewalDecision(False, RenewalReason.VALID, days_remaining=days)


def _match_hostname(pattern: str, host: str) -> bool:
    if pattern == host:
        return True
    if not pattern.startswith("*."):
        return False
    # "*.example.com" matches "www.example.com" but not "example.com" or "a.b.example.com"
    label, _, rest = host.partition(".")
    return bool(label) and rest == pattern[2:]
