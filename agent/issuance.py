"""
Issuance orchestrator — one attempt to obtain a certificate for a domain set.

The orchestrator only knows an abstract authority capability
(``register`` + ``obtain_certificate``); the concrete RFC 8555 implementation
lives in acme_client/authority.py and is selected through a client factory,
so tests and alternative protocol stacks can swap it out.

Phases, each aborting the whole operation on failure:

  key-generation → client-setup → registration → obtain

Every failure surfaces as IssuanceError carrying the phase; nothing is
retried here.  The account identity is created inside ``issue`` and dropped
when it returns.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, Sequence, Tuple

from acme_client import jws as jwslib
from acme_client.http_challenge import WebrootChallengeResponder
from acme_client.jws import AccountKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountIdentity:
    email: str
    key: AccountKey = field(repr=False)


@dataclass(frozen=True)
class IssuedCertificate:
    """Certificate chain and private key as PEM bytes, passed to storage as-is."""

    certificate: bytes
    private_key: bytes = field(repr=False)
    domains: Tuple[str, ...] = ()


class IssuancePhase(str, enum.Enum):
    KEY_GENERATION = "key-generation"
    CLIENT_SETUP = "client-setup"
    REGISTRATION = "registration"
    OBTAIN = "obtain"


class IssuanceError(Exception):
    def __init__(self, phase: IssuancePhase, cause: BaseException) -> None:
        self.phase = phase
        self.cause = cause
        super().__init__(f"{phase.value}: {cause}")


class AuthorityClient(Protocol):
    def register(self, identity: AccountIdentity) -> Any: ...

    def obtain_certificate(
        self, account: Any, domains: Sequence[str], bundle: bool = True
    ) -> IssuedCertificate: ...


ClientFactory = Callable[[str, AccountIdentity, WebrootChallengeResponder], AuthorityClient]


def _default_client_factory(
    directory_url: str,
    identity: AccountIdentity,
    responder: WebrootChallengeResponder,
) -> AuthorityClient:
    from acme_client.authority import make_authority  # noqa: PLC0415

    return make_authority(directory_url, identity, responder)


def issue(
    account_email: str,
    directory_url: str,
    domains: Sequence[str],
    responder: WebrootChallengeResponder,
    client_factory: Optional[ClientFactory] = None,
    key_factory: Callable[[], AccountKey] = jwslib.generate_account_key,
) -> IssuedCertificate:
    """
    Register a fresh account with the authority at *directory_url* and obtain
    one bundled certificate covering every name in *domains*.

    *responder* is attached as the only domain-validation method.
    """
    factory = client_factory or _default_client_factory

    try:
        identity = AccountIdentity(email=account_email, key=key_factory())
    except Exception as exc:
        raise IssuanceError(IssuancePhase.KEY_GENERATION, exc) from exc

    try:
        client = factory(directory_url, identity, responder)
    except Exception as exc:
        raise IssuanceError(IssuancePhase.CLIENT_SETUP, exc) from exc

    try:
        account = client.register(identity)
    except Exception as exc:
        raise IssuanceError(IssuancePhase.REGISTRATION, exc) from exc

    logger.info("Requesting certificate for %s", ", ".join(domains))
    try:
        issued = client.obtain_certificate(account, list(domains), bundle=True)
    except Exception as exc:
        raise IssuanceError(IssuancePhase.OBTAIN, exc) from exc

    return issued
