"""
RFC 8555 authority adapter used by the issuance orchestrator.

Wraps the stateless AcmeClient with the nonce bookkeeping and the order
workflow:

  newOrder → per authorization: present token → respond → poll → cleanup
           → CSR → finalize → poll order → download chain

Only HTTP-01 is supported.  The challenge file is always removed once the
validation attempt for its token is over, including on failure or
cancellation.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from acme_client import jws as jwslib
from acme_client.client import AcmeClient, AcmeError, make_client
from acme_client.crypto import create_csr, generate_rsa_key, private_key_to_pem
from acme_client.http_challenge import WebrootChallengeResponder
from agent.issuance import AccountIdentity, IssuedCertificate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AcmeAccount:
    url: str
    identity: AccountIdentity


class AcmeAuthority:
    def __init__(
        self,
        client: AcmeClient,
        responder: WebrootChallengeResponder,
        poll_interval: float = 2.0,
        max_polls: int = 30,
    ) -> None:
        self.client = client
        self.responder = responder
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self._directory = client.get_directory()
        self._nonce = ""

    # ── Capability ────────────────────────────────────────────────────────

    def register(self, identity: AccountIdentity) -> AcmeAccount:
        """Create (or find, for an already known key) the account, agreeing to the ToS."""
        account_url, nonce = self.client.create_account(
            account_key=identity.key,
            nonce=self._next_nonce(),
            directory=self._directory,
            contact_email=identity.email,
        )
        self._nonce = nonce
        if not account_url:
            raise AcmeError(0, {"detail": "newAccount response carried no Location header"})
        logger.info("Registered ACME account %s", account_url)
        return AcmeAccount(url=account_url, identity=identity)

    def obtain_certificate(
        self,
        account: AcmeAccount,
        domains: Sequence[str],
        bundle: bool = True,
    ) -> IssuedCertificate:
        """
        Order, validate and download one certificate for all *domains*.

        Either every authorization succeeds and a certificate is returned, or
        AcmeError is raised.  With ``bundle=False`` only the leaf is returned.
        """
        key = account.identity.key
        names = list(dict.fromkeys(domains))

        order, order_url, nonce = self.client.create_order(
            names, key, account.url, self._next_nonce(), self._directory
        )
        self._nonce = nonce
        logger.info("Created order %s for %s", order_url, ", ".join(names))

        for auth_url in order.get("authorizations", []):
            self._validate(account, auth_url)

        cert_key = generate_rsa_key(key_size=2048)
        csr_der = create_csr(cert_key, names[0], names[1:])

        _, nonce = self.client.finalize_order(
            order["finalize"], csr_der, key, account.url, self._next_nonce()
        )
        self._nonce = nonce

        cert_url = self.client.poll_order_for_certificate(
            order_url, key, account.url,
            max_attempts=self.max_polls, poll_interval=self.poll_interval,
        )
        chain_pem, nonce = self.client.download_certificate(
            cert_url, key, account.url, self._next_nonce()
        )
        self._nonce = nonce
        logger.info("Downloaded certificate from %s", cert_url)

        if not bundle:
            chain_pem = leaf_certificate(chain_pem)

        return IssuedCertificate(
            certificate=chain_pem.encode(),
            private_key=private_key_to_pem(cert_key),
            domains=tuple(names),
        )

    # ── Internal ──────────────────────────────────────────────────────────

    def _validate(self, account: AcmeAccount, auth_url: str) -> None:
        key = account.identity.key
        authz = self.client.get_authorization(auth_url, key, account.url)
        domain = authz.get("identifier", {}).get("value", "")

        # Servers may reuse a recent valid authorization (RFC 8555 §7.5);
        # responding to its challenge again would be rejected.
        if authz.get("status") == "valid":
            logger.info("Authorization for %s already valid", domain)
            return

        challenge = next(
            (c for c in authz.get("challenges", []) if c.get("type") == "http-01"),
            None,
        )
        if challenge is None:
            raise AcmeError(0, {"type": "unsupported", "detail": f"no http-01 challenge offered for {domain}"})

        token = challenge["token"]
        key_auth = jwslib.compute_key_authorization(token, key)

        self.responder.present(domain, token, key_auth)
        try:
            _, nonce = self.client.respond_to_challenge(
                challenge["url"], key, account.url, self._next_nonce()
            )
            self._nonce = nonce
            self.client.poll_authorization(
                auth_url, key, account.url,
                max_attempts=self.max_polls, poll_interval=self.poll_interval,
            )
            logger.info("Authorization for %s is VALID", domain)
        finally:
            self.responder.cleanup(domain, token, key_auth)

    def _next_nonce(self) -> str:
        nonce, self._nonce = self._nonce, ""
        return nonce or self.client.get_nonce(self._directory)


def leaf_certificate(full_chain: str) -> str:
    """Return the first PEM block of a chain (the leaf certificate)."""
    end = "-----END CERTIFICATE-----"
    idx = full_chain.find(end)
    if idx == -1:
        return full_chain
    return full_chain[: idx + len(end)] + "\n"


def make_authority(
    directory_url: str,
    identity: AccountIdentity,
    responder: WebrootChallengeResponder,
) -> AcmeAuthority:
    """
    Build the authority adapter for *directory_url* from application settings.

    Fetches the directory, so an unreachable authority fails here.
    *identity* is bound later, at registration.
    """
    return AcmeAuthority(make_client(directory_url), responder)
