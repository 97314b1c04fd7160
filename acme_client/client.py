"""
Low-level ACME RFC 8555 HTTP client.

This client is intentionally **stateless**: the account key, account URL and
nonces are passed in by the caller (acme_client/authority.py), making it easy
to test with mock HTTP.

RFC 8555 compliance notes
--------------------------
* POST-as-GET: authorizations, orders and certificates are fetched with a
  signed empty payload, never plain GET.
* badNonce retry: ACME servers (including Pebble, which rejects 5 % of nonces
  intentionally) return a fresh `Replay-Nonce` header even on error responses.
  `_post_signed` automatically retries up to `_NONCE_RETRIES` times.
"""
from __future__ import annotations

import base64
import time
from typing import Optional

import requests

from acme_client import jws as jwslib
from acme_client.jws import AccountKey

_NONCE_RETRIES = 3
_USER_AGENT = "certrenew-agent/1.0"


class AcmeError(Exception):
    """Raised when the ACME server returns an error response."""

    def __init__(self, status_code: int, body: dict, new_nonce: str = "") -> None:
        self.status_code = status_code
        self.body = body
        self.new_nonce = new_nonce
        problem_type = body.get("type", "unknown")
        detail = body.get("detail", str(body))
        super().__init__(f"ACME {status_code}: {problem_type} — {detail}")


class AcmeClient:
    """Implements the RFC 8555 calls needed for account registration and issuance."""

    def __init__(
        self,
        directory_url: str,
        timeout: int = 30,
        ca_bundle: str = "",
        insecure: bool = False,
    ) -> None:
        self.directory_url = directory_url
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": _USER_AGENT})

        if insecure:
            import urllib3
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            self._session.verify = False
        elif ca_bundle:
            self._session.verify = ca_bundle

    # ── Directory & nonce ─────────────────────────────────────────────────

    def get_directory(self) -> dict:
        """GET /directory — discover ACME endpoint URLs."""
        resp = self._session.get(self.directory_url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def get_nonce(self, directory: dict) -> str:
        """HEAD /newNonce — fetch a fresh anti-replay nonce."""
        resp = self._session.head(directory["newNonce"], timeout=self.timeout)
        nonce = resp.headers.get("Replay-Nonce")
        if not nonce:
            raise AcmeError(resp.status_code, {"detail": "No Replay-Nonce header"})
        return nonce

    # ── Account ───────────────────────────────────────────────────────────

    def create_account(
        self,
        account_key: AccountKey,
        nonce: str,
        directory: dict,
        contact_email: str = "",
    ) -> tuple[str, str]:
        """
        POST /newAccount with the terms of service agreed.

        Servers answer 201 for a new account and 200 with the same Location
        for a key that is already registered, so calling this twice is safe.
        Returns (account_url, new_nonce).
        """
        payload: dict = {"termsOfServiceAgreed": True}
        if contact_email:
            payload["contact"] = [f"mailto:{contact_email}"]

        resp = self._post_signed(payload, account_key, nonce, directory["newAccount"], directory=directory)
        return resp.headers.get("Location", ""), resp.headers.get("Replay-Nonce", "")

    # ── Orders ────────────────────────────────────────────────────────────

    def create_order(
        self,
        domains: list[str],
        account_key: AccountKey,
        account_url: str,
        nonce: str,
        directory: dict,
    ) -> tuple[dict, str, str]:
        """
        POST /newOrder — one order covering every domain.
        Returns (order_body, order_url, new_nonce).
        """
        payload = {"identifiers": [{"type": "dns", "value": d} for d in domains]}
        resp = self._post_signed(payload, account_key, nonce, directory["newOrder"], account_url, directory=directory)
        return resp.json(), resp.headers.get("Location", ""), resp.headers.get("Replay-Nonce", "")

    def get_order(self, order_url: str, account_key: AccountKey, account_url: str) -> dict:
        """POST-as-GET an order object."""
        return self._post_as_get(order_url, account_key, account_url).json()

    # ── Authorizations & challenges ───────────────────────────────────────

    def get_authorization(self, auth_url: str, account_key: AccountKey, account_url: str) -> dict:
        """POST-as-GET an authorization object (RFC 8555 §7.4.1)."""
        return self._post_as_get(auth_url, account_key, account_url).json()

    def respond_to_challenge(
        self,
        challenge_url: str,
        account_key: AccountKey,
        account_url: str,
        nonce: str,
    ) -> tuple[dict, str]:
        """
        POST challenge URL with empty payload {} to tell the CA to verify.
        Returns (challenge_body, new_nonce).
        """
        resp = self._post_signed({}, account_key, nonce, challenge_url, account_url)
        return resp.json(), resp.headers.get("Replay-Nonce", "")

    def poll_authorization(
        self,
        auth_url: str,
        account_key: AccountKey,
        account_url: str,
        max_attempts: int = 10,
        poll_interval: float = 2.0,
    ) -> str:
        """
        Poll an authorization URL until status is 'valid' or 'invalid'.

        Returns the final status string ('valid').
        Raises AcmeError on timeout or 'invalid'.
        """
        for _ in range(max_attempts):
            authz = self.get_authorization(auth_url, account_key, account_url)
            status = authz.get("status", "pending")
            if status == "valid":
                return status
            if status == "invalid":
                raise AcmeError(
                    200,
                    {
                        "type": "urn:ietf:params:acme:error:unauthorized",
                        "detail": f"Authorization invalid: {_challenge_errors(authz)}",
                    },
                )
            time.sleep(poll_interval)

        raise AcmeError(
            0,
            {
                "type": "timeout",
                "detail": f"Authorization did not become valid after {max_attempts} polls",
            },
        )

    # ── Finalization & certificate download ───────────────────────────────

    def finalize_order(
        self,
        finalize_url: str,
        csr_der: bytes,
        account_key: AccountKey,
        account_url: str,
        nonce: str,
    ) -> tuple[dict, str]:
        """
        POST /finalize — submit DER-encoded CSR.
        Returns (finalize_response_body, new_nonce).
        """
        csr_b64 = base64.urlsafe_b64encode(csr_der).rstrip(b"=").decode()
        resp = self._post_signed({"csr": csr_b64}, account_key, nonce, finalize_url, account_url)
        return resp.json(), resp.headers.get("Replay-Nonce", "")

    def poll_order_for_certificate(
        self,
        order_url: str,
        account_key: AccountKey,
        account_url: str,
        max_attempts: int = 20,
        poll_interval: float = 3.0,
    ) -> str:
        """
        Poll order until status is 'valid' (certificate ready).
        Returns the certificate URL.
        """
        for _ in range(max_attempts):
            order = self.get_order(order_url, account_key, account_url)
            status = order.get("status")
            if status == "valid":
                cert_url = order.get("certificate")
                if not cert_url:
                    raise AcmeError(0, {"detail": "Order valid but no certificate URL"})
                return cert_url
            if status == "invalid":
                raise AcmeError(
                    0,
                    {"type": "invalid", "detail": f"Order became invalid: {order}"},
                )
            time.sleep(poll_interval)

        raise AcmeError(
            0,
            {"type": "timeout", "detail": "Order did not become valid (certificate not issued)"},
        )

    def download_certificate(
        self,
        cert_url: str,
        account_key: AccountKey,
        account_url: str,
        nonce: str,
    ) -> tuple[str, str]:
        """
        POST-as-GET the certificate URL and return (full_chain_pem, new_nonce).
        The PEM chain is: leaf cert + intermediates.
        """
        resp = self._post_signed(
            None, account_key, nonce, cert_url, account_url,
            accept="application/pem-certificate-chain",
        )
        return resp.text, resp.headers.get("Replay-Nonce", "")

    # ── Internal ──────────────────────────────────────────────────────────

    def _post_as_get(self, url: str, account_key: AccountKey, account_url: str) -> requests.Response:
        # Fetch a fresh nonce internally so pollers don't have to thread one
        # through every iteration.
        directory = self.get_directory()
        nonce = self.get_nonce(directory)
        return self._post_signed(None, account_key, nonce, url, account_url, directory=directory)

    def _post_signed(
        self,
        payload: dict | None,
        account_key: AccountKey,
        nonce: str,
        url: str,
        account_url: str | None = None,
        accept: str = "application/json",
        directory: dict | None = None,
    ) -> requests.Response:
        """
        Sign *payload* with *account_key* and POST to *url*, retrying up to
        `_NONCE_RETRIES` times on `badNonce` responses.

        ACME servers return a fresh `Replay-Nonce` even in error responses, so
        we extract it and re-sign rather than fetching a new nonce.
        """
        current_nonce = nonce
        for attempt in range(_NONCE_RETRIES):
            body = jwslib.sign_request(payload, account_key, current_nonce, url, account_url)
            resp = self._session.post(
                url,
                json=body,
                headers={
                    "Content-Type": "application/jose+json",
                    "Accept": accept,
                },
                timeout=self.timeout,
            )
            if resp.ok:
                return resp

            try:
                error_body = resp.json()
            except ValueError:
                error_body = {"detail": resp.text}

            if "badNonce" in error_body.get("type", "") and attempt < _NONCE_RETRIES - 1:
                fresh = resp.headers.get("Replay-Nonce")
                if fresh:
                    current_nonce = fresh
                    continue
                if directory is None:
                    directory = self.get_directory()
                current_nonce = self.get_nonce(directory)
                continue

            raise AcmeError(resp.status_code, error_body, resp.headers.get("Replay-Nonce", ""))

        raise AcmeError(0, {"detail": "Exceeded nonce retry limit"})


def _challenge_errors(authz: dict) -> str:
    """Collect the problem details the CA attached to failed challenges."""
    details = [
        ch["error"].get("detail", str(ch["error"]))
        for ch in authz.get("challenges", [])
        if ch.get("error")
    ]
    identifier = authz.get("identifier", {}).get("value", "?")
    return f"{identifier}: " + ("; ".join(details) or "no detail")


def make_client(directory_url: Optional[str] = None) -> AcmeClient:
    """
    Create an AcmeClient from the current application settings.
    Late-imports config to avoid circular imports at module load time.
    """
    from config import settings  # noqa: PLC0415

    return AcmeClient(
        directory_url=directory_url or settings.CA_DIR_URL,
        timeout=settings.ACME_TIMEOUT,
        ca_bundle=settings.ACME_CA_BUNDLE,
        insecure=settings.ACME_INSECURE,
    )
