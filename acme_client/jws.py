"""
JWK / JWS utilities for the ACME protocol (RFC 8555, RFC 7515, RFC 7638).

Uses *josepy* (the library powering Certbot) for key wrapping and JWK
serialization; signatures are produced with *cryptography* directly.

Responsibilities (boundary with acme_client/crypto.py):
  - Generate the per-run **account** key (EC P-256, never persisted)
  - Compute the JWK thumbprint and HTTP-01 key-authorizations
  - Sign ACME POST bodies as flattened JWS (with jwk or kid header)
"""
from __future__ import annotations

import base64
import json
from typing import Any, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from josepy.jwk import JWKEC, JWKRSA

AccountKey = Union[JWKEC, JWKRSA]

# Coordinate size in bytes per curve, for raw r||s JWS signatures
_EC_COORDINATE_SIZE = {"secp256r1": 32, "secp384r1": 48, "secp521r1": 66}
_EC_ALG = {"secp256r1": "ES256", "secp384r1": "ES384", "secp521r1": "ES512"}
_EC_HASH = {"secp256r1": hashes.SHA256, "secp384r1": hashes.SHA384, "secp521r1": hashes.SHA512}


# ─── Account key ──────────────────────────────────────────────────────────────


def generate_account_key() -> JWKEC:
    """Generate a fresh EC P-256 account key wrapped in a josepy JWKEC."""
    return JWKEC(key=ec.generate_private_key(ec.SECP256R1()))


def public_jwk(account_key: AccountKey) -> dict[str, Any]:
    """Return the public JWK as a JSON-ready dict, including ``kty``."""
    return account_key.public_key().to_partial_json()


# ─── JWK thumbprint ───────────────────────────────────────────────────────────


def compute_jwk_thumbprint(account_key: AccountKey) -> str:
    """Return the base64url SHA-256 thumbprint of the public JWK (RFC 7638)."""
    return _b64url(account_key.thumbprint(hash_function=hashes.SHA256))


def compute_key_authorization(token: str, account_key: AccountKey) -> str:
    """Return the HTTP-01 key-authorization string for *token*."""
    return f"{token}.{compute_jwk_thumbprint(account_key)}"


# ─── JWS signing ─────────────────────────────────────────────────────────────


def sign_request(
    payload: dict | None,
    account_key: AccountKey,
    nonce: str,
    url: str,
    account_url: str | None = None,
) -> dict:
    """
    Sign an ACME request payload and return the JWS dict to POST.

    If *account_url* is None the JWS header uses the full JWK (used for
    newAccount).  If *account_url* is set the header uses the shorter "kid"
    form (used for all subsequent requests).  A None payload produces the
    empty-string payload of a POST-as-GET.
    """
    header: dict[str, Any] = {
        "alg": algorithm_for(account_key),
        "nonce": nonce,
        "url": url,
    }
    if account_url:
        header["kid"] = account_url
    else:
        header["jwk"] = public_jwk(account_key)

    protected = _b64url(json.dumps(header).encode())
    payload_b64 = "" if payload is None else _b64url(json.dumps(payload).encode())

    signing_input = f"{protected}.{payload_b64}".encode()

    return {
        "protected": protected,
        "payload": payload_b64,
        "signature": _b64url(_sign(account_key, signing_input)),
    }


def algorithm_for(account_key: AccountKey) -> str:
    if isinstance(account_key, JWKEC):
        return _EC_ALG[account_key.key.curve.name]
    return "RS256"


# ─── Internal helpers ─────────────────────────────────────────────────────────


def _sign(account_key: AccountKey, data: bytes) -> bytes:
    if isinstance(account_key, JWKEC):
        curve = account_key.key.curve.name
        der = account_key.key.sign(data, ec.ECDSA(_EC_HASH[curve]()))
        # JWS wants the fixed-width R || S concatenation, not DER
        r, s = decode_dss_signature(der)
        size = _EC_COORDINATE_SIZE[curve]
        return r.to_bytes(size, "big") + s.to_bytes(size, "big")
    return account_key.key.sign(data, padding.PKCS1v15(), hashes.SHA256())


def _b64url(data: bytes) -> str:
    """URL-safe base64 encoding with no padding (as required by JOSE)."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()

