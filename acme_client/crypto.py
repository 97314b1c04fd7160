"""
Certificate private-key generation and CSR creation.

Boundary: this module owns everything cryptographic that belongs to the
*certificate*.  Account-key operations (JWK, JWS) live in acme_client/jws.py.
"""
from __future__ import annotations

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID


def generate_rsa_key(key_size: int = 2048) -> rsa.RSAPrivateKey:
    """Generate an RSA private key for a certificate."""
    return rsa.generate_private_key(public_exponent=65537, key_size=key_size)


def private_key_to_pem(key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey) -> bytes:
    """Serialize a private key to unencrypted PEM bytes."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def create_csr(
    private_key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey,
    domain: str,
    san_domains: list[str] | None = None,
) -> bytes:
    """
    Create a DER-encoded CSR with *domain* as common name.

    *domain* and every entry of *san_domains* go into the
    SubjectAlternativeName extension; repeated names appear once.
    """
    all_domains = list(dict.fromkeys([domain] + (san_domains or [])))

    builder = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(
            x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domain)])
        )
        .add_extension(
            x509.SubjectAlternativeName(
                [x509.DNSName(d) for d in all_domains]
            ),
            critical=False,
        )
    )

    csr = builder.sign(private_key, hashes.SHA256())
    return csr.public_bytes(serialization.Encoding.DER)
