from __future__ import annotations

import re
from typing import Iterable

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes, PublicKeyTypes
from cryptography.x509.oid import NameOID

_CRL_PEM_RE = re.compile(
    rb"-----BEGIN X509 CRL-----\r?\n.+?\r?\n-----END X509 CRL-----",
    re.DOTALL,
)

_CURVES: dict[str, type[ec.EllipticCurve]] = {
    "secp256r1": ec.SECP256R1,
    "prime256v1": ec.SECP256R1,
    "secp384r1": ec.SECP384R1,
    "secp521r1": ec.SECP521R1,
}


def generate_rsa_key(bits: int = 4096) -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=bits)


def generate_ec_key(curve: str = "secp384r1") -> ec.EllipticCurvePrivateKey:
    try:
        curve_cls = _CURVES[curve.lower()]
    except KeyError:
        raise ValueError(f"unsupported named curve: {curve}") from None
    return ec.generate_private_key(curve_cls())


def generate_private_key(key_type: str = "rsa", *, key_length: int = 4096, named_curve: str = "secp384r1") -> PrivateKeyTypes:
    if key_type == "ec":
        return generate_ec_key(named_curve)
    return generate_rsa_key(key_length)


def private_key_pem(key: PrivateKeyTypes, password: bytes | None = None) -> bytes:
    encryption: serialization.KeySerializationEncryption
    if password:
        encryption = serialization.BestAvailableEncryption(password)
    else:
        encryption = serialization.NoEncryption()
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    )


def public_key_pem(key: PrivateKeyTypes | PublicKeyTypes) -> bytes:
    public = key.public_key() if hasattr(key, "private_bytes") else key
    return public.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def make_csr(common_name: str, key: PrivateKeyTypes) -> x509.CertificateSigningRequest:
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    return x509.CertificateSigningRequestBuilder().subject_name(subject).sign(key, hashes.SHA256())


def csr_pem(csr: x509.CertificateSigningRequest) -> str:
    return csr.public_bytes(serialization.Encoding.PEM).decode("ascii")


def keys_match(cert: x509.Certificate, key: PrivateKeyTypes) -> bool:
    return public_key_pem(cert.public_key()) == public_key_pem(key)


def fingerprint(cert: x509.Certificate) -> str:
    """SHA-256 digest of the DER encoding, e.g. ``SHA256 3F:A2:...``."""
    digest = cert.fingerprint(hashes.SHA256())
    return "SHA256 " + ":".join(f"{b:02X}" for b in digest)


def subject_text(cert: x509.Certificate) -> str:
    return cert.subject.rfc4514_string()


def is_self_signed(cert: x509.Certificate) -> bool:
    if cert.issuer != cert.subject:
        return False
    try:
        cert.verify_directly_issued_by(cert)
    except (ValueError, TypeError, InvalidSignature):
        return False
    return True


def load_pem_certificates(data: bytes) -> list[x509.Certificate]:
    return x509.load_pem_x509_certificates(data)


def load_pem_crls(data: bytes) -> list[x509.CertificateRevocationList]:
    blocks = _CRL_PEM_RE.findall(data)
    if not blocks:
        raise ValueError("no PEM encoded CRL found")
    return [x509.load_pem_x509_crl(block) for block in blocks]


def certificates_pem(certs: Iterable[x509.Certificate]) -> bytes:
    return b"".join(cert.public_bytes(serialization.Encoding.PEM) for cert in certs)


def crls_pem(crls: Iterable[x509.CertificateRevocationList]) -> bytes:
    return b"".join(crl.public_bytes(serialization.Encoding.PEM) for crl in crls)


__all__ = [
    "generate_rsa_key",
    "generate_ec_key",
    "generate_private_key",
    "private_key_pem",
    "public_key_pem",
    "make_csr",
    "csr_pem",
    "keys_match",
    "fingerprint",
    "subject_text",
    "is_self_signed",
    "load_pem_certificates",
    "load_pem_crls",
    "certificates_pem",
    "crls_pem",
]
