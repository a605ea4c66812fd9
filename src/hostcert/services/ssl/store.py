"""File-system backed storage for SSL key material, keyed by certname."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, TypeVar
import logging
import os

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from hostcert.adapters.fs.path_provider import PathProvider
from hostcert.services.crypto import pki
from hostcert.services.settings import Settings
from hostcert.services.ssl.enums import ArtifactKind
from hostcert.services.ssl.errors import CredentialCorrupt

__all__ = ["CredentialStore"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _write_bytes(path: Path, data: bytes, *, private: bool = False) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    if private:
        try:
            os.chmod(path, 0o600)
        except PermissionError:
            # best effort on platforms that do not support chmod
            pass


class CredentialStore:
    """Loads, saves and deletes keys, requests and certificates on disk."""

    def __init__(self, paths: PathProvider) -> None:
        self.paths = paths

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialStore":
        return cls(PathProvider.from_settings(settings))

    # ------------------------------------------------------------------
    # Private key
    # ------------------------------------------------------------------
    def _password(self) -> bytes | None:
        passfile = self.paths.passfile()
        if not passfile.exists():
            return None
        return passfile.read_bytes().strip() or None

    def load_private_key(self, identity: str) -> PrivateKeyTypes | None:
        path = self.paths.private_key(identity)
        return self._load(
            path,
            "private key",
            lambda data: serialization.load_pem_private_key(data, password=self._password()),
        )

    def save_private_key(self, identity: str, key: PrivateKeyTypes) -> None:
        _write_bytes(self.paths.private_key(identity), pki.private_key_pem(key, self._password()), private=True)
        _write_bytes(self.paths.public_key(identity), pki.public_key_pem(key))
        logger.debug("Saved private and public key for %s", identity)

    # ------------------------------------------------------------------
    # Certificate signing request
    # ------------------------------------------------------------------
    @staticmethod
    def create_request(identity: str, key: PrivateKeyTypes) -> x509.CertificateSigningRequest:
        return pki.make_csr(identity, key)

    def load_request(self, identity: str) -> x509.CertificateSigningRequest | None:
        return self._load(self.paths.request(identity), "certificate request", x509.load_pem_x509_csr)

    def save_request(self, identity: str, csr: x509.CertificateSigningRequest) -> None:
        _write_bytes(self.paths.request(identity), pki.csr_pem(csr).encode("ascii"))

    def delete_request(self, identity: str) -> bool:
        path = self.paths.request(identity)
        if not path.exists():
            return False
        path.unlink()
        logger.debug("Deleted certificate request %s", path)
        return True

    # ------------------------------------------------------------------
    # Client certificate
    # ------------------------------------------------------------------
    def load_client_cert(self, identity: str) -> x509.Certificate | None:
        return self._load(self.paths.certificate(identity), "certificate", x509.load_pem_x509_certificate)

    def save_client_cert(self, identity: str, cert: x509.Certificate) -> None:
        _write_bytes(self.paths.certificate(identity), cert.public_bytes(serialization.Encoding.PEM))

    # ------------------------------------------------------------------
    # CA trust bundle
    # ------------------------------------------------------------------
    def load_cacerts(self) -> list[x509.Certificate] | None:
        return self._load(self.paths.local_ca_cert(), "CA certificates", pki.load_pem_certificates)

    def save_cacerts(self, certs: list[x509.Certificate]) -> None:
        _write_bytes(self.paths.local_ca_cert(), pki.certificates_pem(certs))

    def load_crls(self) -> list[x509.CertificateRevocationList] | None:
        return self._load(self.paths.local_crl(), "CRL bundle", pki.load_pem_crls)

    def save_crls(self, crls: list[x509.CertificateRevocationList]) -> None:
        _write_bytes(self.paths.local_crl(), pki.crls_pem(crls))

    # ------------------------------------------------------------------
    # Cleanup support
    # ------------------------------------------------------------------
    def artifact_paths(self, identity: str, *, local_ca: bool = False) -> list[tuple[ArtifactKind, Path]]:
        """Every local artifact for ``identity`` in the order it is cleaned."""
        paths = [
            (ArtifactKind.PRIVATE_KEY, self.paths.private_key(identity)),
            (ArtifactKind.PUBLIC_KEY, self.paths.public_key(identity)),
            (ArtifactKind.REQUEST, self.paths.request(identity)),
            (ArtifactKind.CERTIFICATE, self.paths.certificate(identity)),
            (ArtifactKind.PASSWORD_FILE, self.paths.passfile()),
        ]
        if local_ca:
            paths.append((ArtifactKind.LOCAL_CA, self.paths.local_ca_cert()))
            paths.append((ArtifactKind.LOCAL_CRL, self.paths.local_crl()))
        return paths

    @staticmethod
    def _load(path: Path, label: str, parser: Callable[[bytes], T]) -> T | None:
        if not path.exists():
            return None
        try:
            return parser(path.read_bytes())
        except (ValueError, TypeError) as exc:
            raise CredentialCorrupt(f"Failed to load {label} from {path}: {exc}") from exc
