"""Establishes trust in the CA before any client certificate exists."""
from __future__ import annotations

import logging

from cryptography import x509

from hostcert.services.crypto import pki
from hostcert.services.settings import Settings
from hostcert.services.ssl.errors import CaBootstrapFailed, ValidationFailed
from hostcert.services.ssl.models import Failed, FetchResult, Found, TrustBundle, TrustContext
from hostcert.services.ssl.store import CredentialStore
from hostcert.services.ssl.transport import CaTransport
from hostcert.services.ssl.validator import TrustContextValidator

__all__ = ["CaTrustBootstrapper"]

logger = logging.getLogger(__name__)


def _normalize_fingerprint(value: str) -> str:
    text = value.strip().upper()
    if text.startswith("SHA256"):
        text = text[len("SHA256"):]
    return text.strip(" ():").replace(":", "")


class CaTrustBootstrapper:
    """Loads the CA certificates and CRLs, downloading them on first use."""

    def __init__(
        self,
        settings: Settings,
        store: CredentialStore,
        transport: CaTransport,
        validator: TrustContextValidator,
    ) -> None:
        self.settings = settings
        self.store = store
        self.transport = transport
        self.validator = validator

    def ensure_ca_certificates(self) -> TrustContext:
        cacerts = self.store.load_cacerts()
        new_cacerts = not cacerts
        if new_cacerts:
            cacerts = self._download_cacerts()

        crls: list[x509.CertificateRevocationList] = []
        new_crls = False
        if self.settings.revocation_enabled:
            crls = self.store.load_crls() or []
            if not crls:
                crls = self._download_crls(cacerts)
                new_crls = True

        try:
            trust = self.validator.create_root_context(cacerts, crls)
        except ValidationFailed as exc:
            raise CaBootstrapFailed(f"The CA trust bundle is not usable: {exc}") from exc

        # persisted only once the bundle is known to be consistent
        if new_cacerts:
            self.store.save_cacerts(cacerts)
            logger.info("Downloaded CA certificates from %s", self.transport.endpoint)
        if new_crls:
            self.store.save_crls(crls)
            logger.info("Downloaded CRL from %s", self.transport.endpoint)
        return trust

    # ------------------------------------------------------------------
    def _download_cacerts(self) -> list[x509.Certificate]:
        content = self._expect_found(
            self.transport.fetch_ca_certificates(TrustContext.insecure_context()),
            "CA certificate",
        )
        try:
            cacerts = pki.load_pem_certificates(content)
        except ValueError as exc:
            raise CaBootstrapFailed(f"Failed to parse CA certificates: {exc}") from exc

        fingerprints = [pki.fingerprint(cert) for cert in cacerts]
        expected = self.settings.ca_fingerprint
        if expected:
            wanted = _normalize_fingerprint(expected)
            if not any(_normalize_fingerprint(fp) == wanted for fp in fingerprints):
                raise CaBootstrapFailed(
                    f"CA certificate fingerprint does not match the configured ca_fingerprint {expected}"
                )
        else:
            for cert, fp in zip(cacerts, fingerprints):
                logger.warning("Trusting CA certificate '%s' fingerprint %s on first use", pki.subject_text(cert), fp)
        return cacerts

    def _download_crls(self, cacerts: list[x509.Certificate]) -> list[x509.CertificateRevocationList]:
        trust = TrustContext(bundle=TrustBundle(cacerts=tuple(cacerts)))
        content = self._expect_found(self.transport.fetch_crls(trust), "CRL")
        try:
            return pki.load_pem_crls(content)
        except ValueError as exc:
            raise CaBootstrapFailed(f"Failed to parse CRL: {exc}") from exc

    def _expect_found(self, result: FetchResult, label: str) -> bytes:
        if isinstance(result, Found):
            return result.content
        if isinstance(result, Failed):
            raise CaBootstrapFailed(
                f"Failed to download {label} from {self.transport.endpoint}: {result.cause}"
            ) from result.cause
        raise CaBootstrapFailed(f"{label} is missing from {self.transport.endpoint}")
