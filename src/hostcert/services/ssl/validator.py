"""Construction of validated trust contexts.

Building a :class:`TrustContext` is the single place where cryptographic
correctness is enforced: the client certificate must match the private key,
chain to a self-signed CA certificate in the bundle, be inside its validity
window and, depending on ``certificate_revocation``, not be revoked.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterable, Sequence
import logging

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from hostcert.services.crypto import pki
from hostcert.services.ssl.errors import CredentialMissing, ValidationFailed
from hostcert.services.ssl.models import TrustBundle, TrustContext
from hostcert.services.ssl.store import CredentialStore

__all__ = ["TrustContextValidator"]

logger = logging.getLogger(__name__)

# Upper bound on chain length; protects against issuer loops in a bad bundle.
_MAX_CHAIN_DEPTH = 10


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _describe(cert: x509.Certificate) -> str:
    return pki.subject_text(cert) or f"serial {cert.serial_number}"


class TrustContextValidator:
    def __init__(
        self,
        store: CredentialStore,
        *,
        revocation: str = "chain",
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self.store = store
        self.revocation = revocation
        self.clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def create_root_context(
        self,
        cacerts: Sequence[x509.Certificate],
        crls: Sequence[x509.CertificateRevocationList] = (),
    ) -> TrustContext:
        """Context holding only CA material, usable before a client certificate exists."""
        if not cacerts:
            raise ValidationFailed("The CA certificate bundle is empty")
        for cert in cacerts:
            if not self._is_ca(cert):
                raise ValidationFailed(f"The certificate '{_describe(cert)}' is not a CA certificate")
        for crl in crls:
            self._find_crl_issuer(crl, cacerts)
        return TrustContext(bundle=TrustBundle(cacerts=tuple(cacerts), crls=tuple(crls)))

    def create_context(
        self,
        *,
        bundle: TrustBundle,
        private_key: PrivateKeyTypes,
        client_cert: x509.Certificate,
    ) -> TrustContext:
        if not bundle.cacerts:
            raise ValidationFailed("The CA certificate bundle is empty")
        if not pki.keys_match(client_cert, private_key):
            raise ValidationFailed(f"The certificate for '{_describe(client_cert)}' does not match its private key")

        chain = self._build_chain(client_cert, bundle.cacerts)
        now = self.clock()
        for cert in chain:
            self._check_validity(cert, now)
        self._check_revocation(chain, bundle.crls, now)

        logger.debug("Validated chain of %d certificate(s) for %s", len(chain), _describe(client_cert))
        return TrustContext(
            bundle=bundle,
            private_key=private_key,
            client_cert=client_cert,
            client_chain=tuple(chain),
        )

    def load_context(self, identity: str) -> TrustContext:
        """Build a client context purely from local state; no network access."""
        cacerts = self.store.load_cacerts()
        if not cacerts:
            raise CredentialMissing(f"The CA certificates are missing from '{self.store.paths.local_ca_cert()}'")
        crls: list[x509.CertificateRevocationList] = []
        if self.revocation != "false":
            crls = self.store.load_crls() or []
            if not crls:
                raise CredentialMissing(f"The CRL is missing from '{self.store.paths.local_crl()}'")
        key = self.store.load_private_key(identity)
        if key is None:
            raise CredentialMissing(f"The private key is missing from '{self.store.paths.private_key(identity)}'")
        cert = self.store.load_client_cert(identity)
        if cert is None:
            raise CredentialMissing(f"The client certificate is missing from '{self.store.paths.certificate(identity)}'")
        return self.create_context(
            bundle=TrustBundle(cacerts=tuple(cacerts), crls=tuple(crls)),
            private_key=key,
            client_cert=cert,
        )

    # ------------------------------------------------------------------
    # Chain building
    # ------------------------------------------------------------------
    @staticmethod
    def _is_ca(cert: x509.Certificate) -> bool:
        try:
            constraints = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
        except x509.ExtensionNotFound:
            return False
        return constraints.ca

    @staticmethod
    def _issued_by(cert: x509.Certificate, issuer: x509.Certificate) -> bool:
        if cert.issuer != issuer.subject:
            return False
        try:
            cert.verify_directly_issued_by(issuer)
        except (ValueError, TypeError, InvalidSignature):
            return False
        return True

    def _build_chain(self, leaf: x509.Certificate, cacerts: Iterable[x509.Certificate]) -> list[x509.Certificate]:
        candidates = [cert for cert in cacerts if self._is_ca(cert)]
        chain = [leaf]
        current = leaf
        while not pki.is_self_signed(current):
            if len(chain) > _MAX_CHAIN_DEPTH:
                raise ValidationFailed(f"The certificate chain for '{_describe(leaf)}' is too long")
            issuer = next((ca for ca in candidates if ca not in chain and self._issued_by(current, ca)), None)
            if issuer is None:
                raise ValidationFailed(
                    f"The certificate '{_describe(current)}' is not trusted: unable to get local issuer certificate"
                )
            chain.append(issuer)
            current = issuer
        if current is leaf:
            raise ValidationFailed(f"The certificate '{_describe(leaf)}' is self-signed and not issued by a trusted CA")
        return chain

    @staticmethod
    def _check_validity(cert: x509.Certificate, now: datetime) -> None:
        if now < cert.not_valid_before_utc:
            raise ValidationFailed(f"The certificate '{_describe(cert)}' is not yet valid")
        if now > cert.not_valid_after_utc:
            raise ValidationFailed(f"The certificate '{_describe(cert)}' has expired")

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------
    def _check_revocation(
        self,
        chain: Sequence[x509.Certificate],
        crls: Sequence[x509.CertificateRevocationList],
        now: datetime,
    ) -> None:
        if self.revocation == "false":
            return
        # root is trusted directly; only issued certificates are checked
        checked = chain[:1] if self.revocation == "leaf" else chain[:-1]
        for index, cert in enumerate(checked):
            issuer = chain[index + 1]
            crl = next((c for c in crls if c.issuer == issuer.subject and c.is_signature_valid(issuer.public_key())), None)
            if crl is None:
                raise ValidationFailed(f"The CRL issued by '{_describe(issuer)}' is missing")
            next_update = crl.next_update_utc
            if next_update is not None and now > next_update:
                raise ValidationFailed(f"The CRL issued by '{_describe(issuer)}' has expired")
            if crl.get_revoked_certificate_by_serial_number(cert.serial_number) is not None:
                raise ValidationFailed(f"The certificate '{_describe(cert)}' has been revoked")

    @staticmethod
    def _find_crl_issuer(
        crl: x509.CertificateRevocationList,
        cacerts: Sequence[x509.Certificate],
    ) -> x509.Certificate:
        for ca in cacerts:
            if crl.issuer == ca.subject and crl.is_signature_valid(ca.public_key()):
                return ca
        raise ValidationFailed(f"The CRL issued by '{crl.issuer.rfc4514_string()}' is not signed by a trusted CA")
