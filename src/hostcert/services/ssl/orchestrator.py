"""Enrollment workflow for a host's SSL identity.

The lifecycle of one identity is::

    Absent -> KeyOnly -> RequestPending -> Certified
                 (submit)      (download, once signed)

Any state returns to ``Absent`` through :meth:`EnrollmentOrchestrator.clean`.
A download before the CA signed the request leaves the identity in
``RequestPending`` and yields :class:`NotYetSigned`, which is not an error.
"""
from __future__ import annotations

from functools import partial
from typing import Callable
import logging
import time

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from hostcert.services.crypto import pki
from hostcert.services.settings import Settings
from hostcert.services.ssl.bootstrap import CaTrustBootstrapper
from hostcert.services.ssl.enums import Action, RemoteAbsence
from hostcert.services.ssl.errors import (
    CertificateNotSigned,
    CleanupCheckFailed,
    CleanupGuard,
    CredentialMissing,
    DownloadFailed,
    RequestConflict,
    SslError,
    SubmissionFailed,
)
from hostcert.services.ssl.models import (
    AbsenceCheck,
    ActionResult,
    Failed,
    Found,
    NotFound,
    NotYetSigned,
    RemovedArtifact,
    TrustContext,
    VerifiedEntry,
    check_identity,
)
from hostcert.services.ssl.store import CredentialStore
from hostcert.services.ssl.transport import CaHttpClient, CaHttpError, CaTransport
from hostcert.services.ssl.validator import TrustContextValidator

__all__ = ["EnrollmentOrchestrator", "CA_LABEL", "CLIENT_LABEL"]

logger = logging.getLogger(__name__)

CA_LABEL = "CA certificate"
CLIENT_LABEL = "client certificate"


class EnrollmentOrchestrator:
    """Runs one SSL action for one identity."""

    _HANDLERS: dict[Action, str] = {
        Action.BOOTSTRAP: "_run_bootstrap",
        Action.SUBMIT_REQUEST: "_run_submit_request",
        Action.DOWNLOAD_CERT: "_run_download_cert",
        Action.VERIFY: "_run_verify",
        Action.CLEAN: "_run_clean",
    }

    def __init__(
        self,
        settings: Settings,
        *,
        store: CredentialStore,
        transport: CaTransport,
        validator: TrustContextValidator,
        bootstrapper: CaTrustBootstrapper | None = None,
        key_factory: Callable[[], PrivateKeyTypes] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.store = store
        self.transport = transport
        self.validator = validator
        self.bootstrapper = bootstrapper or CaTrustBootstrapper(settings, store, transport, validator)
        self.key_factory = key_factory or partial(
            pki.generate_private_key,
            settings.key_type,
            key_length=settings.key_length,
            named_curve=settings.named_curve,
        )
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, *, transport: CaTransport | None = None) -> "EnrollmentOrchestrator":
        store = CredentialStore.from_settings(settings)
        validator = TrustContextValidator(store, revocation=settings.certificate_revocation)
        return cls(
            settings,
            store=store,
            transport=transport or CaHttpClient.from_settings(settings),
            validator=validator,
        )

    @property
    def endpoint(self) -> str:
        return self.transport.endpoint

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def run(self, action: str | Action, identity: str | None = None, *, local_ca: bool = False) -> ActionResult:
        parsed = Action.parse(action)
        name = check_identity(identity or self.settings.certname)
        handler = getattr(self, self._HANDLERS[parsed])
        logger.debug("Running %s for %s", parsed, name)
        return handler(name, local_ca)

    def _run_bootstrap(self, identity: str, local_ca: bool) -> ActionResult:
        cert = self.bootstrap(identity)
        return ActionResult(Action.BOOTSTRAP, identity, certificate=cert)

    def _run_submit_request(self, identity: str, local_ca: bool) -> ActionResult:
        trust = self.bootstrapper.ensure_ca_certificates()
        self.submit_request(identity, trust)
        outcome = self.download_cert(identity, trust)
        if isinstance(outcome, NotYetSigned):
            logger.info("The certificate for '%s' has not yet been signed", identity)
            return ActionResult(Action.SUBMIT_REQUEST, identity, pending=True)
        return ActionResult(Action.SUBMIT_REQUEST, identity, certificate=outcome)

    def _run_download_cert(self, identity: str, local_ca: bool) -> ActionResult:
        trust = self.bootstrapper.ensure_ca_certificates()
        outcome = self.download_cert(identity, trust)
        if isinstance(outcome, NotYetSigned):
            return ActionResult(Action.DOWNLOAD_CERT, identity, pending=True)
        return ActionResult(Action.DOWNLOAD_CERT, identity, certificate=outcome)

    def _run_verify(self, identity: str, local_ca: bool) -> ActionResult:
        return ActionResult(Action.VERIFY, identity, verified=self.verify(identity))

    def _run_clean(self, identity: str, local_ca: bool) -> ActionResult:
        return ActionResult(Action.CLEAN, identity, removed=self.clean(identity, local_ca=local_ca))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def submit_request(self, identity: str, trust: TrustContext) -> None:
        key = self._ensure_private_key(identity)
        csr = self.store.create_request(identity, key)
        try:
            self.transport.submit_request(pki.csr_pem(csr), identity, trust)
        except CaHttpError as exc:
            if exc.is_conflict:
                raise RequestConflict(identity, self.endpoint) from exc
            raise SubmissionFailed(identity, self.endpoint, str(exc)) from exc
        except SslError:
            raise
        except Exception as exc:
            raise SubmissionFailed(identity, self.endpoint, str(exc)) from exc

        # The CA already holds the request; a failed local write is not rolled back remotely.
        self.store.save_request(identity, csr)
        logger.info("Submitted certificate request for '%s' to %s", identity, self.endpoint)

    def download_cert(self, identity: str, trust: TrustContext) -> x509.Certificate | NotYetSigned:
        key = self.store.load_private_key(identity)
        if key is None:
            raise CredentialMissing(
                f"The private key for '{identity}' is missing; run 'hostcert ssl submit_request' first"
            )

        logger.info("Downloading certificate '%s' from %s", identity, self.endpoint)
        result = self.transport.fetch_certificate(identity, trust)
        if isinstance(result, NotFound):
            logger.debug("No certificate for '%s' on %s yet", identity, self.endpoint)
            return NotYetSigned(identity)
        if isinstance(result, Failed):
            raise DownloadFailed(identity, self.endpoint, str(result.cause)) from result.cause

        try:
            cert = x509.load_pem_x509_certificate(result.content)
        except ValueError as exc:
            raise DownloadFailed(identity, self.endpoint, f"response is not a PEM certificate ({exc})") from exc

        # ValidationFailed propagates unwrapped; nothing is written on failure.
        self.validator.create_context(bundle=trust.bundle, private_key=key, client_cert=cert)

        self.store.save_client_cert(identity, cert)
        self.store.delete_request(identity)
        logger.info("Downloaded certificate '%s' with fingerprint %s", identity, pki.fingerprint(cert))
        return cert

    def verify(self, identity: str) -> list[VerifiedEntry]:
        context = self.validator.load_context(identity)
        chain = list(reversed(context.client_chain))
        entries: list[VerifiedEntry] = []
        for index, cert in enumerate(chain):
            label = CLIENT_LABEL if index == len(chain) - 1 else CA_LABEL
            entries.append(VerifiedEntry(label=label, subject=pki.subject_text(cert), fingerprint=pki.fingerprint(cert)))
        return entries

    def check_remote_absence(self, identity: str) -> AbsenceCheck:
        try:
            trust = self.bootstrapper.ensure_ca_certificates()
            result = self.transport.fetch_certificate(identity, trust)
        except Exception as exc:
            logger.debug("Could not query %s for '%s': %s", self.endpoint, identity, exc)
            return AbsenceCheck(RemoteAbsence.INDETERMINATE, exc)
        if isinstance(result, NotFound):
            return AbsenceCheck(RemoteAbsence.CONFIRMED)
        if isinstance(result, Found):
            return AbsenceCheck(RemoteAbsence.PRESENT)
        return AbsenceCheck(RemoteAbsence.INDETERMINATE, result.cause)

    def clean(self, identity: str, *, local_ca: bool = False) -> list[RemovedArtifact]:
        if identity == self.settings.ca_server:
            check = self.check_remote_absence(identity)
            if check.status is RemoteAbsence.PRESENT:
                raise CleanupGuard(identity)
            if not check.confirmed:
                raise CleanupCheckFailed(identity) from check.cause

        removed: list[RemovedArtifact] = []
        for kind, path in self.store.artifact_paths(identity, local_ca=local_ca):
            if not path.exists():
                continue
            path.unlink()
            logger.info("Removed %s %s", kind.value, path)
            removed.append(RemovedArtifact(kind=kind, path=path))
        return removed

    def bootstrap(self, identity: str) -> x509.Certificate:
        """Request and download a certificate, waiting for the CA to sign it.

        ``waitforcert`` is the polling interval; ``0`` means a single attempt.
        Polling stops once the next wait would exceed ``maxwaitforcert``.
        """
        trust = self.bootstrapper.ensure_ca_certificates()
        existing = self._existing_certificate(identity, trust)
        if existing is not None:
            logger.info("Certificate for '%s' is already present and valid", identity)
            return existing

        if self.store.load_request(identity) is None:
            self.submit_request(identity, trust)
        else:
            logger.info("Found pending certificate request for '%s'", identity)

        interval = self.settings.waitforcert
        limit = self.settings.maxwaitforcert
        attempts = 0
        waited = 0
        while True:
            attempts += 1
            outcome = self.download_cert(identity, trust)
            if isinstance(outcome, x509.Certificate):
                logger.info("Completed SSL initialization")
                return outcome
            if interval == 0:
                raise CertificateNotSigned(identity, "waitforcert is 0, not waiting for the CA to sign it")
            if waited + interval > limit:
                raise CertificateNotSigned(
                    identity, f"gave up after {attempts} attempt(s); maxwaitforcert is {limit} seconds"
                )
            logger.info("Couldn't fetch certificate from CA server; will try again in %d seconds", interval)
            self.sleep(interval)
            waited += interval

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _ensure_private_key(self, identity: str) -> PrivateKeyTypes:
        key = self.store.load_private_key(identity)
        if key is None:
            logger.info("Creating a new SSL key for %s", identity)
            key = self.key_factory()
            self.store.save_private_key(identity, key)
        return key

    def _existing_certificate(self, identity: str, trust: TrustContext) -> x509.Certificate | None:
        cert = self.store.load_client_cert(identity)
        if cert is None:
            return None
        key = self.store.load_private_key(identity)
        if key is None:
            raise CredentialMissing(
                f"The certificate for '{identity}' exists but its private key is missing; run 'hostcert ssl clean'"
            )
        self.validator.create_context(bundle=trust.bundle, private_key=key, client_cert=cert)
        return cert


_missing = set(Action) - set(EnrollmentOrchestrator._HANDLERS)
if _missing:  # pragma: no cover - guards against adding an Action without a handler
    raise RuntimeError(f"No handler for action(s): {', '.join(sorted(_missing))}")
