from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from hostcert.services.settings import Settings
from hostcert.services.ssl.bootstrap import CaTrustBootstrapper
from hostcert.services.ssl.models import FetchResult, Found, NotFound, TrustContext
from hostcert.services.ssl.orchestrator import EnrollmentOrchestrator
from hostcert.services.ssl.store import CredentialStore
from hostcert.services.ssl.transport import CaHttpError
from hostcert.services.ssl.validator import TrustContextValidator

CA_ENDPOINT = "https://hostcert-ca:8140"


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def new_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


def pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


class TestPki:
    """Throwaway root -> intermediate -> leaf hierarchy."""

    __test__ = False

    def __init__(self, root_cn: str = "Test Root CA") -> None:
        self.root_key = new_key()
        self.root = self.issue(root_cn, self.root_key.public_key(), signer=None, signer_key=self.root_key, ca=True)
        self.intermediate_key = new_key()
        self.intermediate = self.issue(
            "Test Intermediate CA",
            self.intermediate_key.public_key(),
            signer=self.root,
            signer_key=self.root_key,
            ca=True,
        )

    @staticmethod
    def issue(
        common_name: str,
        public_key,
        *,
        signer: x509.Certificate | None,
        signer_key,
        ca: bool = False,
        not_before: datetime | None = None,
        not_after: datetime | None = None,
        serial: int | None = None,
    ) -> x509.Certificate:
        now = datetime.now(timezone.utc)
        subject = _name(common_name)
        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(signer.subject if signer is not None else subject)
            .public_key(public_key)
            .serial_number(serial or x509.random_serial_number())
            .not_valid_before(not_before or now - timedelta(days=1))
            .not_valid_after(not_after or now + timedelta(days=30))
            .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        )
        return builder.sign(signer_key, hashes.SHA256())

    @property
    def cacerts(self) -> list[x509.Certificate]:
        return [self.intermediate, self.root]

    @property
    def ca_bundle(self) -> bytes:
        return b"".join(pem(cert) for cert in self.cacerts)

    def leaf(self, identity: str, key, **kwargs) -> x509.Certificate:
        return self.issue(identity, key.public_key(), signer=self.intermediate, signer_key=self.intermediate_key, **kwargs)

    def sign_csr(self, csr_pem: str) -> bytes:
        csr = x509.load_pem_x509_csr(csr_pem.encode("ascii"))
        common_name = csr.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value
        cert = self.issue(
            common_name,
            csr.public_key(),
            signer=self.intermediate,
            signer_key=self.intermediate_key,
        )
        return pem(cert)

    @staticmethod
    def crl(issuer: x509.Certificate, issuer_key, revoked: tuple[int, ...] = (), next_update: datetime | None = None):
        now = datetime.now(timezone.utc)
        builder = (
            x509.CertificateRevocationListBuilder()
            .issuer_name(issuer.subject)
            .last_update(now - timedelta(hours=1))
            .next_update(next_update or now + timedelta(days=1))
        )
        for serial in revoked:
            builder = builder.add_revoked_certificate(
                x509.RevokedCertificateBuilder().serial_number(serial).revocation_date(now - timedelta(minutes=5)).build()
            )
        return builder.sign(issuer_key, hashes.SHA256())

    def crls(self, revoked: tuple[int, ...] = ()) -> list[x509.CertificateRevocationList]:
        return [
            self.crl(self.intermediate, self.intermediate_key, revoked),
            self.crl(self.root, self.root_key),
        ]

    def crl_bundle(self, revoked: tuple[int, ...] = ()) -> bytes:
        return b"".join(crl.public_bytes(serialization.Encoding.PEM) for crl in self.crls(revoked))


@dataclass
class FakeCaTransport:
    """In-memory CA that records every call.

    ``certificates`` maps an identity to either one scripted result or a list
    consumed one result per call (the last one repeats).
    """

    endpoint: str = CA_ENDPOINT
    ca_bundle: bytes | None = None
    crl_bundle: bytes | None = None
    certificates: dict[str, object] = field(default_factory=dict)
    signer: Callable[[str], bytes] | None = None
    submit_error: Exception | None = None
    fetch_error: Exception | None = None
    submitted: dict[str, str] = field(default_factory=dict)
    calls: list[tuple[str, object]] = field(default_factory=list)

    def submit_request(self, pem: str, identity: str, trust: TrustContext) -> None:
        self.calls.append(("submit_request", identity))
        if self.submit_error is not None:
            raise self.submit_error
        if identity in self.submitted or isinstance(self.certificates.get(identity), Found):
            raise CaHttpError(f"{identity} already has a requested certificate", status_code=400)
        self.submitted[identity] = pem
        if self.signer is not None:
            self.certificates[identity] = Found(self.signer(pem))

    def fetch_certificate(self, identity: str, trust: TrustContext) -> FetchResult:
        self.calls.append(("fetch_certificate", identity))
        if self.fetch_error is not None:
            raise self.fetch_error
        scripted = self.certificates.get(identity, NotFound())
        if isinstance(scripted, list):
            return scripted.pop(0) if len(scripted) > 1 else scripted[0]
        return scripted

    def fetch_ca_certificates(self, trust: TrustContext) -> FetchResult:
        self.calls.append(("fetch_ca_certificates", trust.insecure))
        return Found(self.ca_bundle) if self.ca_bundle is not None else NotFound()

    def fetch_crls(self, trust: TrustContext) -> FetchResult:
        self.calls.append(("fetch_crls", trust.insecure))
        return Found(self.crl_bundle) if self.crl_bundle is not None else NotFound()

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


def make_settings(base_dir, **overrides) -> Settings:
    env = {
        "HOSTCERT_BASE_DIR": str(base_dir),
        "HOSTCERT_CERTNAME": "agent01",
        "HOSTCERT_KEY_TYPE": "ec",
        "HOSTCERT_NAMED_CURVE": "secp256r1",
    }
    settings = Settings.from_sources(env=env)
    return settings.with_overrides(**overrides) if overrides else settings


@pytest.fixture(scope="session")
def test_pki() -> TestPki:
    return TestPki()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path / "hostcert", waitforcert=0)


@pytest.fixture
def store(settings) -> CredentialStore:
    return CredentialStore.from_settings(settings)


@pytest.fixture
def trusted_store(store, test_pki) -> CredentialStore:
    """Store that already holds the CA bundle and CRLs."""
    store.save_cacerts(test_pki.cacerts)
    store.save_crls(test_pki.crls())
    return store


@pytest.fixture
def fake_ca(test_pki) -> FakeCaTransport:
    return FakeCaTransport(ca_bundle=test_pki.ca_bundle, crl_bundle=test_pki.crl_bundle())


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_orchestrator(fake_ca, sleeps):
    def factory(settings: Settings) -> EnrollmentOrchestrator:
        store = CredentialStore.from_settings(settings)
        validator = TrustContextValidator(store, revocation=settings.certificate_revocation)
        return EnrollmentOrchestrator(
            settings,
            store=store,
            transport=fake_ca,
            validator=validator,
            bootstrapper=CaTrustBootstrapper(settings, store, fake_ca, validator),
            sleep=sleeps.append,
        )

    return factory


@pytest.fixture
def orchestrator(make_orchestrator, settings) -> EnrollmentOrchestrator:
    return make_orchestrator(settings)


def snapshot(root) -> set[str]:
    """Relative paths of every file below ``root``."""
    return {str(p.relative_to(root)) for p in root.rglob("*") if p.is_file()}


