"""Value types shared by the store, transport, validator and orchestrator."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Union
import re

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from hostcert.config.const import CA_NAME
from hostcert.services.ssl.enums import Action, ArtifactKind, RemoteAbsence
from hostcert.services.ssl.errors import InvalidIdentity

__all__ = [
    "check_identity",
    "TrustBundle",
    "TrustContext",
    "Found",
    "NotFound",
    "Failed",
    "FetchResult",
    "NotYetSigned",
    "AbsenceCheck",
    "VerifiedEntry",
    "RemovedArtifact",
    "ActionResult",
]

_IDENTITY_RE = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9._-]*$")


def check_identity(identity: str) -> str:
    """Return ``identity`` if it is safe to use as a file name component."""
    if not identity or not _IDENTITY_RE.match(identity):
        raise InvalidIdentity(identity)
    if identity.lower() == CA_NAME:
        raise InvalidIdentity(identity, "is reserved for the CA certificate")
    return identity


@dataclass(frozen=True, slots=True)
class TrustBundle:
    cacerts: tuple[x509.Certificate, ...] = ()
    crls: tuple[x509.CertificateRevocationList, ...] = ()


@dataclass(frozen=True, slots=True)
class TrustContext:
    """Trust material proven consistent by the validator.

    A context produced by the CA bootstrapper only carries the bundle. A
    client context additionally holds the private key, the client
    certificate and ``client_chain`` ordered leaf first, root last.
    """

    bundle: TrustBundle
    private_key: PrivateKeyTypes | None = None
    client_cert: x509.Certificate | None = None
    client_chain: tuple[x509.Certificate, ...] = ()
    insecure: bool = False

    @classmethod
    def insecure_context(cls) -> "TrustContext":
        """Context used only to download the CA certificate for the first time."""
        return cls(bundle=TrustBundle(), insecure=True)

    @property
    def cacerts(self) -> tuple[x509.Certificate, ...]:
        return self.bundle.cacerts

    @property
    def crls(self) -> tuple[x509.CertificateRevocationList, ...]:
        return self.bundle.crls


# ---- CA fetch results ----
@dataclass(frozen=True, slots=True)
class Found:
    content: bytes


@dataclass(frozen=True, slots=True)
class NotFound:
    pass


@dataclass(frozen=True, slots=True)
class Failed:
    cause: Exception


FetchResult = Union[Found, NotFound, Failed]


@dataclass(frozen=True, slots=True)
class NotYetSigned:
    """The CA has no certificate for ``identity`` yet; ask again later."""

    identity: str


@dataclass(frozen=True, slots=True)
class AbsenceCheck:
    status: RemoteAbsence
    cause: Exception | None = None

    @property
    def confirmed(self) -> bool:
        return self.status is RemoteAbsence.CONFIRMED


# ---- reports ----
@dataclass(frozen=True, slots=True)
class VerifiedEntry:
    label: str
    subject: str
    fingerprint: str


@dataclass(frozen=True, slots=True)
class RemovedArtifact:
    kind: ArtifactKind
    path: Path

    @property
    def label(self) -> str:
        return self.kind.value


@dataclass(slots=True)
class ActionResult:
    action: Action
    identity: str
    certificate: x509.Certificate | None = None
    pending: bool = False
    verified: list[VerifiedEntry] = field(default_factory=list)
    removed: list[RemovedArtifact] = field(default_factory=list)
