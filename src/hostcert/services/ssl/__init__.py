"""Client-side SSL enrollment against a remote certificate authority."""
from .errors import (
    CaBootstrapFailed,
    CertificateNotSigned,
    CleanupCheckFailed,
    CleanupGuard,
    CredentialCorrupt,
    CredentialMissing,
    DownloadFailed,
    InvalidIdentity,
    RequestConflict,
    SettingsError,
    SslError,
    SubmissionFailed,
    UnknownAction,
    ValidationFailed,
)
from .enums import Action, ArtifactKind, RemoteAbsence
from .models import (
    AbsenceCheck,
    ActionResult,
    Failed,
    Found,
    NotFound,
    NotYetSigned,
    RemovedArtifact,
    TrustBundle,
    TrustContext,
    VerifiedEntry,
    check_identity,
)

__all__ = [
    "CaBootstrapFailed",
    "CertificateNotSigned",
    "CleanupCheckFailed",
    "CleanupGuard",
    "CredentialCorrupt",
    "CredentialMissing",
    "DownloadFailed",
    "InvalidIdentity",
    "RequestConflict",
    "SettingsError",
    "SslError",
    "SubmissionFailed",
    "UnknownAction",
    "ValidationFailed",
    "Action",
    "ArtifactKind",
    "RemoteAbsence",
    "AbsenceCheck",
    "ActionResult",
    "Failed",
    "Found",
    "NotFound",
    "NotYetSigned",
    "RemovedArtifact",
    "TrustBundle",
    "TrustContext",
    "VerifiedEntry",
    "check_identity",
]
