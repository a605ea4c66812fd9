"""Errors raised by the SSL enrollment workflow.

Every error the CLI is expected to report derives from :class:`SslError`,
which carries the process exit code used by the front-end. A certificate the
CA has not signed yet is a normal outcome, modelled by
:class:`hostcert.services.ssl.models.NotYetSigned`.
"""
from __future__ import annotations

__all__ = [
    "SslError",
    "SettingsError",
    "UnknownAction",
    "InvalidIdentity",
    "CredentialMissing",
    "CredentialCorrupt",
    "RequestConflict",
    "SubmissionFailed",
    "DownloadFailed",
    "ValidationFailed",
    "CaBootstrapFailed",
    "CertificateNotSigned",
    "CleanupGuard",
    "CleanupCheckFailed",
]


class SslError(RuntimeError):
    """Base class for user-facing enrollment failures."""

    exit_code: int = 1

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class SettingsError(SslError):
    """Raised when configuration values cannot be parsed."""


class UnknownAction(SslError):
    exit_code: int = 2

    def __init__(self, action: str) -> None:
        super().__init__(f"Unknown action '{action}'")
        self.action = action


class InvalidIdentity(SslError):
    """Raised for certnames that are not safe to use as file names."""

    def __init__(self, identity: str, reason: str | None = None) -> None:
        reason = reason or "must match [A-Za-z0-9._-] and must not start with '.'"
        super().__init__(f"Certname '{identity}' {reason}")
        self.identity = identity


class CredentialMissing(SslError):
    """Raised when a required local artifact (key, certificate, CA bundle) is absent."""


class CredentialCorrupt(SslError):
    """Raised when a local artifact exists but cannot be parsed."""


class RequestConflict(SslError):
    """The CA already holds a request or certificate for this identity."""

    def __init__(self, identity: str, endpoint: str) -> None:
        super().__init__(
            f"Could not submit certificate request for '{identity}' to {endpoint} due to a conflict on the server"
        )
        self.identity = identity
        self.endpoint = endpoint


class SubmissionFailed(SslError):
    def __init__(self, identity: str, endpoint: str, reason: str) -> None:
        super().__init__(f"Failed to submit certificate request for '{identity}' to {endpoint}: {reason}")
        self.identity = identity
        self.endpoint = endpoint


class DownloadFailed(SslError):
    def __init__(self, identity: str, endpoint: str, reason: str) -> None:
        super().__init__(f"Failed to download certificate '{identity}' from {endpoint}: {reason}")
        self.identity = identity
        self.endpoint = endpoint


class ValidationFailed(SslError):
    """A certificate did not match its key, did not chain to a trusted root, or was revoked."""


class CaBootstrapFailed(SslError):
    """The CA certificate or CRL bundle could not be obtained or trusted."""


class CertificateNotSigned(SslError):
    """Bootstrap stopped waiting for the CA to sign the request."""

    def __init__(self, identity: str, reason: str) -> None:
        super().__init__(f"Certificate for '{identity}' has not been signed: {reason}")
        self.identity = identity


class CleanupGuard(SslError):
    """The CA still holds the certificate of its own host identity."""

    def __init__(self, identity: str) -> None:
        super().__init__(
            f"The certificate {identity} must be cleaned from the CA first. To fix this,\n"
            f"revoke and remove '{identity}' on the CA, then run:\n"
            f"  hostcert ssl clean"
        )
        self.identity = identity


class CleanupCheckFailed(SslError):
    def __init__(self, identity: str) -> None:
        super().__init__(
            f"Failed to connect to the CA to determine if certificate {identity} has been cleaned"
        )
        self.identity = identity
