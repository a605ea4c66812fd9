"""Enumerations for the enrollment workflow."""
from __future__ import annotations

from enum import Enum

from hostcert.services.ssl.errors import UnknownAction

__all__ = ["Action", "RemoteAbsence", "ArtifactKind"]


class _StrEnum(str, Enum):
    """Simple ``str``-backed enum compatible with Python 3.10."""

    def __str__(self) -> str:  # pragma: no cover - convenience for logging only
        return str(self.value)


class Action(_StrEnum):
    BOOTSTRAP = "bootstrap"
    SUBMIT_REQUEST = "submit_request"
    DOWNLOAD_CERT = "download_cert"
    VERIFY = "verify"
    CLEAN = "clean"

    @classmethod
    def parse(cls, token: "str | Action") -> "Action":
        if isinstance(token, cls):
            return token
        try:
            return cls(str(token).strip())
        except ValueError:
            raise UnknownAction(str(token)) from None


class RemoteAbsence(_StrEnum):
    """Outcome of asking the CA whether it still holds a certificate."""

    CONFIRMED = "confirmed"
    PRESENT = "present"
    INDETERMINATE = "indeterminate"


class ArtifactKind(_StrEnum):
    PRIVATE_KEY = "private key"
    PUBLIC_KEY = "public key"
    REQUEST = "certificate request"
    CERTIFICATE = "certificate"
    PASSWORD_FILE = "private key password file"
    LOCAL_CA = "local CA certificate"
    LOCAL_CRL = "local CRL"
