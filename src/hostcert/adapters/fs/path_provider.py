# src/hostcert/adapters/fs/path_provider.py
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path

from hostcert.services.settings import Settings
from hostcert.services.ssl.models import check_identity


@dataclass(slots=True)
class PathProvider:
    """Single source of truth for SSL artifact locations. Always works with pathlib.Path."""

    ssl: Path

    # --- constructors ---
    @classmethod
    def from_settings(cls, settings: Settings) -> "PathProvider":
        return cls(ssl=Path(settings.ssl_dir).expanduser().resolve())

    # --- directories ---
    def private_keys_dir(self) -> Path:
        return self.ssl / "private_keys"

    def public_keys_dir(self) -> Path:
        return self.ssl / "public_keys"

    def requests_dir(self) -> Path:
        return self.ssl / "certificate_requests"

    def certs_dir(self) -> Path:
        return self.ssl / "certs"

    def private_dir(self) -> Path:
        return self.ssl / "private"

    # --- per-identity artifacts ---
    def private_key(self, identity: str) -> Path:
        return self.private_keys_dir() / f"{check_identity(identity)}.pem"

    def public_key(self, identity: str) -> Path:
        return self.public_keys_dir() / f"{check_identity(identity)}.pem"

    def request(self, identity: str) -> Path:
        return self.requests_dir() / f"{check_identity(identity)}.pem"

    def certificate(self, identity: str) -> Path:
        return self.certs_dir() / f"{check_identity(identity)}.pem"

    # --- shared artifacts ---
    def passfile(self) -> Path:
        return self.private_dir() / "password"

    def local_ca_cert(self) -> Path:
        return self.certs_dir() / "ca.pem"

    def local_crl(self) -> Path:
        return self.ssl / "crl.pem"
