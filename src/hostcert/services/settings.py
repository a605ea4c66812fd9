# src/hostcert/services/settings.py
"""Resolved configuration for hostcert.

Values are layered: built-in defaults, then the YAML file
(``$HOSTCERT_CONFIG`` or ``<base_dir>/hostcert.yaml``), then ``HOSTCERT_*``
environment variables, then explicit overrides from the CLI. The resulting
:class:`Settings` object is immutable and handed to every component.
"""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping
import os
import re
import socket

import yaml

from hostcert.config import const
from hostcert.services.ssl.errors import SettingsError
from hostcert.services.ssl.models import check_identity

__all__ = ["Settings", "parse_duration"]

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdy]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400, "y": 365 * 86400}

_DURATION_FIELDS = {"waitforcert", "maxwaitforcert", "http_timeout"}
_INT_FIELDS = {"ca_port", "key_length"}
_PATH_FIELDS = {"base_dir", "ssl_dir", "device_dir", "log_file"}


def parse_duration(value: Any, *, field: str = "duration") -> int:
    """Parse ``30``, ``"30s"``, ``"5m"``, ``"1h"``, ``"2d"`` or ``"1y"`` into seconds."""
    if isinstance(value, bool):
        raise SettingsError(f"Invalid {field}: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise SettingsError(f"Invalid {field}: {value!r} must not be negative")
        return value
    match = _DURATION_RE.match(str(value))
    if not match:
        raise SettingsError(f"Invalid {field}: {value!r} (expected e.g. 30, 30s, 5m, 1h)")
    amount, unit = match.groups()
    return int(amount) * _DURATION_UNITS[unit]


def _default_certname() -> str:
    return socket.getfqdn().lower()


@dataclass(frozen=True, slots=True)
class Settings:
    base_dir: Path
    ssl_dir: Path
    device_dir: Path
    certname: str
    ca_server: str = const.DEFAULT_CA_SERVER
    ca_port: int = const.DEFAULT_CA_PORT
    key_type: str = const.DEFAULT_KEY_TYPE
    key_length: int = const.DEFAULT_KEY_LENGTH
    named_curve: str = const.DEFAULT_NAMED_CURVE
    waitforcert: int = const.DEFAULT_WAITFORCERT
    maxwaitforcert: int = const.DEFAULT_MAXWAITFORCERT
    ca_fingerprint: str | None = None
    certificate_revocation: str = const.DEFAULT_REVOCATION
    http_timeout: int = const.DEFAULT_HTTP_TIMEOUT
    log_file: Path | None = None

    # --- constructors ---
    @classmethod
    def from_sources(
        cls,
        *,
        config_path: Path | str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "Settings":
        env = os.environ if env is None else env
        base_dir = Path(env.get(f"{const.ENV_PREFIX}BASE_DIR") or const.DEFAULT_BASE_DIR).expanduser()

        explicit = config_path or env.get(f"{const.ENV_PREFIX}CONFIG")
        path = Path(explicit).expanduser() if explicit else base_dir / const.CONFIG_FILENAME
        file_values: dict[str, Any] = {}
        if path.exists():
            try:
                loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            except yaml.YAMLError as exc:
                raise SettingsError(f"Failed to parse {path}: {exc}") from exc
            if not isinstance(loaded, dict):
                raise SettingsError(f"Expected a mapping at the top of {path}")
            file_values = loaded
        elif explicit:
            raise SettingsError(f"Config file not found: {path}")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(file_values) - known)
        if unknown:
            raise SettingsError(f"Unknown settings in {path}: {', '.join(unknown)}")

        raw: dict[str, Any] = dict(file_values)
        for name in known:
            value = env.get(f"{const.ENV_PREFIX}{name.upper()}")
            if value:
                raw[name] = value
        raw.setdefault("base_dir", base_dir)
        return cls._build(raw)

    @classmethod
    def _build(cls, raw: Mapping[str, Any]) -> "Settings":
        values: dict[str, Any] = {}
        for name, value in raw.items():
            if value is None:
                continue
            if name in _DURATION_FIELDS:
                values[name] = parse_duration(value, field=name)
            elif name in _INT_FIELDS:
                try:
                    values[name] = int(value)
                except (TypeError, ValueError) as exc:
                    raise SettingsError(f"Invalid {name}: {value!r}") from exc
            elif name in _PATH_FIELDS:
                values[name] = Path(str(value)).expanduser()
            elif isinstance(value, bool):
                # YAML reads an unquoted `false` as a boolean
                values[name] = "true" if value else "false"
            else:
                values[name] = str(value)

        base_dir = values.setdefault("base_dir", Path(const.DEFAULT_BASE_DIR).expanduser())
        values.setdefault("ssl_dir", base_dir / "ssl")
        values.setdefault("device_dir", base_dir / "devices")
        values.setdefault("certname", _default_certname())
        settings = cls(**values)
        settings._check()
        return settings

    def _check(self) -> None:
        if self.key_type not in ("rsa", "ec"):
            raise SettingsError(f"Invalid key_type: {self.key_type!r} (expected 'rsa' or 'ec')")
        if self.key_type == "rsa" and self.key_length < 2048:
            raise SettingsError(f"Invalid key_length: {self.key_length} (minimum is 2048)")
        if self.certificate_revocation not in const.REVOCATION_MODES:
            raise SettingsError(
                f"Invalid certificate_revocation: {self.certificate_revocation!r} "
                f"(expected one of {', '.join(const.REVOCATION_MODES)})"
            )
        if not self.certname:
            raise SettingsError("certname must not be empty")

    # --- derived copies ---
    def with_overrides(self, **overrides: Any) -> "Settings":
        updated = replace(self, **overrides)
        updated._check()
        return updated

    def for_target(self, certname: str) -> "Settings":
        """Settings for managing a device certificate instead of this host's."""
        device_root = self.device_dir / check_identity(certname)
        return self.with_overrides(certname=certname, ssl_dir=device_root / "ssl")

    # --- convenience ---
    @property
    def ca_endpoint(self) -> str:
        return f"https://{self.ca_server}:{self.ca_port}"

    @property
    def revocation_enabled(self) -> bool:
        return self.certificate_revocation != "false"
