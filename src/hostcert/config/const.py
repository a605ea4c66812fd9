# src/hostcert/config/const.py
from __future__ import annotations

# Hard defaults; every one of them can be overridden through Settings.
DEFAULT_BASE_DIR: str = "~/.hostcert"
CONFIG_FILENAME: str = "hostcert.yaml"
ENV_PREFIX: str = "HOSTCERT_"

DEFAULT_CA_SERVER: str = "hostcert-ca"
DEFAULT_CA_PORT: int = 8140
CA_API_PREFIX: str = "/ca/v1"
# Name under which the CA publishes its own certificate and CRL.
CA_NAME: str = "ca"

DEFAULT_KEY_TYPE: str = "rsa"
DEFAULT_KEY_LENGTH: int = 4096
DEFAULT_NAMED_CURVE: str = "secp384r1"

DEFAULT_WAITFORCERT: int = 120
DEFAULT_MAXWAITFORCERT: int = 3600
DEFAULT_HTTP_TIMEOUT: int = 30

REVOCATION_MODES: tuple[str, ...] = ("chain", "leaf", "false")
DEFAULT_REVOCATION: str = "chain"
