# src/hostcert/services/ssl/transport.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Protocol
from urllib.parse import quote
import logging
import ssl

import httpx

from hostcert.build_info import BUILD_INFO
from hostcert.config.const import CA_API_PREFIX, CA_NAME
from hostcert.services.crypto import pki
from hostcert.services.settings import Settings
from hostcert.services.ssl.models import Failed, FetchResult, Found, NotFound, TrustContext

__all__ = ["CaHttpError", "CaTransport", "CaHttpClient"]

logger = logging.getLogger(__name__)


class CaHttpError(RuntimeError):
    """Raised when the CA returns an error response or cannot be reached.

    ``status_code`` is ``0`` for connection-level failures.
    """

    def __init__(self, message: str, *, status_code: int):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_conflict(self) -> bool:
        return self.status_code in (400, 409)


class CaTransport(Protocol):
    endpoint: str

    def submit_request(self, pem: str, identity: str, trust: TrustContext) -> None: ...
    def fetch_certificate(self, identity: str, trust: TrustContext) -> FetchResult: ...
    def fetch_ca_certificates(self, trust: TrustContext) -> FetchResult: ...
    def fetch_crls(self, trust: TrustContext) -> FetchResult: ...


@dataclass(slots=True)
class CaHttpClient:
    """HTTP client for the CA REST API."""

    base_url: str
    timeout: float = 30.0
    # Injected by tests (httpx.MockTransport); production uses httpx defaults.
    transport: httpx.BaseTransport | None = None
    default_headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings, *, transport: httpx.BaseTransport | None = None) -> "CaHttpClient":
        headers = {"User-Agent": BUILD_INFO.user_agent, "Accept": "text/plain"}
        return cls(
            base_url=settings.ca_endpoint,
            timeout=float(settings.http_timeout),
            transport=transport,
            default_headers=headers,
        )

    @property
    def endpoint(self) -> str:
        return self.base_url.rstrip("/")

    # ---------- CA endpoints --------------------------------------------------
    def submit_request(self, pem: str, identity: str, trust: TrustContext) -> None:
        self._request(
            "PUT",
            f"{CA_API_PREFIX}/certificate_request/{quote(identity, safe='')}",
            content=pem.encode("ascii"),
            headers={"Content-Type": "text/plain"},
            trust=trust,
        )

    def fetch_certificate(self, identity: str, trust: TrustContext) -> FetchResult:
        return self._fetch(f"{CA_API_PREFIX}/certificate/{quote(identity, safe='')}", trust)

    def fetch_ca_certificates(self, trust: TrustContext) -> FetchResult:
        return self._fetch(f"{CA_API_PREFIX}/certificate/{CA_NAME}", trust)

    def fetch_crls(self, trust: TrustContext) -> FetchResult:
        return self._fetch(f"{CA_API_PREFIX}/certificate_revocation_list/{CA_NAME}", trust)

    # ---------- plumbing -----------------------------------------------------
    def _fetch(self, path: str, trust: TrustContext) -> FetchResult:
        try:
            response = self._request("GET", path, trust=trust)
        except CaHttpError as exc:
            if exc.status_code == 404:
                return NotFound()
            return Failed(exc)
        return Found(response.content)

    @staticmethod
    def _verify(trust: TrustContext) -> ssl.SSLContext | bool:
        if trust.insecure:
            return False
        if not trust.cacerts:
            return True
        context = ssl.create_default_context(cadata=pki.certificates_pem(trust.cacerts).decode("ascii"))
        return context

    def _request(
        self,
        method: str,
        path: str,
        *,
        trust: TrustContext,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        request_headers = dict(self.default_headers)
        if headers:
            request_headers.update({str(k): str(v) for k, v in headers.items()})
        url = f"{self.endpoint}{path}"
        logger.debug("%s %s", method, url)
        try:
            with httpx.Client(
                timeout=self.timeout,
                verify=self._verify(trust),
                transport=self.transport,
            ) as client:
                response = client.request(method, url, content=content, headers=request_headers)
        except httpx.RequestError as exc:
            raise CaHttpError(f"{method} {url} failed: {exc}", status_code=0) from exc
        except ssl.SSLError as exc:
            raise CaHttpError(f"{method} {url} failed: {exc}", status_code=0) from exc

        if response.status_code >= 400:
            detail = response.text.strip()
            raise CaHttpError(
                f"{method} {url} failed with status {response.status_code}: {detail or 'no body'}",
                status_code=response.status_code,
            )
        return response
