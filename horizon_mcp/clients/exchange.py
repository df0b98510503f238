"""HTTP client for the Open Horizon Exchange API.

Every failure is returned as an error ``ResourceResponse``; nothing raises
across ``fetch``. Requests are never retried because the same client backs
create/delete flows where a blind retry is unsafe.
"""

import logging
from typing import Any
from urllib.parse import quote

import requests

from horizon_mcp.core.config import DEFAULT_REQUEST_TIMEOUT, ServerConfig
from horizon_mcp.core.types import ErrorCode, ResourceResponse

_client_log = logging.getLogger("horizon_mcp.clients.exchange")

FETCH_ERROR_PREFIX = "Error fetching data"


class ExchangeClient:
    """Read-only client for Exchange resources scoped to one organization."""

    def __init__(
        self,
        base_url: str,
        org: str,
        credential: str | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.org = org
        self.credential = credential
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: ServerConfig) -> "ExchangeClient":
        return cls(
            base_url=config.exchange_url,
            org=config.exchange_org,
            credential=config.exchange_credential,
            timeout=config.request_timeout,
        )

    def url_for(self, *segments: str) -> str:
        """Build ``<base>/<org>/<segments...>`` with each segment URL-quoted."""
        path = "/".join(quote(str(segment), safe="") for segment in (self.org, *segments))
        return f"{self.base_url}/{path}"

    def auth_headers(self) -> dict[str, str]:
        if not self.credential:
            return {}
        return {"Authorization": f"Basic {self.credential}"}

    def fetch(self, url: str, headers: dict[str, str] | None = None) -> ResourceResponse:
        """GET ``url`` and return the parsed JSON body or an error envelope."""
        final_headers: dict[str, Any] = {"Accept": "application/json", **self.auth_headers()}
        if headers:
            final_headers.update(headers)

        try:
            response = requests.get(url, headers=final_headers, timeout=self.timeout)
        except requests.RequestException as e:
            _client_log.warning(
                "exchange_transport_error url=%s error=%s",
                url,
                str(e),
                extra={"url": url, "error": str(e)},
            )
            return ResourceResponse.error(
                ErrorCode.REMOTE_TRANSPORT_ERROR,
                f"{FETCH_ERROR_PREFIX}: {str(e) or 'Unknown error'}",
            )

        if not response.ok:
            _client_log.warning(
                "exchange_http_error url=%s status=%s",
                url,
                response.status_code,
                extra={"url": url, "status_code": response.status_code},
            )
            return ResourceResponse.error(
                ErrorCode.REMOTE_HTTP_ERROR,
                f"{FETCH_ERROR_PREFIX}: {response.status_code} {response.reason or ''}".rstrip(),
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            _client_log.warning(
                "exchange_parse_error url=%s error=%s",
                url,
                str(e),
                extra={"url": url, "error": str(e)},
            )
            return ResourceResponse.error(
                ErrorCode.REMOTE_TRANSPORT_ERROR,
                f"{FETCH_ERROR_PREFIX}: invalid JSON response ({e})",
                status_code=response.status_code,
            )

        _client_log.debug("exchange_fetch url=%s status=%s", url, response.status_code)
        return ResourceResponse.remote(payload, status_code=response.status_code)
