"""HTTP client for the personnel API used by the CLI.

List calls return a ``FetchResult`` so callers must handle an empty result
and a failed fetch as distinct outcomes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

import httpx

logger = logging.getLogger("reserve_api.client")


@dataclass
class FetchResult:
    state: str  # loaded | empty | failed
    data: List[Any] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def loaded(cls, data: List[Any]) -> "FetchResult":
        return cls("loaded", list(data)) if data else cls("empty")

    @classmethod
    def failed(cls, error: str) -> "FetchResult":
        return cls("failed", error=error)

    @property
    def ok(self) -> bool:
        return self.state != "failed"


class ReserveApiClient:
    """Thin wrapper over the REST API with bearer authentication."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _get(self, path: str, params: Optional[dict] = None) -> httpx.Response:
        response = self._http.get(path, params={k: v for k, v in (params or {}).items() if v is not None})
        response.raise_for_status()
        return response

    def _fetch_list(self, path: str, key, params: Optional[dict] = None) -> FetchResult:
        try:
            body = self._get(path, params).json()
        except httpx.HTTPStatusError as e:
            try:
                payload = e.response.json()
            except ValueError:
                payload = None
            message = payload.get("message") if isinstance(payload, dict) else None
            logger.warning("GET %s failed with %s", path, e.response.status_code)
            return FetchResult.failed(message or f"HTTP {e.response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("GET %s failed: %s", path, e)
            return FetchResult.failed(str(e) or e.__class__.__name__)
        for part in key:
            body = body.get(part, {}) if isinstance(body, dict) else {}
        if not isinstance(body, list):
            return FetchResult.failed("Unexpected response shape")
        return FetchResult.loaded(body)

    def list_account_requests(self, status: Optional[str] = None) -> FetchResult:
        return self._fetch_list("/api/accounts", ("accounts",), {"status": status})

    def list_audit_logs(self, page: int = 1, limit: int = 50, **filters) -> FetchResult:
        params = {"page": page, "limit": limit, **filters}
        return self._fetch_list("/api/audit-logs", ("data", "logs"), params)

    def export_audit_logs(self, **filters) -> str:
        """Raw CSV of the filtered audit view. Raises ``httpx.HTTPError``."""
        return self._get("/api/audit-logs/export", filters).text
