"""
TenantClient SDK — sync client for PgTenant-Engine.

Used by operator tooling and other services to provision tenant databases
and manage their IP whitelists over the HTTP API.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

# Creating a tenant is not idempotent; only these are retried.
_RETRYABLE_METHODS = frozenset({"get", "delete"})


@dataclass
class ClientResult:
    """Outcome of one API call."""

    success: bool
    status_code: int = 0
    code: str = ""
    message: str = ""
    count: Optional[int] = None
    data: Any = None
    warning: dict[str, Any] = field(default_factory=dict)

    @property
    def stale(self) -> bool:
        """True when the change was stored but access control was not updated."""
        return bool(self.warning)


class TenantClient:
    """Synchronous HTTP client for PgTenant-Engine."""

    def __init__(
        self,
        server_url: str = "http://localhost:2600",
        api_key: Optional[str] = None,
        api_prefix: str = "/api",
        timeout: int = 30,
        max_retries: int = 3,
        retry_backoff_base: float = 0.5,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.api_prefix = api_prefix.rstrip("/")
        self.max_retries = max_retries
        self.retry_backoff_base = retry_backoff_base
        headers = {"X-Api-Key": api_key} if api_key else {}
        self._http = httpx.Client(
            base_url=self.server_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "TenantClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> ClientResult:
        """Send one request, retrying idempotent calls on timeouts and 5xx.

        Never raises for HTTP-level failures; the result carries the
        server's error code instead.
        """
        attempts = self.max_retries if method in _RETRYABLE_METHODS else 1
        last_error = ""
        for attempt in range(attempts):
            try:
                resp = self._http.request(method.upper(), f"{self.api_prefix}{path}", **kwargs)
            except httpx.TimeoutException:
                last_error = "timeout"
            except httpx.HTTPError as e:
                last_error = str(e)
            else:
                if resp.status_code >= 500 and attempt < attempts - 1:
                    last_error = f"HTTP {resp.status_code}"
                else:
                    return self._parse(resp)
            if attempt < attempts - 1:
                time.sleep(self.retry_backoff_base * (2 ** attempt))

        return ClientResult(
            success=False,
            code="CONNECTION_ERROR",
            message=f"All {attempts} attempts failed: {last_error}",
        )

    @staticmethod
    def _parse(resp: httpx.Response) -> ClientResult:
        try:
            body = resp.json()
        except json.JSONDecodeError:
            return ClientResult(
                success=False, status_code=resp.status_code,
                code="JSON_ERROR", message="Invalid JSON response",
            )
        return ClientResult(
            success=bool(body.get("success", resp.is_success)),
            status_code=resp.status_code,
            code=body.get("code", "") or body.get("warning", {}).get("code", ""),
            message=body.get("message", ""),
            count=body.get("count"),
            data=body.get("data"),
            warning=body.get("warning") or {},
        )

    # ── Databases ──

    def create_database(
        self,
        friendly_name: str,
        owner_email: str,
        max_connections: Optional[int] = None,
    ) -> ClientResult:
        """Provision a tenant. The password in ``data`` is shown only once."""
        body: dict[str, Any] = {"friendlyName": friendly_name, "ownerEmail": owner_email}
        if max_connections is not None:
            body["maxConnections"] = max_connections
        return self._request("post", "/databases", json=body)

    def list_databases(self) -> ClientResult:
        return self._request("get", "/databases")

    def get_database(self, database_id: str) -> ClientResult:
        return self._request("get", f"/databases/{database_id}")

    def get_stats(self, database_id: str) -> ClientResult:
        return self._request("get", f"/databases/{database_id}/stats")

    def get_connection_strings(self, database_id: str) -> ClientResult:
        return self._request("get", f"/databases/{database_id}/connection-strings")

    def delete_database(self, database_id: str) -> ClientResult:
        return self._request("delete", f"/databases/{database_id}")

    # ── Whitelist ──

    def add_ip(
        self, database_id: str, ip_address: str, description: Optional[str] = None,
    ) -> ClientResult:
        body: dict[str, Any] = {"ipAddress": ip_address}
        if description:
            body["description"] = description
        return self._request("post", f"/databases/{database_id}/whitelist", json=body)

    def list_ips(self, database_id: str) -> ClientResult:
        return self._request("get", f"/databases/{database_id}/whitelist")

    def remove_ip(self, database_id: str, entry_id: int) -> ClientResult:
        return self._request("delete", f"/databases/{database_id}/whitelist/{entry_id}")

    # ── Access control ──

    def recompile(self) -> ClientResult:
        return self._request("post", "/access-control/recompile")

    def installed_rules(self) -> ClientResult:
        return self._request("get", "/access-control/rules")

    # ── Audit ──

    def audit(
        self,
        resource_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> ClientResult:
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if resource_id:
            params["resource_id"] = resource_id
        if action:
            params["action"] = action
        return self._request("get", "/audit", params=params)

    # ── Health ──

    def health(self) -> dict[str, Any]:
        """Unauthenticated liveness check; raises httpx errors on failure."""
        resp = self._http.get("/health")
        resp.raise_for_status()
        return resp.json()
