"""
DNS Commit Gateway backed by the Cloudflare v4 REST API.

The failover engine only needs `update_record`. The remaining operations
(zone lookup, record lookup, create, delete, token check) serve onboarding
and the startup self-test.
"""

from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from .config import CLOUDFLARE_API_BASE, CloudflareConfig
from .exceptions import DnsProviderError


@dataclass
class DnsRecord:
    """A DNS record as reported by the provider."""

    id: str
    zone_id: str
    type: str
    name: str
    content: str
    ttl: int = 1
    proxied: bool = False


@runtime_checkable
class DnsGateway(Protocol):
    """Protocol for the single write the failover engine performs."""

    @abstractmethod
    async def update_record(
        self,
        zone_id: str,
        record_id: str,
        kind: str,
        name: str,
        content: str,
        ttl: int,
        proxied: bool,
    ) -> DnsRecord:
        """
        Set the content of an existing record. Safe to repeat.

        Raises:
            DnsProviderError: If the provider rejects or fails the request
        """
        ...


class CloudflareClient:
    """Cloudflare DNS API client."""

    def __init__(
        self,
        api_token: str,
        base_url: str = CLOUDFLARE_API_BASE,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        simulation_mode: bool = False,
    ) -> None:
        """
        Initialize the client.

        Args:
            api_token: Cloudflare API token (Bearer)
            base_url: API base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
            simulation_mode: If True, writes are not sent and echo the request
        """
        self._api_token = api_token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._simulation_mode = simulation_mode

    @classmethod
    def from_config(
        cls, config: CloudflareConfig, simulation_mode: bool = False
    ) -> "CloudflareClient":
        return cls(
            api_token=config.api_token,
            base_url=config.base_url,
            simulation_mode=simulation_mode,
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method,
                    url,
                    headers=self._headers(),
                    params=params,
                    json=json_body,
                )
        except httpx.HTTPError as e:
            raise DnsProviderError(
                code="network_error",
                message=f"Cloudflare request failed: {e}",
                details={"method": method, "url": url},
            ) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise DnsProviderError(
                code="parse_error",
                message=f"Cloudflare returned non-JSON (HTTP {response.status_code})",
                details={"method": method, "url": url, "status_code": response.status_code},
            ) from e

        if response.status_code >= 400 or not payload.get("success", False):
            errors = payload.get("errors") or []
            summary = "; ".join(
                f"{err.get('code')}: {err.get('message')}" for err in errors if isinstance(err, dict)
            ) or f"HTTP {response.status_code}"
            raise DnsProviderError(
                code="api_error",
                message=f"Cloudflare API error: {summary}",
                details={
                    "method": method,
                    "url": url,
                    "status_code": response.status_code,
                    "errors": errors,
                },
            )
        return payload

    @staticmethod
    def _to_record(data: dict[str, Any], zone_id: str = "") -> DnsRecord:
        return DnsRecord(
            id=data.get("id", ""),
            zone_id=data.get("zone_id", zone_id),
            type=data.get("type", ""),
            name=data.get("name", ""),
            content=data.get("content", ""),
            ttl=int(data.get("ttl", 1)),
            proxied=bool(data.get("proxied", False)),
        )

    async def update_record(
        self,
        zone_id: str,
        record_id: str,
        kind: str,
        name: str,
        content: str,
        ttl: int,
        proxied: bool,
    ) -> DnsRecord:
        body = {
            "type": kind,
            "name": name,
            "content": content,
            "ttl": ttl,
            "proxied": proxied,
        }
        if self._simulation_mode:
            return DnsRecord(
                id=record_id, zone_id=zone_id, type=kind, name=name,
                content=content, ttl=ttl, proxied=proxied,
            )
        payload = await self._request(
            "PATCH", f"/zones/{zone_id}/dns_records/{record_id}", json_body=body
        )
        return self._to_record(payload.get("result") or {}, zone_id)

    async def create_record(
        self,
        zone_id: str,
        kind: str,
        name: str,
        content: str,
        ttl: int,
        proxied: bool = False,
    ) -> DnsRecord:
        body = {
            "type": kind,
            "name": name,
            "content": content,
            "ttl": ttl,
            "proxied": proxied,
        }
        payload = await self._request("POST", f"/zones/{zone_id}/dns_records", json_body=body)
        return self._to_record(payload.get("result") or {}, zone_id)

    async def delete_record(self, zone_id: str, record_id: str) -> None:
        await self._request("DELETE", f"/zones/{zone_id}/dns_records/{record_id}")

    async def list_records(
        self,
        zone_id: str,
        name: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> list[DnsRecord]:
        """List records in a zone, following pagination."""
        params: dict[str, Any] = {"per_page": 100}
        if name:
            params["name"] = name
        if kind:
            params["type"] = kind

        records: list[DnsRecord] = []
        page = 1
        while True:
            params["page"] = page
            payload = await self._request("GET", f"/zones/{zone_id}/dns_records", params=params)
            results = payload.get("result") or []
            records.extend(self._to_record(item, zone_id) for item in results)
            total_pages = (payload.get("result_info") or {}).get("total_pages", 1)
            if not results or page >= total_pages:
                break
            page += 1
        return records

    async def get_record_by_name(
        self, zone_id: str, name: str, kind: Optional[str] = None
    ) -> Optional[DnsRecord]:
        records = await self.list_records(zone_id, name=name, kind=kind)
        return records[0] if records else None

    async def zone_id_by_name(self, hostname: str) -> str:
        """
        Find the zone containing hostname.

        Tries the hostname and each parent (`a.b.example.com`, `b.example.com`,
        `example.com`) until a zone matches.

        Raises:
            DnsProviderError: If no zone matches
        """
        labels = hostname.strip(".").lower().split(".")
        for start in range(len(labels) - 1):
            candidate = ".".join(labels[start:])
            payload = await self._request("GET", "/zones", params={"name": candidate})
            results = payload.get("result") or []
            if results:
                return results[0].get("id", "")
        raise DnsProviderError(
            code="zone_not_found",
            message=f"No Cloudflare zone found for {hostname}",
            details={"hostname": hostname},
        )

    async def verify_token(self) -> bool:
        """Check that the API token is active."""
        payload = await self._request("GET", "/user/tokens/verify")
        return (payload.get("result") or {}).get("status") == "active"
