"""Tenant resolution for the plugin API.

Candidates are extracted from the request by fixed precedence:

- API key:   body ``apiKey`` > query ``apiKey`` > header ``x-api-key``
- tenant id: body ``tenantId`` > query ``tenantId`` > header ``x-tenant-id`` > cookie ``tenantId``

A well-formed tenant id candidate is used directly (trusted internal callers);
otherwise the API key is looked up in the registry. The ``sources`` record of
where each raw value came from is logged for support and returned to callers,
but never consulted again once the tenant is resolved.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from types import MappingProxyType
from typing import Any

from .errors import MissingTenant

logger = logging.getLogger("travelai.tenant")

TENANT_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,127}$")

API_KEY_HEADER = "x-api-key"
TENANT_HEADER = "x-tenant-id"
TENANT_COOKIE = "tenantId"


@dataclass(frozen=True)
class TenantEntry:
    tenant_id: str
    name: str = ""
    enabled: bool = True


# Demo tenants; production deployments replace them via TENANT_REGISTRY_JSON
DEFAULT_TENANTS: dict[str, TenantEntry] = {
    "demo-key-1": TenantEntry("tenant-1", "Demo Tenant 1"),
    "demo-key-2": TenantEntry("tenant-2", "Demo Tenant 2"),
    "test-key": TenantEntry("test-tenant", "Test Tenant"),
}


class TenantRegistry:
    """Read-only ``api_key -> TenantEntry`` map, loaded once at startup."""

    def __init__(self, entries: Mapping[str, TenantEntry]) -> None:
        self._entries: Mapping[str, TenantEntry] = MappingProxyType(dict(entries))

    @classmethod
    def from_json(cls, raw: str | None, *, include_defaults: bool = True) -> TenantRegistry:
        entries: dict[str, TenantEntry] = dict(DEFAULT_TENANTS) if include_defaults else {}
        if raw:
            try:
                data = json.loads(raw)
            except ValueError as e:
                raise ValueError("TENANT_REGISTRY_JSON is not valid JSON") from e
            if not isinstance(data, dict):
                raise ValueError("TENANT_REGISTRY_JSON must be an object of api_key -> tenant")
            for key, value in data.items():
                if isinstance(value, str):
                    entries[key] = TenantEntry(value)
                elif isinstance(value, dict) and isinstance(value.get("tenantId"), str):
                    entries[key] = TenantEntry(
                        value["tenantId"],
                        str(value.get("name") or ""),
                        bool(value.get("enabled", True)),
                    )
                else:
                    raise ValueError(f"invalid registry entry for key {key!r}")
        return cls(entries)

    def lookup(self, api_key: str | None) -> TenantEntry | None:
        if not api_key:
            return None
        entry = self._entries.get(api_key)
        if entry is None or not entry.enabled:
            return None
        return entry

    def tenants(self) -> list[TenantEntry]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class TenantSources:
    body_api_key: str | None = None
    query_api_key: str | None = None
    header_api_key: str | None = None
    body_tenant_id: str | None = None
    query_tenant_id: str | None = None
    header_tenant_id: str | None = None
    cookie_tenant_id: str | None = None

    @property
    def api_key(self) -> str | None:
        return self.body_api_key or self.query_api_key or self.header_api_key

    @property
    def tenant_id(self) -> str | None:
        return self.body_tenant_id or self.query_tenant_id or self.header_tenant_id or self.cookie_tenant_id

    def to_dict(self) -> dict[str, str | None]:
        d = asdict(self)
        # camelCase on the wire, matching the JSON field names clients send
        return {
            "bodyApiKey": d["body_api_key"],
            "queryApiKey": d["query_api_key"],
            "headerApiKey": d["header_api_key"],
            "bodyTenantId": d["body_tenant_id"],
            "queryTenantId": d["query_tenant_id"],
            "headerTenantId": d["header_tenant_id"],
            "cookieTenantId": d["cookie_tenant_id"],
        }


@dataclass
class TenantExtraction:
    sources: TenantSources
    body: dict[str, Any] | None = None
    tenant_id: str | None = None


@dataclass
class TenantResolution:
    """Explicit outcome of tenant resolution; ``error`` is set iff ``tenant_id`` is not."""

    sources: TenantSources
    tenant_id: str | None = None
    error: MissingTenant | None = None
    body: dict[str, Any] | None = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.tenant_id is not None


def _clean(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def extract(request: Any) -> TenantExtraction:
    """Collect api key / tenant id candidates from body, query, headers and cookies."""
    body: dict[str, Any] | None = None
    if request.data:
        # widgets post JSON as text/plain to skip CORS preflight
        parsed = request.get_json(force=True, silent=True)
        if isinstance(parsed, dict):
            body = parsed
        else:
            logger.warning("request body is not a JSON object; ignoring it for tenant extraction")
    sources = TenantSources(
        body_api_key=_clean(body.get("apiKey")) if body else None,
        query_api_key=_clean(request.args.get("apiKey")),
        header_api_key=_clean(request.headers.get(API_KEY_HEADER)),
        body_tenant_id=_clean(body.get("tenantId")) if body else None,
        query_tenant_id=_clean(request.args.get("tenantId")),
        header_tenant_id=_clean(request.headers.get(TENANT_HEADER)),
        cookie_tenant_id=_clean(request.cookies.get(TENANT_COOKIE)),
    )
    return TenantExtraction(sources=sources, body=body)


class TenantResolver:
    def __init__(self, registry: TenantRegistry) -> None:
        self.registry = registry

    def resolve_tenant(self, api_key: str | None = None, tenant_id: str | None = None) -> str | None:
        if tenant_id and TENANT_ID_RE.match(tenant_id):
            return tenant_id
        if tenant_id:
            logger.info("tenant id candidate %r failed format check; trying api key", tenant_id)
        entry = self.registry.lookup(api_key)
        return entry.tenant_id if entry else None

    def resolve(self, request: Any, context: str = "") -> TenantResolution:
        extraction = extract(request)
        sources = extraction.sources
        tenant_id = self.resolve_tenant(sources.api_key, sources.tenant_id)
        extraction.tenant_id = tenant_id
        logger.info(
            {
                "event": "tenant_trace",
                "context": context or getattr(request, "path", ""),
                "resolved_tenant_id": tenant_id,
                **sources.to_dict(),
            }
        )
        if tenant_id is None:
            logger.warning("tenant id missing in %s", context or getattr(request, "path", ""))
            err = MissingTenant(sources=sources.to_dict())
            return TenantResolution(sources=sources, error=err, body=extraction.body)
        return TenantResolution(sources=sources, tenant_id=tenant_id, body=extraction.body)


__all__ = [
    "TenantEntry",
    "TenantRegistry",
    "TenantSources",
    "TenantExtraction",
    "TenantResolution",
    "TenantResolver",
    "extract",
    "DEFAULT_TENANTS",
]
