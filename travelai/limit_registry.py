"""Per-tenant rate limit registry.

Resolves (tenant_id, operation_class) -> LimitDefinition with resolution order:
1. Tenant override (key: tenant:<id>:<class>)
2. Class default (key: <class>)
3. Fallback safe default (quota=100, per_seconds=60)

Overrides come from RATE_LIMITS_JSON, e.g.::

    {"tenant:acme:requests": {"quota": 500, "per_seconds": 60},
     "aiEvents": {"quota": 20, "per": 60}}

Clamps:
- quota >= 1 (values <=0 -> 1)
- per_seconds in [1, 86400]

The registry is immutable after construction; build a new one to reload.
"""
from __future__ import annotations

from collections.abc import Mapping
from json import loads
from typing import Any, TypedDict


class LimitDefinition(TypedDict):
    quota: int
    per_seconds: int


OPERATION_CLASSES = ("requests", "aiEvents", "requestsHour")

CLASS_DEFAULTS: dict[str, LimitDefinition] = {
    "requests": {"quota": 100, "per_seconds": 60},
    "aiEvents": {"quota": 50, "per_seconds": 60},
    "requestsHour": {"quota": 1000, "per_seconds": 3600},
}

# Built-in plans for the demo tenants
TENANT_DEFAULTS: dict[str, LimitDefinition] = {
    "tenant:tenant-1:requests": {"quota": 100, "per_seconds": 60},
    "tenant:tenant-1:aiEvents": {"quota": 50, "per_seconds": 60},
    "tenant:tenant-1:requestsHour": {"quota": 1000, "per_seconds": 3600},
    "tenant:tenant-2:requests": {"quota": 200, "per_seconds": 60},
    "tenant:tenant-2:aiEvents": {"quota": 100, "per_seconds": 60},
    "tenant:tenant-2:requestsHour": {"quota": 2000, "per_seconds": 3600},
    "tenant:test-tenant:requests": {"quota": 20, "per_seconds": 60},
    "tenant:test-tenant:aiEvents": {"quota": 10, "per_seconds": 60},
    "tenant:test-tenant:requestsHour": {"quota": 100, "per_seconds": 3600},
}

_FALLBACK: LimitDefinition = {"quota": 100, "per_seconds": 60}
_MAX_WINDOW = 86400


def _clamp(q: Any, p: Any) -> LimitDefinition:
    try:
        quota = int(q)
    except (TypeError, ValueError):
        quota = _FALLBACK["quota"]
    if quota < 1:
        quota = 1
    try:
        per = int(p)
    except (TypeError, ValueError):
        per = _FALLBACK["per_seconds"]
    if per < 1:
        per = 1
    if per > _MAX_WINDOW:
        per = _MAX_WINDOW
    return {"quota": quota, "per_seconds": per}


def parse_limits(raw: str | Mapping[str, Any] | None) -> tuple[dict[str, LimitDefinition], dict[str, LimitDefinition]]:
    """Split raw overrides into (tenant overrides, class defaults); bad JSON yields nothing."""
    if not raw:
        return {}, {}
    if isinstance(raw, str):
        try:
            data = loads(raw)
        except ValueError:
            return {}, {}
        if not isinstance(data, dict):
            return {}, {}
    else:
        data = dict(raw)
    tenant: dict[str, LimitDefinition] = {}
    default: dict[str, LimitDefinition] = {}
    for k, v in data.items():
        if not isinstance(v, Mapping):
            continue
        ld = _clamp(v.get("quota"), v.get("per") or v.get("per_seconds"))
        if k.startswith("tenant:"):
            tenant[k] = ld
        else:
            default[k] = ld
    return tenant, default


class LimitRegistry:
    def __init__(
        self,
        tenant_limits: Mapping[str, LimitDefinition] | None = None,
        default_limits: Mapping[str, LimitDefinition] | None = None,
    ) -> None:
        self._tenant: dict[str, LimitDefinition] = dict(tenant_limits or {})
        self._default: dict[str, LimitDefinition] = dict(default_limits or {})

    @classmethod
    def from_config(cls, overrides_raw: str | Mapping[str, Any] | None) -> LimitRegistry:
        t_over, d_over = parse_limits(overrides_raw)
        tenant = dict(TENANT_DEFAULTS)
        tenant.update(t_over)
        default = dict(CLASS_DEFAULTS)
        default.update(d_over)
        return cls(tenant, default)

    def get_limit(self, tenant_id: str, name: str) -> tuple[LimitDefinition, str]:
        t_key = f"tenant:{tenant_id}:{name}"
        if t_key in self._tenant:
            return self._tenant[t_key], "tenant"
        if name in self._default:
            return self._default[name], "default"
        return _FALLBACK, "fallback"

    def operation_classes(self) -> list[str]:
        names = list(OPERATION_CLASSES)
        for k in self._default:
            if k not in names:
                names.append(k)
        return names


__all__ = [
    "LimitDefinition",
    "LimitRegistry",
    "OPERATION_CLASSES",
    "CLASS_DEFAULTS",
    "parse_limits",
]
