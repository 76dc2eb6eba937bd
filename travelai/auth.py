"""Bearer credential verification.

Two strategies are tried in order and the first success wins:

1. ``HmacTokenStrategy``: self-issued HS256 compact tokens (see ``jwt_utils``).
2. ``FederatedTokenStrategy``: identity-provider tokens checked by an HTTP call
   (Firebase ``accounts:lookup`` shape) with a bounded timeout.

``CredentialVerifier.try_verify`` returns a ``VerificationResult`` for callers
that early-return; ``verify`` raises ``Unauthorized``.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import requests

from .errors import Unauthorized
from .jwt_utils import JWTError, decode
from .metrics import Metrics, NoopMetrics

logger = logging.getLogger("travelai.auth")


@dataclass(frozen=True)
class Identity:
    id: str
    email: str | None = None
    name: str | None = None
    scopes: tuple[str, ...] = ()

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes


@dataclass(frozen=True)
class VerificationResult:
    identity: Identity | None = None
    reason: str | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.identity is not None


class TokenStrategy(Protocol):
    name: str

    def verify(self, token: str) -> VerificationResult: ...  # pragma: no cover - interface only


def normalize_scopes(scope: object) -> tuple[str, ...]:
    if not scope:
        return ()
    if isinstance(scope, list | tuple):
        return tuple(str(s) for s in scope if s)
    return tuple(s for s in re.split(r"[\s,]+", str(scope)) if s)


class HmacTokenStrategy:
    name = "hmac"

    def __init__(self, secret: str, *, leeway: int = 0, clock: Callable[[], float] = time.time) -> None:
        self._secret = secret
        self._leeway = leeway
        self._clock = clock

    def verify(self, token: str) -> VerificationResult:
        if not self._secret:
            return VerificationResult(reason="hmac_unconfigured", message="JWT secret not configured")
        try:
            claims = decode(token, secret=self._secret, leeway=self._leeway, clock=self._clock)
        except JWTError as e:
            return VerificationResult(reason=e.reason, message=str(e))
        return VerificationResult(
            identity=Identity(
                id=claims["sub"],
                email=claims.get("email"),
                name=claims.get("name"),
                scopes=normalize_scopes(claims.get("scope")),
            )
        )


class FederatedTokenStrategy:
    """Verify an identity-provider token by asking the provider who it belongs to."""

    name = "federated"

    def __init__(
        self,
        url: str,
        *,
        api_key: str = "",
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._timeout = timeout
        self._session = session or requests.Session()

    def verify(self, token: str) -> VerificationResult:
        params = {"key": self._api_key} if self._api_key else None
        try:
            resp = self._session.post(self._url, params=params, json={"idToken": token}, timeout=self._timeout)
        except requests.Timeout:
            logger.warning("identity provider timed out after %.1fs", self._timeout)
            return VerificationResult(reason="provider_timeout", message="identity provider timed out")
        except requests.RequestException as e:
            logger.warning("identity provider unreachable: %s", e)
            return VerificationResult(reason="provider_unreachable", message="identity provider unreachable")
        if resp.status_code != 200:
            return VerificationResult(reason="provider_rejected", message=f"identity provider returned {resp.status_code}")
        try:
            body = resp.json()
        except ValueError:
            return VerificationResult(reason="provider_bad_response", message="identity provider returned invalid JSON")
        users = body.get("users") if isinstance(body, dict) else None
        if not isinstance(users, list) or not users or not isinstance(users[0], dict):
            return VerificationResult(reason="provider_no_user", message="identity provider returned no user")
        user = users[0]
        uid = user.get("localId") or user.get("uid")
        if not isinstance(uid, str) or not uid:
            return VerificationResult(reason="sub", message="identity provider user has no id")
        return VerificationResult(
            identity=Identity(
                id=uid,
                email=user.get("email") or None,
                name=user.get("displayName") or None,
                scopes=normalize_scopes(user.get("scopes")),
            )
        )


@dataclass
class CredentialVerifier:
    strategies: Sequence[TokenStrategy] = field(default_factory=tuple)
    metrics: Metrics = field(default_factory=NoopMetrics)

    def try_verify(self, token: str | None) -> VerificationResult:
        if not token or not token.strip():
            return VerificationResult(reason="missing", message="Missing bearer token")
        last = VerificationResult(reason="no_strategy", message="No credential verifier configured")
        for strategy in self.strategies:
            result = strategy.verify(token.strip())
            if result.ok:
                return result
            logger.debug("strategy %s rejected token: %s", strategy.name, result.reason)
            last = result
        self.metrics.increment("auth.rejected", {"reason": last.reason or "unknown"})
        return last

    def verify(self, token: str | None) -> Identity:
        result = self.try_verify(token)
        if result.identity is None:
            raise Unauthorized(result.message or "Unauthorized")
        return result.identity

    def verify_header(self, authorization: str | None) -> Identity:
        return self.verify(bearer_from_header(authorization))


def bearer_from_header(authorization: str | None) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized("Missing bearer token")
    token = authorization[len("Bearer ") :].strip()
    if not token:
        raise Unauthorized("Empty bearer token")
    return token


def build_verifier(cfg, *, metrics: Metrics | None = None, clock: Callable[[], float] = time.time,
                   session: requests.Session | None = None) -> CredentialVerifier:
    strategies: list[TokenStrategy] = [HmacTokenStrategy(cfg.jwt_secret, leeway=cfg.jwt_leeway_seconds, clock=clock)]
    if cfg.identity_provider_url:
        strategies.append(
            FederatedTokenStrategy(
                cfg.identity_provider_url,
                api_key=cfg.identity_provider_api_key,
                timeout=cfg.identity_provider_timeout,
                session=session,
            )
        )
    return CredentialVerifier(strategies=tuple(strategies), metrics=metrics or NoopMetrics())


__all__ = [
    "Identity",
    "VerificationResult",
    "HmacTokenStrategy",
    "FederatedTokenStrategy",
    "CredentialVerifier",
    "bearer_from_header",
    "build_verifier",
    "normalize_scopes",
]
