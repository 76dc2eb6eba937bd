from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from collections.abc import Callable
from typing import Any, NotRequired, TypedDict

"""Compact HMAC token utilities (HS256).

Tokens are three base64url segments ``header.payload.signature``; the signature
is HMAC-SHA256 over ``header.payload`` with the shared secret. Claims:

 - ``sub`` (required, non-empty string)
 - ``exp`` (optional epoch seconds; checked with ``leeway``)
 - ``email`` / ``name`` / ``scope`` (optional passthrough)

Every rejection raises ``JWTError`` whose ``reason`` is a short stable slug
suitable for metrics tags.
"""


class JWTError(Exception):
    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message or reason)
        self.reason = reason


ALG_HS256 = "HS256"


class TokenClaims(TypedDict):
    sub: str
    exp: NotRequired[int]
    iat: NotRequired[int]
    email: NotRequired[str]
    name: NotRequired[str]
    scope: NotRequired[str | list[str]]


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    pad = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + pad)


def _sign(msg: bytes, secret: str) -> str:
    sig = hmac.new(secret.encode(), msg, hashlib.sha256).digest()
    return _b64url(sig)


def encode(payload: dict[str, Any], *, secret: str, ttl: int | None = None, now: float | None = None) -> str:
    """Sign ``payload``; ``ttl`` (seconds) adds ``iat``/``exp`` unless already present."""
    if not secret:
        raise JWTError("no_secret", "signing secret missing")
    header = {"alg": ALG_HS256, "typ": "JWT"}
    pl = payload.copy()
    if ttl is not None:
        issued = int(now if now is not None else time.time())
        pl.setdefault("iat", issued)
        pl.setdefault("exp", issued + ttl)
    header_b = _b64url(json.dumps(header, separators=(",", ":")).encode())
    payload_b = _b64url(json.dumps(pl, separators=(",", ":")).encode())
    sig = _sign(f"{header_b}.{payload_b}".encode(), secret)
    return f"{header_b}.{payload_b}.{sig}"


def decode(
    token: str,
    *,
    secret: str,
    leeway: int = 0,
    clock: Callable[[], float] = time.time,
) -> TokenClaims:
    if not secret:
        raise JWTError("no_secret", "server misconfigured: missing JWT secret")
    parts = token.split(".")
    if len(parts) != 3 or not all(parts):
        raise JWTError("malformed", "malformed bearer token")
    header_b, payload_b, sig = parts
    try:
        header_raw = json.loads(_b64url_decode(header_b))
    except (ValueError, UnicodeDecodeError) as e:
        raise JWTError("bad_header", "bad token header") from e
    if not isinstance(header_raw, dict):
        raise JWTError("bad_header", "bad token header type")
    alg = header_raw.get("alg", ALG_HS256)
    if alg != ALG_HS256:
        raise JWTError("alg", f"unsupported alg {alg!r}")
    expected = _sign(f"{header_b}.{payload_b}".encode(), secret)
    if not hmac.compare_digest(expected, sig):
        raise JWTError("bad_signature", "invalid bearer token signature")
    try:
        raw = json.loads(_b64url_decode(payload_b))
    except (ValueError, UnicodeDecodeError) as e:
        raise JWTError("bad_payload", "unable to parse token payload") from e
    if not isinstance(raw, dict):
        raise JWTError("bad_payload", "bad token payload type")
    sub = raw.get("sub")
    if not isinstance(sub, str) or not sub.strip():
        raise JWTError("sub", "token missing subject")
    exp = raw.get("exp")
    if exp is not None:
        if isinstance(exp, bool) or not isinstance(exp, int | float):
            raise JWTError("exp", "bad claim type exp")
        if clock() > exp + leeway:
            raise JWTError("expired", "token expired")
    claims: TokenClaims = {"sub": sub.strip()}
    if exp is not None:
        claims["exp"] = int(exp)
    for key in ("email", "name"):
        val = raw.get(key)
        if isinstance(val, str) and val:
            claims[key] = val  # type: ignore[literal-required]
    scope = raw.get("scope")
    if isinstance(scope, str | list):
        claims["scope"] = scope
    return claims


__all__ = ["JWTError", "TokenClaims", "encode", "decode"]
