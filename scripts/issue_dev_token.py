"""Issue an HS256 bearer token for local development.

Usage: python scripts/issue_dev_token.py --sub user-1 [--name Ada] [--scope admin] [--ttl 3600]
Reads JWT_SECRET from the environment (or .env).
"""
from __future__ import annotations

import argparse
import os
import sys

from dotenv import load_dotenv

# Ensure project root on sys.path for local script execution
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from travelai.jwt_utils import JWTError, encode


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Issue a development bearer token.")
    p.add_argument("--sub", required=True, help="Subject (user id) claim.")
    p.add_argument("--email", default=None)
    p.add_argument("--name", default=None)
    p.add_argument(
        "--scope",
        action="append",
        default=[],
        help="Scope to grant; repeat for several (e.g. --scope admin).",
    )
    p.add_argument(
        "--ttl",
        type=int,
        default=3600,
        help="Lifetime in seconds (default 3600). 0 issues a token without exp.",
    )
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = _parse_args(argv)
    secret = os.getenv("JWT_SECRET", "")
    claims: dict[str, object] = {"sub": args.sub}
    if args.email:
        claims["email"] = args.email
    if args.name:
        claims["name"] = args.name
    if args.scope:
        claims["scope"] = " ".join(args.scope)
    try:
        token = encode(claims, secret=secret, ttl=args.ttl or None)
    except JWTError as e:
        print(f"error: {e} (set JWT_SECRET)", file=sys.stderr)
        return 2
    print(token)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
