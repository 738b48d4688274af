"""Resolve the uploading user from request credentials.

Two credentials are accepted, in order:

1. ``Authorization: Bearer <jwt>`` — verified against the configured JWKS
   (RS256); the ``sub`` claim is the user id.
2. ``X-API-Key: <key_id>.<secret>`` — the secret is HMAC-SHA256 hashed
   with ``api_key_hash_secret`` and compared against the stored hash of a
   non-revoked key.

Resolution returns ``None`` instead of raising so the upload route can
record the 401 outcome itself.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import jwt as pyjwt
from fastapi import Request
from jwt import PyJWKClient

from src.config import Settings

logger = logging.getLogger("healthsync.auth")


@dataclass(frozen=True)
class AuthContext:
    """Resolved identity for one request."""

    uid: str
    method: str  # "bearer" | "api_key"
    key_id: str | None = None


class ApiKeyLookup(Protocol):
    async def fetch_api_key(self, key_id: str) -> dict[str, Any] | None: ...

    async def touch_api_key(self, key_id: str) -> None: ...


def parse_api_key_header(header: str | None) -> tuple[str, str] | None:
    """Split ``"<key_id>.<secret>"`` into its parts, or None if malformed."""
    if not header:
        return None
    raw = header.strip()
    key_id, sep, secret = raw.partition(".")
    if not sep or not key_id or not secret:
        return None
    return key_id, secret


def hash_secret(secret: str, hash_secret_key: str) -> str:
    """HMAC-SHA256 of an API key secret, hex encoded."""
    return hmac.new(hash_secret_key.encode(), secret.encode(), hashlib.sha256).hexdigest()


class IdentityResolver:
    """Turn request headers into an ``AuthContext``."""

    def __init__(self, settings: Settings, keys: ApiKeyLookup | None = None) -> None:
        self._settings = settings
        self._keys = keys
        self._jwks_client = (
            PyJWKClient(settings.jwks_url, cache_keys=True, lifespan=3600)
            if settings.jwks_url
            else None
        )

    async def resolve(self, request: Request) -> AuthContext | None:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            uid = self._verify_bearer(auth_header.removeprefix("Bearer ").strip())
            if uid:
                return AuthContext(uid=uid, method="bearer")

        api_key = request.headers.get("X-API-Key")
        if api_key:
            return await self._resolve_api_key(api_key)
        return None

    def _verify_bearer(self, token: str) -> str | None:
        if self._jwks_client is None or not token:
            return None
        try:
            signing_key = self._jwks_client.get_signing_key_from_jwt(token)
            payload = pyjwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                options={"verify_aud": False},
            )
        except pyjwt.ExpiredSignatureError:
            logger.info("Bearer token expired")
            return None
        except pyjwt.PyJWTError as exc:
            logger.warning("JWT validation failed: %s", exc)
            return None
        return payload.get("sub") or None

    async def _resolve_api_key(self, header: str) -> AuthContext | None:
        parsed = parse_api_key_header(header)
        if parsed is None or self._keys is None or not self._settings.api_key_hash_secret:
            return None
        key_id, secret = parsed
        try:
            row = await self._keys.fetch_api_key(key_id)
        except Exception as exc:
            logger.warning("API key lookup failed for %s: %s", key_id, exc)
            return None
        if not row:
            return None
        expected = hash_secret(secret, self._settings.api_key_hash_secret)
        if not hmac.compare_digest(expected, str(row.get("hash", ""))):
            return None
        return AuthContext(uid=str(row["uid"]), method="api_key", key_id=key_id)

    async def touch(self, ctx: AuthContext) -> None:
        """Best-effort ``last_used_at`` update for API-key uploads."""
        if ctx.key_id is None or self._keys is None:
            return
        try:
            await self._keys.touch_api_key(ctx.key_id)
        except Exception as exc:
            logger.warning("Failed to touch API key %s: %s", ctx.key_id, exc)
