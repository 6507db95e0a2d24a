"""
Bearer token verification against the external identity provider.

SkyVault keeps no passwords or sessions. The browser signs in with the
provider and forwards its RS256 session token; this module checks it:

  issuer    settings.auth_issuer
  keys      settings.auth_jwks_url, else <issuer>/.well-known/jwks.json
  claims    sub (owner of every file record), email, exp, iss, aud (optional)

Signing keys are held for an hour per issuer. A token whose `kid` is not in
the held set triggers exactly one refetch, which covers key rotation.
`aud` is only checked when settings.auth_audience is non-empty.
"""

from __future__ import annotations

import logging
import time
from typing import Annotated, Any

import httpx
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwk, jwt
from pydantic import BaseModel

from skyvault.core.config import settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=True)

JWKS_TTL_SECONDS = 3600


class TokenPayload(BaseModel):
    """Claims of a verified session token."""
    sub:   str
    email: str = ""
    exp:   int
    iss:   str


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def jwks_url_for(issuer: str) -> str:
    return settings.auth_jwks_url or f"{issuer.rstrip('/')}/.well-known/jwks.json"


def _key_for_kid(jwks: dict, kid: str | None) -> Any:
    match = next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)
    return jwk.construct(match).public_key() if match else None


class _JWKSCache:
    """Per-issuer key sets with a fixed TTL. Provider outages surface as 401."""

    def __init__(self, ttl: float = JWKS_TTL_SECONDS) -> None:
        self._ttl = ttl
        self._store: dict[str, tuple[dict, float]] = {}

    async def get_signing_key(self, token: str, issuer: str) -> Any:
        try:
            kid = jwt.get_unverified_header(token).get("kid")
        except JWTError as exc:
            raise _unauthorized("Token header could not be decoded") from exc

        key = _key_for_kid(await self._fetch(issuer), kid)
        if key is None:
            # possibly rotated: drop the held set and ask the provider again
            self._store.pop(issuer, None)
            key = _key_for_kid(await self._fetch(issuer), kid)
        if key is None:
            logger.info("Auth | unknown signing key kid=%s issuer=%s", kid, issuer)
            raise _unauthorized(f"Unknown signing key kid={kid!r}")
        return key

    async def _fetch(self, issuer: str) -> dict:
        held = self._store.get(issuer)
        if held is not None and time.monotonic() - held[1] < self._ttl:
            return held[0]

        url = jwks_url_for(issuer)
        try:
            async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
                resp = await client.get(url)
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("Auth | JWKS rejected url=%s status=%d", url, exc.response.status_code)
            raise _unauthorized("Signing keys unavailable from identity provider") from exc
        except httpx.RequestError as exc:
            logger.error("Auth | JWKS unreachable url=%s error=%s", url, exc)
            raise _unauthorized("Signing keys unavailable (network failure)") from exc

        keyset = resp.json()
        self.prime(issuer, keyset)
        logger.debug("Auth | JWKS loaded issuer=%s keys=%d", issuer, len(keyset.get("keys", [])))
        return keyset

    def prime(self, issuer: str, jwks: dict) -> None:
        self._store[issuer] = (jwks, time.monotonic())

    def clear(self) -> None:
        self._store.clear()


jwks_cache = _JWKSCache()


async def verify_token(
    token:    str,
    issuer:   str | None = None,
    audience: str | None = None,
) -> TokenPayload:
    """
    Check signature, expiry, issuer and (when one is configured) audience.
    The explicit arguments override settings; tests use them.
    """
    if issuer is None:
        issuer = settings.auth_issuer
    if audience is None:
        audience = settings.auth_audience

    key = await jwks_cache.get_signing_key(token, issuer)
    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            issuer=issuer,
            audience=audience or None,
            options={"verify_aud": bool(audience)},
        )
    except ExpiredSignatureError as exc:
        raise _unauthorized("Session token expired") from exc
    except JWTError as exc:
        raise _unauthorized(f"Session token rejected: {exc}") from exc

    if not claims.get("sub"):
        raise _unauthorized("Session token has no sub claim")

    return TokenPayload(
        sub=claims["sub"],
        email=claims.get("email") or "",
        exp=claims["exp"],
        iss=claims["iss"],
    )


async def get_current_user(
    request:     Request,
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> TokenPayload:
    try:
        return await verify_token(credentials.credentials)
    except HTTPException as exc:
        logger.info(
            "Auth | rejected path=%s reason=%s request_id=%s",
            request.url.path, exc.detail, request.headers.get("X-Request-ID", "-"),
        )
        raise
