"""Credential verification: shared server secret and OIDC bearer tokens.

Both produce either an identity or a definite rejection. For bearer tokens every
failure (expired, bad signature, wrong issuer, disallowed audience, missing subject,
unknown key) surfaces as InvalidTokenError; the caller only ever reports
"unauthorized".
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Any

import httpx
from jose import jwk, jwt
from jose.exceptions import JOSEError, JWKError, JWTError

from share_server.config import Settings

logger = logging.getLogger(__name__)

ALLOWED_ALGORITHMS = ["RS256", "ES256"]

# Default signing algorithm per JWK type/curve when the key set omits "alg"
_DEFAULT_ALG = {"RSA": "RS256", "P-256": "ES256", "P-384": "ES384", "P-521": "ES512"}


def password_matches(candidate: str, secret: str) -> bool:
    """Compare a caller-supplied password with the configured secret.

    Lengths are compared first (length is not treated as sensitive); equal-length
    values go through a constant-time comparison.
    """
    if not secret:
        return False
    a = candidate.encode("utf-8")
    b = secret.encode("utf-8")
    if len(a) != len(b):
        return False
    return secrets.compare_digest(a, b)


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header, or ''."""
    if not authorization:
        return ""
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


class OIDCError(Exception):
    """Base class for OIDC failures."""


class OIDCNotEnabledError(OIDCError):
    """Raised when OIDC settings are missing."""


class InvalidTokenError(OIDCError):
    """Raised for any bearer token that fails verification."""


class KeySetError(OIDCError):
    """Raised when discovery or the JWKS fetch fails."""


@dataclass(frozen=True)
class Identity:
    """Authenticated OIDC principal."""

    sub: str
    email: str = ""
    name: str = ""


def _jwk_to_key(data: dict[str, Any]) -> dict[str, Any] | None:
    """Validate one JWK entry; returns it with an explicit alg, or None if unusable."""
    kty = data.get("kty")
    if kty == "RSA":
        if not data.get("n") or not data.get("e"):
            return None
        alg = data.get("alg") or _DEFAULT_ALG["RSA"]
    elif kty == "EC":
        crv = data.get("crv")
        if crv not in _DEFAULT_ALG or not data.get("x") or not data.get("y"):
            return None
        alg = data.get("alg") or _DEFAULT_ALG[crv]
    else:
        return None
    key = dict(data, alg=alg)
    try:
        jwk.construct(key, alg)
    except (JWKError, ValueError, TypeError):
        return None
    return key


class OIDCVerifier:
    """Verifies bearer JWTs against an OIDC provider's published key set.

    Performs discovery once, caches the JWKS by key id, and refetches it when a
    token names an unknown kid and the cache is older than the debounce interval.
    A failed refresh keeps the stale keys. Safe to share across request threads.
    """

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None) -> None:
        issuer = settings.oidc_issuer_url.strip().rstrip("/")
        client_id = settings.oidc_client_id.strip()
        if not issuer or not client_id:
            raise OIDCNotEnabledError("oidc not enabled")
        self.issuer_url = issuer
        self.client_id = client_id
        self.audiences: tuple[str, ...] = settings.oidc_audiences or (client_id,)
        self.leeway = settings.oidc_leeway_seconds
        self.refresh_debounce = settings.jwks_refresh_debounce_seconds
        self._http = http_client or httpx.Client(timeout=settings.oidc_http_timeout)

        self._lock = threading.Lock()
        self._jwks_uri = ""
        self._keys: dict[str, dict[str, Any]] = {}
        self._keys_fetched = 0.0  # monotonic seconds; 0 = never

    # ── Key set management ──────────────────────────────────────────

    def start(self) -> None:
        """Discover the JWKS endpoint and load the initial keys. Raises KeySetError."""
        self._discover()
        self.refresh_keys()

    def _discover(self) -> str:
        url = f"{self.issuer_url}/.well-known/openid-configuration"
        try:
            resp = self._http.get(url)
            resp.raise_for_status()
            doc = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise KeySetError(f"oidc discovery failed: {exc}") from exc
        jwks_uri = str(doc.get("jwks_uri") or "").strip()
        if not jwks_uri:
            raise KeySetError("oidc discovery missing jwks_uri")
        with self._lock:
            self._jwks_uri = jwks_uri
        return jwks_uri

    def refresh_keys(self) -> None:
        """Fetch the JWKS and replace the cache. Raises KeySetError; keeps old keys on failure."""
        jwks_uri = self._jwks_uri or self._discover()
        try:
            resp = self._http.get(jwks_uri)
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise KeySetError(f"jwks fetch failed: {exc}") from exc
        if not isinstance(body, dict):
            raise KeySetError("jwks response is not a JSON object")

        keys: dict[str, dict[str, Any]] = {}
        for entry in body.get("keys") or []:
            if not isinstance(entry, dict):
                continue
            kid = str(entry.get("kid") or "").strip()
            if not kid:
                continue
            key = _jwk_to_key(entry)
            if key is not None:
                keys[kid] = key
        if not keys:
            raise KeySetError("jwks contained no usable keys")

        with self._lock:
            self._keys = keys
            self._keys_fetched = time.monotonic()
        logger.info("Loaded %d signing keys from %s", len(keys), jwks_uri)

    def _key_for(self, kid: str) -> dict[str, Any] | None:
        with self._lock:
            key = self._keys.get(kid)
            fetched = self._keys_fetched
        if key is not None:
            return key
        if fetched and time.monotonic() - fetched <= self.refresh_debounce:
            return None
        try:
            self.refresh_keys()
        except KeySetError as exc:
            logger.warning("JWKS refresh failed, using cached keys: %s", exc)
        with self._lock:
            return self._keys.get(kid)

    # ── Verification ────────────────────────────────────────────────

    def verify_token(self, token: str) -> Identity:
        """Verify signature and claims; return the identity or raise InvalidTokenError."""
        if not token:
            raise InvalidTokenError("no bearer token")
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise InvalidTokenError("malformed token") from exc

        kid = str(header.get("kid") or "").strip()
        if not kid:
            raise InvalidTokenError("missing kid")
        if header.get("alg") not in ALLOWED_ALGORITHMS:
            raise InvalidTokenError("algorithm not allowed")
        key = self._key_for(kid)
        if key is None:
            raise InvalidTokenError("unknown kid")
        if header.get("alg") != key["alg"]:
            raise InvalidTokenError("algorithm does not match key")

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=ALLOWED_ALGORITHMS,
                options={
                    "verify_aud": False,
                    "verify_iss": False,
                    "verify_at_hash": False,
                    "leeway": self.leeway,
                },
            )
        except JOSEError as exc:
            raise InvalidTokenError(str(exc)) from exc

        sub = str(claims.get("sub") or "").strip()
        if not sub:
            raise InvalidTokenError("missing sub")
        issuer = str(claims.get("iss") or "").strip()
        if not issuer:
            raise InvalidTokenError("missing iss")
        if issuer.rstrip("/") != self.issuer_url:
            raise InvalidTokenError("invalid issuer")
        if not self._audience_allowed(claims.get("aud")):
            raise InvalidTokenError("invalid audience")

        name = str(claims.get("name") or "").strip()
        if not name:
            name = str(claims.get("preferred_username") or "").strip()
        return Identity(sub=sub, email=str(claims.get("email") or "").strip(), name=name)

    def _audience_allowed(self, aud: Any) -> bool:
        if not self.audiences:
            return True
        if isinstance(aud, str):
            token_auds = [aud]
        elif isinstance(aud, list):
            token_auds = [a for a in aud if isinstance(a, str)]
        else:
            return False
        return any(a in self.audiences for a in token_auds)

    def close(self) -> None:
        self._http.close()
