"""
Pytest configuration and fixtures.

Every test gets a fresh in-memory SQLite database. OIDC tests talk to a fake
identity provider served through httpx.MockTransport and sign RS256 tokens with
a key generated once per session.
"""

from __future__ import annotations

import base64
import os
import time
from collections.abc import Callable, Iterator
from typing import Any

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import Session

from tests.test_constants import TEST_CLIENT_ID, TEST_ISSUER, TEST_KEY_ID, TEST_SERVER_PASSWORD

# Force an in-memory DB and legacy mode before share_server.main builds its app
os.environ["EDS_SHARE_DATABASE_URL"] = "sqlite://"
os.environ["EDS_SHARE_ENV_FILE"] = os.devnull
for _key in ("EDS_SHARE_OIDC_ISSUER_URL", "EDS_SHARE_OIDC_CLIENT_ID", "EDS_SHARE_OIDC_AUDIENCE"):
    os.environ.pop(_key, None)

from share_server.config import Settings  # noqa: E402
from share_server.db.session import create_db_engine, create_session_factory, init_db  # noqa: E402
from share_server.main import create_app  # noqa: E402
from share_server.services.credentials import OIDCVerifier  # noqa: E402


# ── Signing keys ────────────────────────────────────────────────────


def _b64url_uint(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8, "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class SigningKey:
    """RSA keypair with its public JWK."""

    def __init__(self, kid: str) -> None:
        self.kid = kid
        private = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        self.private_pem = private.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")
        numbers = private.public_key().public_numbers()
        self.public_jwk = {
            "kty": "RSA",
            "kid": kid,
            "use": "sig",
            "alg": "RS256",
            "n": _b64url_uint(numbers.n),
            "e": _b64url_uint(numbers.e),
        }

    def sign(self, claims: dict[str, Any], alg: str = "RS256") -> str:
        return jwt.encode(claims, self.private_pem, algorithm=alg, headers={"kid": self.kid})


@pytest.fixture(scope="session")
def signing_key() -> SigningKey:
    return SigningKey(TEST_KEY_ID)


@pytest.fixture(scope="session")
def rotated_key() -> SigningKey:
    return SigningKey("test-key-2")


# ── Fake identity provider ──────────────────────────────────────────


class FakeIdentityProvider:
    """Serves discovery and JWKS; counts fetches and can be told to fail."""

    jwks_uri = f"{TEST_ISSUER}/protocol/openid-connect/certs"

    def __init__(self, keys: list[SigningKey]) -> None:
        self.keys = list(keys)
        self.discovery_calls = 0
        self.jwks_calls = 0
        self.fail_jwks = False

    def handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url == f"{TEST_ISSUER}/.well-known/openid-configuration":
            self.discovery_calls += 1
            return httpx.Response(200, json={"issuer": TEST_ISSUER, "jwks_uri": self.jwks_uri})
        if url == self.jwks_uri:
            self.jwks_calls += 1
            if self.fail_jwks:
                return httpx.Response(503, json={"error": "unavailable"})
            return httpx.Response(200, json={"keys": [k.public_jwk for k in self.keys]})
        return httpx.Response(404)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handle))


@pytest.fixture
def idp(signing_key: SigningKey) -> FakeIdentityProvider:
    return FakeIdentityProvider([signing_key])


@pytest.fixture
def make_token(signing_key: SigningKey) -> Callable[..., str]:
    """Build a signed token for ``sub``; keyword args override or add claims."""

    def factory(sub: str, /, key: SigningKey | None = None, **claims: Any) -> str:
        now = int(time.time())
        payload: dict[str, Any] = {
            "iss": TEST_ISSUER,
            "aud": TEST_CLIENT_ID,
            "sub": sub,
            "iat": now,
            "exp": now + 300,
            "email": f"{sub}@example.test",
            "name": sub.replace("-sub", "").title(),
        }
        payload.update(claims)
        return (key or signing_key).sign({k: v for k, v in payload.items() if v is not None})

    return factory


# ── Settings, database and apps ─────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    """Legacy (shared password) settings on an in-memory database."""
    return Settings(database_url="sqlite://", api_password=TEST_SERVER_PASSWORD)


@pytest.fixture
def oidc_settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        api_password=TEST_SERVER_PASSWORD,
        oidc_issuer_url=TEST_ISSUER,
        oidc_client_id=TEST_CLIENT_ID,
        oidc_audiences=(TEST_CLIENT_ID,),
    )


@pytest.fixture
def db(settings: Settings) -> Iterator[Session]:
    """Session on a private in-memory database with all tables created."""
    engine = create_db_engine(settings)
    init_db(engine)
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def verifier(oidc_settings: Settings, idp: FakeIdentityProvider) -> OIDCVerifier:
    return OIDCVerifier(oidc_settings, http_client=idp.client())


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    """Legacy-mode API client."""
    with TestClient(create_app(settings)) as c:
        yield c


@pytest.fixture
def oidc_client(oidc_settings: Settings, verifier: OIDCVerifier) -> Iterator[TestClient]:
    """OIDC-mode API client."""
    with TestClient(create_app(oidc_settings, verifier=verifier)) as c:
        yield c
