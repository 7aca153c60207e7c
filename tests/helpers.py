"""Small helpers shared by API tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def at(seconds: float) -> datetime:
    """NOW shifted by ``seconds``."""
    return NOW + timedelta(seconds=seconds)


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def app_session(client: TestClient) -> Session:
    """A store session on the same database the client's app uses."""
    return client.app.state.session_factory()
