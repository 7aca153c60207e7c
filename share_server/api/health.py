"""Liveness probe and the browser runtime configuration script."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import Response

from share_server.api.deps import get_settings
from share_server.api.errors import unhealthy
from share_server.db.session import check_db_connection

logger = logging.getLogger(__name__)

router = APIRouter()
runtime_router = APIRouter()


@router.get("/healthz")
def healthz(request: Request) -> dict:
    """Health check endpoint. Confirms DB connectivity."""
    try:
        check_db_connection(request.app.state.engine)
    except Exception as exc:
        logger.warning("Health check failed: %s", type(exc).__name__)
        raise unhealthy() from None
    return {"ok": True}


@runtime_router.api_route("/runtime-config.js", methods=["GET", "HEAD"])
def runtime_config(request: Request) -> Response:
    """Non-secret OIDC settings for the frontend, as a script assigning a global."""
    settings = get_settings(request)
    public = {
        "VITE_OIDC_ISSUER_URL": settings.oidc_issuer_url,
        "VITE_OIDC_CLIENT_ID": settings.oidc_client_id,
        "VITE_OIDC_AUDIENCE": ",".join(settings.oidc_audiences),
    }
    public.update(settings.browser_oidc_options)
    body = f"window.__EDS_RUNTIME_CONFIG={json.dumps(public, separators=(',', ':'))};\n"
    return Response(
        content=body,
        media_type="application/javascript; charset=utf-8",
        headers={"Cache-Control": "no-store"},
    )
