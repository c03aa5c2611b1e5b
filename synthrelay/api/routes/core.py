"""Core application routes."""

from __future__ import annotations

from fastapi import APIRouter, responses

from synthrelay.core import constants
from synthrelay.core.bootstrap import relay_initializer

router = APIRouter()


@router.get("/")
async def redirect_route():
    """Redirect root to the info route."""
    return responses.RedirectResponse("/api/v1/info")


@router.get("/api/v1/info", status_code=200)
async def server_info_route():
    """Minimal relay status payload."""
    return {
        "status_code": 200,
        "name": constants.PACKAGE_NAME,
        "version": constants.VERSION,
        "store": relay_initializer.config.STORE_PROVIDER,
        "peers": len(relay_initializer.connection_registry),
    }
