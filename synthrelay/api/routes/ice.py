"""ICE server lookup route."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from synthrelay.core.bootstrap import relay_initializer

router = APIRouter()


@router.get("/api/ice-servers", status_code=200)
async def ice_servers_route():
    """
    Return the STUN/TURN servers peers should use.

    The list is cacheable for as long as Twilio credentials stay valid.
    """
    provider = relay_initializer.ice_servers_provider
    payload = await provider.get_ice_servers()

    return JSONResponse(
        content=payload,
        headers={"Cache-Control": f"public, max-age={provider.ttl_seconds}"},
    )
