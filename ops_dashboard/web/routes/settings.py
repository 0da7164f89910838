"""Client configuration endpoint, read once by the pages at startup."""

from fastapi import APIRouter

from ops_dashboard.web import get_config

router = APIRouter(tags=["settings"])


@router.get("/api/config")
async def client_config():
    vnc = get_config().vnc.require()
    return {"serverAddress": vnc.server, "ipPrefix": vnc.ip_prefix}
