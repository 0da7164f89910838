import logging

import httpx
import psycopg
from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from ops_dashboard.config import ConfigurationError
from ops_dashboard.web import database as db
from ops_dashboard.web import get_config
from ops_dashboard.web import instances_client as directory

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


def _check_database() -> dict:
    try:
        if db.ping():
            return {"status": "healthy", "error": None}
        return {"status": "degraded", "error": "Empty response to ping"}
    except ConfigurationError as exc:
        return {"status": "unconfigured", "error": str(exc)}
    except psycopg.Error as exc:
        return {"status": "down", "error": str(exc)}


async def _check_directory() -> dict:
    config = get_config()
    try:
        instances = await directory.list_instances(config.instances, config.vnc.server)
    except ConfigurationError as exc:
        return {"status": "unconfigured", "error": str(exc)}
    except HTTPException as exc:
        detail = exc.detail if isinstance(exc.detail, dict) else {}
        return {"status": "down", "error": detail.get("message") or str(exc.detail)}
    except httpx.HTTPError as exc:
        return {"status": "down", "error": str(exc)}
    return {"status": "healthy", "error": None, "instances": len(instances)}


@router.get("/api/health/services")
async def get_services_health():
    services = {
        "database": _check_database(),
        "instanceDirectory": await _check_directory(),
    }

    overall_status = "degraded"
    if all(s["status"] == "healthy" for s in services.values()):
        overall_status = "healthy"
    else:
        logger.warning(f"Service health degraded: {services}")

    refresher = directory.get_refresher()
    return JSONResponse(
        content={
            "status": overall_status,
            "services": services,
            "refresher": {
                "running": refresher.is_running,
                "idle": refresher.is_idle,
                "runs": refresher.runs,
            }
            if refresher
            else None,
        }
    )
