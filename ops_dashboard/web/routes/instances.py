import logging

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import HTMLResponse

from ops_dashboard.config import ConfigurationError
from ops_dashboard.web import get_config, get_template_context, templates
from ops_dashboard.web import instances_client as directory

router = APIRouter(tags=["instances"])
logger = logging.getLogger(__name__)


def _seconds_until_refresh() -> int:
    refresher = directory.get_refresher()
    if refresher is None:
        return int(get_config().refresh.interval_seconds)
    return refresher.seconds_until_refresh()


@router.get("/api/instances")
async def list_instances():
    config = get_config()
    instances = await directory.load_instances(max_age=config.refresh.interval_seconds)
    return {
        "containers": [i.to_dict() for i in instances],
        "count": len(instances),
        "nextRefreshIn": _seconds_until_refresh(),
    }


@router.get("/api/containers")
async def list_static_containers():
    containers = directory.static_containers(get_config().vnc)
    return {
        "containers": [
            {"name": c.name, "ip": c.ip, "vncUrl": c.vnc_url} for c in containers
        ],
        "count": len(containers),
    }


@router.get("/containers", response_class=HTMLResponse)
async def containers_view(request: Request, mode: str = Query("all")):
    if mode not in directory.DISPLAY_MODES:
        mode = "all"

    config = get_config()
    instances = []
    error = None
    try:
        instances = await directory.load_instances(
            max_age=config.refresh.interval_seconds
        )
    except HTTPException as e:
        detail = e.detail if isinstance(e.detail, dict) else {"message": str(e.detail)}
        error = detail.get("message")
    except ConfigurationError as e:
        error = str(e)

    displayed = directory.select_for_mode(instances, mode)
    preload = directory.select_for_preload(instances)
    displayed_names = {i.name for i in displayed}

    return templates.TemplateResponse(
        request,
        "containers.html",
        get_template_context(
            request,
            page="containers",
            mode=mode,
            modes=directory.DISPLAY_MODES,
            dev_names=directory.DEV_CONTAINERS,
            tiles=[
                {"instance": i, "visible": i.name in displayed_names} for i in preload
            ],
            displayed_count=len(displayed),
            total_count=len(instances),
            next_refresh=_seconds_until_refresh(),
            refresh_interval=int(config.refresh.interval_seconds),
            error=error,
        ),
    )
