"""
Web UI for the operations dashboard.

Provides:
- Containers view: grid of live VNC sessions from the instance directory
- Calendar view: 4-day booking calendar with overlap layout
- Analytics view: booking funnel and best source queries
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

import psycopg
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from ops_dashboard.config import ConfigurationError, DashboardConfig, load_config

logger = logging.getLogger(__name__)

# Initialize Jinja2 templates
_templates_dir = Path(__file__).parent / "templates"
templates = Jinja2Templates(directory=str(_templates_dir))


def _strftime_filter(value, format_string: str) -> str:
    """Format datetime value using strftime. Handles ISO strings and datetime objects."""
    if value is None:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    if isinstance(value, datetime):
        return value.strftime(format_string)
    return str(value)


templates.env.filters["strftime"] = _strftime_filter

DEFAULT_VIEW = "/containers"

_config: Optional[DashboardConfig] = None
_routes_registered = False


@asynccontextmanager
async def lifespan(app):
    from ops_dashboard.web import database, instances_client
    from ops_dashboard.web.refresh import PeriodicRefresher

    config = get_config()
    refresher = PeriodicRefresher(
        instances_client.refresh_snapshot,
        interval=config.refresh.interval_seconds,
        idle_timeout=config.refresh.idle_seconds,
        name="instance-refresh",
    )
    instances_client.set_refresher(refresher)
    refresher.start()
    yield
    await refresher.stop()
    instances_client.set_refresher(None)
    await instances_client.close_client()
    database.close_pool()


web_app = FastAPI(
    title="Ops Dashboard",
    description="VNC session grid, booking calendar and analytics",
    docs_url="/api/docs",
    redoc_url=None,
    lifespan=lifespan,
)


@web_app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Incomplete configuration for {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Incomplete configuration",
            "message": f"{exc}. Add them to your .env file.",
            "missingVariables": exc.missing,
        },
    )


@web_app.exception_handler(psycopg.Error)
async def database_error_handler(request: Request, exc: psycopg.Error):
    logger.error(f"Database error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Database query failed", "message": str(exc)},
    )


def init_web_app(config: Optional[DashboardConfig] = None):
    global _config, _routes_registered
    _config = config

    if _routes_registered:
        return

    from ops_dashboard.web.routes import (
        analytics,
        bookings,
        calendar,
        health,
        instances,
        settings,
    )

    web_app.include_router(settings.router)
    web_app.include_router(instances.router)
    web_app.include_router(bookings.router)
    web_app.include_router(calendar.router)
    web_app.include_router(analytics.router)
    web_app.include_router(health.router)

    web_app.mount(
        "/static",
        StaticFiles(directory=str(Path(__file__).parent / "static")),
        name="static",
    )
    _routes_registered = True

    logger.info("Web app initialized")


def get_config() -> DashboardConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


NAV_ITEMS = [
    {"id": "containers", "label": "Containers", "href": "/containers"},
    {"id": "calendar", "label": "Calendar", "href": "/calendar"},
    {"id": "analytics", "label": "Analytics", "href": "/analytics"},
]


def get_template_context(request: Request, **kwargs) -> dict:
    config = get_config()
    return {
        "request": request,
        "title": config.web.title,
        "nav_items": NAV_ITEMS,
        **kwargs,
    }


@web_app.get("/", response_class=HTMLResponse)
async def index(request: Request):
    return RedirectResponse(url=DEFAULT_VIEW)


@web_app.get("/favicon.ico")
async def favicon():
    return Response(content=b"", media_type="image/x-icon")


@web_app.get("/health")
async def health():
    return {"status": "ok", "service": "ops-dashboard"}
