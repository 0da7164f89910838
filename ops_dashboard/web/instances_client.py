"""
Instance directory client for the containers grid.

Lists remote containers from the Incus API and turns them into VNC session
entries. The browser never talks to the directory directly.
"""

import logging
import re
import time
from typing import Any, Iterable, List, Optional
from urllib.parse import urlsplit

import httpx
from fastapi import HTTPException

from ops_dashboard.config import InstanceDirectoryConfig, VncConfig
from ops_dashboard.models import Instance

logger = logging.getLogger(__name__)

DEV_CONTAINERS = frozenset({"c-template", "b-template", "wireguard", "android", "c-test"})
DISPLAY_MODES = ("all", "dev")

_client: Optional[httpx.AsyncClient] = None
_refresher = None
_snapshot: dict = {"instances": None, "fetched_at": None, "error": None}


async def get_client() -> httpx.AsyncClient:
    global _client
    if _client is None:
        _client = httpx.AsyncClient(timeout=30)
    return _client


async def close_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


def set_refresher(refresher) -> None:
    global _refresher
    _refresher = refresher


def get_refresher():
    return _refresher


async def _get_json(url: str, headers: dict) -> Any:
    client = await get_client()
    try:
        response = await client.get(url, headers=headers)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        logger.error(f"Instance directory error: HTTP {status}")
        raise HTTPException(
            status_code=502,
            detail={
                "message": f"Instance directory returned HTTP {status}",
                "error_type": "upstream_http",
                "upstream_status": status,
            },
        )
    except httpx.RequestError as e:
        logger.error(f"Instance directory connection error: {e}")
        raise HTTPException(
            status_code=503,
            detail={
                "message": "Instance directory unavailable",
                "error_type": "upstream_unreachable",
            },
        )

    try:
        return response.json()
    except ValueError:
        logger.warning("Instance directory returned a non-JSON body")
        return None


def normalize_base_url(url: Optional[str]) -> str:
    if not url:
        return ""
    return url if url.startswith("http") else f"https://{url}"


def extract_hostname(url: str) -> str:
    hostname = urlsplit(normalize_base_url(url)).hostname
    if hostname:
        return hostname
    return re.sub(r"^https?://", "", url).split(":")[0].split("/")[0]


def build_vnc_url(server: Optional[str], ip: Optional[str]) -> str:
    base_url = normalize_base_url(server)
    if not base_url or not ip:
        return ""
    host = extract_hostname(base_url)
    return (
        f"{base_url.rstrip('/')}/vnc.html#host={host}&port=443&autoconnect=true"
        f"&scaling=local&path=websockify?token={ip}"
    )


def _resolve_address(instance: dict, ip_prefix: str) -> tuple:
    """Return (ip, suffix) for an instance, or (None, None)."""
    ips = instance.get("ips")
    if isinstance(ips, list):
        for entry in ips:
            address = entry.get("address") if isinstance(entry, dict) else None
            if address and address.startswith(ip_prefix):
                return address, address[len(ip_prefix):]

    # Fall back to a trailing number in the name, e.g. booker-181 -> 181
    match = re.search(r"(\d+)$", str(instance.get("name") or ""))
    if match:
        suffix = match.group(1)
        return f"{ip_prefix}{suffix}", suffix
    return None, None


def parse_instances(
    data: Any, ip_prefix: str, server: Optional[str] = None
) -> List[Instance]:
    """Reshape the directory payload, dropping entries without an address.

    Expected shape::

        [{"name": "scheduler", "type": "container", "status": "Running",
          "ips": [{"interface": "eth0", "address": "10.225.44.181"}]}]
    """
    if not isinstance(data, list):
        if data is not None:
            logger.warning(
                f"Unexpected instance directory payload: {type(data).__name__}"
            )
        return []

    instances = []
    for item in data:
        if not isinstance(item, dict) or not item.get("name"):
            continue
        ip, suffix = _resolve_address(item, ip_prefix)
        if not suffix:
            continue
        instances.append(
            Instance(
                name=str(item["name"]),
                ip=ip,
                ip_suffix=suffix,
                status=item.get("status"),
                type=item.get("type"),
                vnc_url=build_vnc_url(server, ip),
            )
        )
    return instances


def static_containers(config: VncConfig) -> List[Instance]:
    """Containers listed in the CONTAINERS setting, named 1..n."""
    config.require()
    return [
        Instance(
            name=str(index),
            ip=f"{config.ip_prefix}{suffix}",
            ip_suffix=suffix,
            vnc_url=build_vnc_url(config.server, f"{config.ip_prefix}{suffix}"),
        )
        for index, suffix in enumerate(config.containers, start=1)
    ]


async def list_instances(
    config: InstanceDirectoryConfig, server: Optional[str] = None
) -> List[Instance]:
    config.require()
    data = await _get_json(config.api_url, headers={"x-api-key": config.api_key})
    return parse_instances(data, config.ip_prefix, server)


def select_for_mode(
    instances: Iterable[Instance], mode: str, dev_names: frozenset = DEV_CONTAINERS
) -> List[Instance]:
    """Containers shown in a display mode.

    ``dev`` shows the template/tooling containers, ``all`` every other
    running container.
    """
    if mode == "dev":
        return [i for i in instances if i.name in dev_names]
    return [i for i in instances if i.name not in dev_names and i.is_running]


def select_for_preload(
    instances: Iterable[Instance], dev_names: frozenset = DEV_CONTAINERS
) -> List[Instance]:
    """Every container either mode may show, so switching modes is instant."""
    return [i for i in instances if i.name in dev_names or i.is_running]


async def refresh_snapshot() -> None:
    """Refetch the instance list into the shared snapshot."""
    from ops_dashboard.web import get_config

    config = get_config()
    try:
        instances = await list_instances(config.instances, config.vnc.server)
    except HTTPException as e:
        _snapshot["error"] = e.detail
        raise
    _snapshot.update(instances=instances, fetched_at=time.monotonic(), error=None)


def snapshot_age() -> Optional[float]:
    if _snapshot["fetched_at"] is None:
        return None
    return time.monotonic() - _snapshot["fetched_at"]


def clear_snapshot() -> None:
    _snapshot.update(instances=None, fetched_at=None, error=None)


async def load_instances(max_age: float) -> List[Instance]:
    """Serve the background snapshot when fresh, otherwise fetch now."""
    if _refresher is not None:
        _refresher.touch()
    age = snapshot_age()
    if age is not None and age < max_age and _snapshot["instances"] is not None:
        return list(_snapshot["instances"])
    await refresh_snapshot()
    return list(_snapshot["instances"] or [])
