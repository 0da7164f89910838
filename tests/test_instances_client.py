"""Tests for the instance directory client."""

import json

import httpx
import pytest
from fastapi import HTTPException

from ops_dashboard.config import ConfigurationError, InstanceDirectoryConfig, VncConfig
from ops_dashboard.models import Instance
from ops_dashboard.web import instances_client as directory

PAYLOAD = [
    {
        "name": "booker-181",
        "type": "container",
        "status": "Running",
        "ips": [
            {"interface": "lo", "address": "127.0.0.1"},
            {"interface": "eth0", "address": "10.225.44.181"},
        ],
    },
    {"name": "worker-182", "type": "container", "status": "Stopped", "ips": []},
    {"name": "c-template", "type": "container", "status": "Stopped", "ips": None},
    {"name": "no-address", "status": "Running", "ips": []},
    "garbage",
]


@pytest.fixture
def directory_config():
    return InstanceDirectoryConfig(
        api_url="https://incus.example.com/api/instances",
        api_key="secret",
        ip_prefix="10.225.44.",
    )


@pytest.fixture
def mock_directory(monkeypatch):
    """Route the shared client through a handler returning ``responses``."""
    seen = []
    directory.clear_snapshot()

    def install(handler):
        def _record(request):
            seen.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
        monkeypatch.setattr(directory, "_client", client)
        return seen

    yield install
    directory.clear_snapshot()


class TestVncUrl:
    def test_build_vnc_url(self):
        assert directory.build_vnc_url("vnc.example.com", "10.0.0.5") == (
            "https://vnc.example.com/vnc.html#host=vnc.example.com&port=443"
            "&autoconnect=true&scaling=local&path=websockify?token=10.0.0.5"
        )

    def test_keeps_explicit_scheme(self):
        url = directory.build_vnc_url("http://vnc.local:6080/", "10.0.0.5")
        assert url.startswith("http://vnc.local:6080/vnc.html#host=vnc.local&")

    def test_missing_parts(self):
        assert directory.build_vnc_url(None, "10.0.0.5") == ""
        assert directory.build_vnc_url("vnc.example.com", None) == ""


class TestParseInstances:
    def test_reshapes_payload(self):
        instances = directory.parse_instances(PAYLOAD, "10.225.44.", "vnc.example.com")

        by_name = {i.name: i for i in instances}
        assert sorted(by_name) == ["booker-181", "worker-182"]
        assert by_name["booker-181"].ip == "10.225.44.181"
        assert by_name["booker-181"].ip_suffix == "181"
        assert by_name["booker-181"].is_running
        # Name fallback when no address matches the prefix
        assert by_name["worker-182"].ip == "10.225.44.182"
        assert "token=10.225.44.182" in by_name["worker-182"].vnc_url

    @pytest.mark.parametrize("payload", [None, {}, "text", 42])
    def test_unexpected_shape_is_empty(self, payload):
        assert directory.parse_instances(payload, "10.0.0.") == []


class TestDisplayModes:
    instances = [
        Instance(name="booker-1", status="Running"),
        Instance(name="booker-2", status="Stopped"),
        Instance(name="c-template", status="Stopped"),
        Instance(name="android", status="Running"),
    ]

    def test_all_mode_shows_running_non_dev(self):
        assert [i.name for i in directory.select_for_mode(self.instances, "all")] == [
            "booker-1"
        ]

    def test_dev_mode_shows_dev_containers(self):
        assert [i.name for i in directory.select_for_mode(self.instances, "dev")] == [
            "c-template",
            "android",
        ]

    def test_preload_covers_both_modes(self):
        assert [i.name for i in directory.select_for_preload(self.instances)] == [
            "booker-1",
            "c-template",
            "android",
        ]


def test_static_containers():
    containers = directory.static_containers(
        VncConfig(server="vnc.example.com", ip_prefix="10.0.0.", containers=["7", "9"])
    )
    assert [(c.name, c.ip) for c in containers] == [("1", "10.0.0.7"), ("2", "10.0.0.9")]


def test_static_containers_requires_settings():
    with pytest.raises(ConfigurationError):
        directory.static_containers(VncConfig(containers=["7"]))


class TestListInstances:
    @pytest.mark.asyncio
    async def test_sends_api_key(self, mock_directory, directory_config):
        seen = mock_directory(lambda request: httpx.Response(200, json=PAYLOAD))

        instances = await directory.list_instances(directory_config, "vnc.example.com")

        assert len(instances) == 2
        assert seen[0].headers["x-api-key"] == "secret"
        assert str(seen[0].url) == directory_config.api_url

    @pytest.mark.asyncio
    async def test_upstream_error_is_502_with_status(self, mock_directory, directory_config):
        mock_directory(lambda request: httpx.Response(503, text="down"))

        with pytest.raises(HTTPException) as exc_info:
            await directory.list_instances(directory_config)

        assert exc_info.value.status_code == 502
        assert exc_info.value.detail["upstream_status"] == 503

    @pytest.mark.asyncio
    async def test_unreachable_is_503(self, mock_directory, directory_config):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        mock_directory(refuse)

        with pytest.raises(HTTPException) as exc_info:
            await directory.list_instances(directory_config)

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_non_json_body_is_empty(self, mock_directory, directory_config):
        mock_directory(lambda request: httpx.Response(200, text="<html>"))
        assert await directory.list_instances(directory_config) == []

    @pytest.mark.asyncio
    async def test_missing_configuration(self):
        with pytest.raises(ConfigurationError) as exc_info:
            await directory.list_instances(InstanceDirectoryConfig())
        assert "INCUS_API_KEY" in exc_info.value.missing


class TestSnapshot:
    @pytest.mark.asyncio
    async def test_fresh_snapshot_is_reused(
        self, monkeypatch, mock_directory, dashboard_config
    ):
        import ops_dashboard.web as web

        monkeypatch.setattr(web, "_config", dashboard_config)
        seen = mock_directory(
            lambda request: httpx.Response(200, content=json.dumps(PAYLOAD))
        )

        first = await directory.load_instances(max_age=30)
        second = await directory.load_instances(max_age=30)

        assert [i.name for i in first] == [i.name for i in second]
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_stale_snapshot_is_refetched(
        self, monkeypatch, mock_directory, dashboard_config
    ):
        import ops_dashboard.web as web

        monkeypatch.setattr(web, "_config", dashboard_config)
        seen = mock_directory(lambda request: httpx.Response(200, json=PAYLOAD))

        await directory.load_instances(max_age=30)
        await directory.load_instances(max_age=0)

        assert len(seen) == 2
