"""
Shared fixtures: a fake PVE API served through httpx.MockTransport.
"""

import os
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, unquote

import httpx
import pytest

from pve_inventory.api import PveClient
from pve_inventory.config import PveConfig

API_PREFIX = "/api2/json"
CONNECT_ERROR = object()


class FakeClock:
    def __init__(self, now: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class FakePve:
    """
    Minimal PVE API. Routes map (method, path) to a payload, an
    httpx.Response, a callable taking the request, or CONNECT_ERROR.
    """

    ticket = "PVE:root@pam:65A1B2C3::signature"
    csrf_token = "65A1B2C3:csrf"
    password = "secret"

    def __init__(self):
        self.routes = {("POST", "/access/ticket"): self._login}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, response) -> None:
        self.routes[(method, path)] = response

    def _login(self, request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        if form.get("password") == [self.password]:
            return httpx.Response(200, json={"data": {
                "ticket": self.ticket,
                "CSRFPreventionToken": self.csrf_token,
                "username": f"{form['username'][0]}@{form['realm'][0]}",
            }})
        return httpx.Response(401, json={"data": None})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = unquote(request.url.path)[len(API_PREFIX):]
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(500, json={"data": None})
        if route is CONNECT_ERROR:
            raise httpx.ConnectError("Connection refused", request=request)
        if isinstance(route, httpx.Response):
            return route
        if callable(route):
            return route(request)
        return httpx.Response(200, json={"data": route})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def paths(self) -> list[str]:
        return [unquote(r.url.path)[len(API_PREFIX):] for r in self.requests]

    def api_paths(self) -> list[str]:
        """
        Requested paths, without logins.
        """
        return [p for p in self.paths() if p != "/access/ticket"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("PVE_"):
            monkeypatch.delenv(name)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_pve():
    return FakePve()


@pytest.fixture
def pve_config():
    return PveConfig(host="pve.example.com", username="root", password="secret")


@pytest.fixture
def client(pve_config, fake_pve, clock):
    client = PveClient(pve_config, transport=fake_pve.transport, clock=clock)
    yield client
    client.close()


@pytest.fixture
def logged_in(client):
    assert client.login().ok
    return client


@pytest.fixture
def two_node_cluster(fake_pve):
    fake_pve.add("GET", "/nodes", [
        {"node": "pve1", "status": "online", "cpu": 0.12, "maxcpu": 8,
         "mem": 4 * 1024 ** 3, "maxmem": 32 * 1024 ** 3, "uptime": 86400},
        {"node": "pve2", "status": "online", "cpu": 0.05, "maxcpu": 4,
         "mem": 2 * 1024 ** 3, "maxmem": 16 * 1024 ** 3, "uptime": 3600},
    ])
    fake_pve.add("GET", "/nodes/pve1/qemu", [
        {"vmid": 100, "name": "web", "status": "running", "cpus": 2,
         "maxmem": 2 * 1024 ** 3, "maxdisk": 32 * 1024 ** 3, "uptime": 1200,
         "tags": "prod;web"},
    ])
    fake_pve.add("GET", "/nodes/pve2/qemu", [
        {"vmid": 200, "name": "db", "status": "stopped", "cpus": 4,
         "maxmem": 8 * 1024 ** 3, "maxdisk": 64 * 1024 ** 3},
    ])
    return fake_pve
