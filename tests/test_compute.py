import json
from types import SimpleNamespace

import httpx
import pytest

from app.errors import DispatchError
from app.services.compute import CeleryProvider, FlyMachinesProvider, SpawnRequest
from app.storage.schema import DispatchHandle


def _spawn_request():
    return SpawnRequest(
        task_id="export_1_abc",
        subject="X1",
        callback_url="https://orch.example/tasks/export_1_abc/callback",
        options={"recursive": True, "maxDepth": 3},
    )


def _fly(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="https://fly.test/v1")
    return FlyMachinesProvider(client=client)


def test_fly_spawn_sends_machine_config():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "m-42", "instance_id": "i-7", "state": "created"})

    handle = _fly(handler).spawn(_spawn_request())

    assert handle == DispatchHandle(provider="fly", machine_id="m-42", instance_id="i-7")
    assert seen["path"].endswith("/machines")
    assert seen["auth"].startswith("Bearer ")
    config = seen["body"]["config"]
    assert config["auto_destroy"] is True
    assert config["restart"] == {"policy": "no"}
    assert config["env"]["TASK_ID"] == "export_1_abc"
    assert config["env"]["CALLBACK_URL"] == "https://orch.example/tasks/export_1_abc/callback"
    assert json.loads(config["env"]["EXPORT_OPTIONS"]) == {"recursive": True, "maxDepth": 3}


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="capacity"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"instance_id": "i-7"}),
        httpx.Response(200, json=["m-1"]),
    ],
)
def test_fly_spawn_failures_raise_dispatch_error(response):
    with pytest.raises(DispatchError):
        _fly(lambda request: response).spawn(_spawn_request())


def test_fly_spawn_transport_error_raises_dispatch_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(DispatchError):
        _fly(handler).spawn(_spawn_request())


def test_fly_describe_reports_machine_state():
    provider = _fly(lambda request: httpx.Response(200, json={"id": "m-42", "state": "stopped", "region": "ord"}))

    detail = provider.describe(DispatchHandle(provider="fly", machine_id="m-42"))

    assert detail == {"state": "stopped", "region": "ord"}


class _FakeCelery:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send_task(self, name, kwargs=None):
        if self.fail:
            raise ConnectionError("broker down")
        self.sent.append((name, kwargs))
        return SimpleNamespace(id="celery-1")

    def AsyncResult(self, task_id):
        return SimpleNamespace(state="STARTED")


def test_celery_spawn_enqueues_by_name():
    app = _FakeCelery()
    provider = CeleryProvider(celery_app=app, task_name="run_export")

    handle = provider.spawn(_spawn_request())

    assert handle.machine_id == "celery-1"
    name, kwargs = app.sent[0]
    assert name == "run_export"
    assert kwargs["env"]["SUBJECT"] == "X1"
    assert provider.describe(handle) == {"state": "started"}


def test_celery_broker_failure_raises_dispatch_error():
    provider = CeleryProvider(celery_app=_FakeCelery(fail=True), task_name="run_export")

    with pytest.raises(DispatchError):
        provider.spawn(_spawn_request())


@pytest.mark.parametrize(
    "response",
    [httpx.Response(200, text="<html>gateway</html>"), httpx.Response(200, json=["m-42"]), httpx.Response(404)],
)
def test_fly_describe_failures_raise_dispatch_error(response):
    provider = _fly(lambda request: response)

    with pytest.raises(DispatchError):
        provider.describe(DispatchHandle(provider="fly", machine_id="m-42"))
