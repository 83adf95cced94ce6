import pytest

from app.errors import DispatchError
from app.models import NewTaskRequest
from app.services.dispatcher import Dispatcher
from app.storage.schema import TaskStatus
from tests.fakes import FakeProvider


def test_dispatch_spawns_and_creates_processing_record(repo, provider):
    rec = Dispatcher(repo, provider).dispatch(NewTaskRequest(subject="X1"), "https://orch.example")

    assert rec.status is TaskStatus.PROCESSING
    assert repo.get(rec.task_id) == rec
    spawned = provider.spawned[0]
    assert spawned.task_id == rec.task_id
    assert spawned.callback_url == f"https://orch.example/tasks/{rec.task_id}/callback"
    assert rec.handle.machine_id == "m-1"


def test_dispatch_passes_options_with_defaults(repo, provider):
    req = NewTaskRequest.model_validate({"subject": "X1", "options": {"recursive": True, "maxDepth": 4}})

    rec = Dispatcher(repo, provider).dispatch(req, "https://orch.example")

    assert rec.options["recursive"] is True
    assert rec.options["maxDepth"] == 4
    assert rec.options["parallelBatchSize"] == 10
    assert provider.spawned[0].options == rec.options


def test_spawn_failure_leaves_no_record(repo):
    dispatcher = Dispatcher(repo, FakeProvider(fail=True), id_factory=lambda: "export_1_fixed")

    with pytest.raises(DispatchError):
        dispatcher.dispatch(NewTaskRequest(subject="X1"), "https://orch.example")

    assert repo.get("export_1_fixed") is None


def test_each_dispatch_gets_a_fresh_id(repo, provider):
    dispatcher = Dispatcher(repo, provider)

    ids = {dispatcher.dispatch(NewTaskRequest(subject="X1"), "http://h").task_id for _ in range(20)}

    assert len(ids) == 20
