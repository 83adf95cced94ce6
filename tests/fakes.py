from typing import Any, Dict, List

from app.errors import DispatchError
from app.services.compute import ComputeProvider, SpawnRequest
from app.storage.schema import DispatchHandle, TaskRecord, TaskResult


class FakeProvider(ComputeProvider):
    name = "fake"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.spawned: List[SpawnRequest] = []

    def spawn(self, req: SpawnRequest) -> DispatchHandle:
        if self.fail:
            raise DispatchError("Failed to spawn machine: 503 capacity")
        self.spawned.append(req)
        return DispatchHandle(provider=self.name, machine_id=f"m-{len(self.spawned)}", instance_id="i-1")

    def describe(self, handle: DispatchHandle) -> Dict[str, Any]:
        return {"state": "started", "region": "ord"}


def make_record(task_id: str = "export_1_abc", subject: str = "X1") -> TaskRecord:
    return TaskRecord(
        task_id=task_id,
        subject=subject,
        handle=DispatchHandle(provider="fake", machine_id="m-1"),
    )


def make_result(key: str = "artifacts/X1/out.bin", size: int = 1024) -> TaskResult:
    return TaskResult(key=key, file_name="out.bin", file_size=size, metrics={"entities_exported": 12})
