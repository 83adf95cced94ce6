import logging
from dataclasses import dataclass
from typing import Callable, Iterator

from ..config import settings
from ..errors import DispatchError, NotReady, StorageInconsistency, TaskNotFound
from ..models import ComputeStatus, StatusResponse
from ..storage.objects import ObjectStore
from ..storage.repo import TaskRepo
from ..storage.schema import TaskRecord, TaskStatus
from .compute import ComputeProvider, build_provider

logger = logging.getLogger(__name__)


@dataclass
class Download:
    file_name: str
    size: int
    content_type: str
    chunks: Iterator[bytes]


class TaskGateway:
    def __init__(self, repo: TaskRepo, objects: ObjectStore, provider: ComputeProvider,
                 provider_factory: Callable[[str], ComputeProvider] = build_provider):
        self.repo = repo
        self.objects = objects
        self.provider = provider
        self.provider_factory = provider_factory

    def _provider_for(self, name: str) -> ComputeProvider:
        # Records outlive backend switches; describe through the provider that spawned them.
        if name == self.provider.name:
            return self.provider
        try:
            return self.provider_factory(name)
        except ValueError as e:
            raise DispatchError(f"No compute provider available for {name!r}") from e

    def _require(self, task_id: str) -> TaskRecord:
        rec = self.repo.get(task_id)
        if rec is None:
            raise TaskNotFound(task_id)
        return rec

    def status(self, task_id: str) -> StatusResponse:
        rec = self._require(task_id)
        return StatusResponse(**rec.model_dump(exclude={"handle"}))

    def download(self, task_id: str) -> Download:
        rec = self._require(task_id)
        if rec.status is not TaskStatus.SUCCESS:
            raise NotReady(task_id, rec.status.value)
        if rec.result is None:
            raise StorageInconsistency("Export file not available", status_code=500)

        size = self.objects.head(rec.result.key)
        if size is None:
            logger.error("Artifact %s for task %s missing from object store", rec.result.key, task_id)
            raise StorageInconsistency("Export file not found in storage")
        if size != rec.result.file_size:
            logger.error("Artifact %s is %d bytes, task %s recorded %d",
                         rec.result.key, size, task_id, rec.result.file_size)
            raise StorageInconsistency("Export file in storage does not match the recorded size")
        obj = self.objects.open(rec.result.key)
        if obj is None:
            raise StorageInconsistency("Export file not found in storage")

        logger.info("Streaming %s for task %s", rec.result.key, task_id)
        return Download(
            file_name=rec.result.file_name,
            size=rec.result.file_size,
            content_type=obj.content_type or settings.artifact_content_type,
            chunks=obj.chunks,
        )

    def describe_compute(self, task_id: str) -> ComputeStatus:
        rec = self._require(task_id)
        detail = self._provider_for(rec.handle.provider).describe(rec.handle)
        return ComputeStatus(
            task_id=task_id,
            provider=rec.handle.provider,
            machine_id=rec.handle.machine_id,
            state=detail.pop("state", "unknown"),
            detail=detail,
        )
