from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
import orjson

from ..config import settings
from ..errors import DispatchError
from ..storage.schema import DispatchHandle
from ..utils.ids import artifact_key

logger = logging.getLogger(__name__)


@dataclass
class SpawnRequest:
    task_id: str
    subject: str
    callback_url: str
    batch_id: str = "single"
    export_format: str = "mods"
    options: Dict[str, Any] = field(default_factory=dict)

    def worker_env(self) -> Dict[str, str]:
        return {
            "TASK_ID": self.task_id,
            "SUBJECT": self.subject,
            "BATCH_ID": self.batch_id,
            "EXPORT_FORMAT": self.export_format,
            "EXPORT_OPTIONS": orjson.dumps(self.options).decode(),
            "CALLBACK_URL": self.callback_url,
            "OUTPUT_BUCKET": settings.s3_bucket,
            "OUTPUT_KEY": artifact_key(self.task_id, self.subject),
        }


class ComputeProvider:
    """Spawns one ephemeral worker per task. Completion arrives later through the callback."""

    name = "base"

    def spawn(self, req: SpawnRequest) -> DispatchHandle:
        raise NotImplementedError

    def describe(self, handle: DispatchHandle) -> Dict[str, Any]:
        raise NotImplementedError


class FlyMachinesProvider(ComputeProvider):
    name = "fly"

    def __init__(self, client: Optional[httpx.Client] = None):
        self.client = client or httpx.Client(
            base_url=settings.fly_api_base,
            timeout=settings.dispatch_timeout_seconds,
        )
        self.app_name = settings.fly_app_name

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {settings.fly_api_token or ''}"}

    def machine_config(self, req: SpawnRequest) -> Dict[str, Any]:
        return {
            "config": {
                "image": settings.fly_worker_image,
                "env": req.worker_env(),
                "auto_destroy": True,
                "restart": {"policy": "no"},
                "guest": {
                    "cpu_kind": "shared",
                    "cpus": settings.worker_cpus,
                    "memory_mb": settings.worker_memory_mb,
                },
            },
            "region": settings.fly_region,
        }

    def spawn(self, req: SpawnRequest) -> DispatchHandle:
        try:
            r = self.client.post(
                f"/apps/{self.app_name}/machines",
                json=self.machine_config(req),
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise DispatchError(f"Failed to reach compute provider: {e}") from e

        if r.is_error:
            raise DispatchError(f"Failed to spawn machine: {r.status_code} {r.text}")

        try:
            data = r.json()
            machine_id = data["id"]
            if not isinstance(machine_id, str) or not machine_id:
                raise ValueError("missing machine id")
        except (ValueError, KeyError, TypeError) as e:
            raise DispatchError(f"Malformed spawn response: {r.text[:200]}") from e

        logger.info("Spawned machine %s for task %s", machine_id, req.task_id)
        return DispatchHandle(provider=self.name, machine_id=machine_id, instance_id=data.get("instance_id"))

    def describe(self, handle: DispatchHandle) -> Dict[str, Any]:
        try:
            r = self.client.get(f"/apps/{self.app_name}/machines/{handle.machine_id}", headers=self._headers())
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise DispatchError(f"Failed to get machine status: {e}") from e
        if not isinstance(data, dict):
            raise DispatchError(f"Malformed machine status: {r.text[:200]}")
        return {"state": data.get("state", "unknown"), "region": data.get("region")}


class CeleryProvider(ComputeProvider):
    name = "celery"

    def __init__(self, celery_app=None, task_name: Optional[str] = None):
        if celery_app is None:
            from worker.celery_app import celery_app
        self.celery_app = celery_app
        self.task_name = task_name or settings.celery_export_task

    def spawn(self, req: SpawnRequest) -> DispatchHandle:
        try:
            async_result = self.celery_app.send_task(self.task_name, kwargs={"env": req.worker_env()})
        except Exception as e:
            raise DispatchError(f"Failed to enqueue export task: {e}") from e
        logger.info("Queued celery task %s for task %s", async_result.id, req.task_id)
        return DispatchHandle(provider=self.name, machine_id=async_result.id)

    def describe(self, handle: DispatchHandle) -> Dict[str, Any]:
        ar = self.celery_app.AsyncResult(handle.machine_id)
        return {"state": ar.state.lower()}


def build_provider(name: Optional[str] = None) -> ComputeProvider:
    name = name or settings.compute_backend
    if name == "fly":
        return FlyMachinesProvider()
    if name == "celery":
        return CeleryProvider()
    raise ValueError(f"Unsupported COMPUTE_BACKEND: {name}")
