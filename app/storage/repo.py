import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Optional

import redis

from ..config import settings
from ..errors import AlreadyExists, TaskNotFound
from .schema import CompletionOutcome, TaskRecord, utcnow

logger = logging.getLogger(__name__)


class TaskRepo:
    """One record per task id.

    ``create`` and ``apply_completion`` are the only writes; both are atomic and
    ``apply_completion`` is serialized per task id, so two completions racing for
    the same id are applied one after the other and the loser sees a terminal record.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    def create(self, rec: TaskRecord) -> None:
        raise NotImplementedError

    def get(self, task_id: str) -> Optional[TaskRecord]:
        raise NotImplementedError

    def apply_completion(self, task_id: str, outcome: CompletionOutcome) -> TaskRecord:
        raise NotImplementedError


class RedisTaskRepo(TaskRepo):
    def __init__(self, client: Optional[redis.Redis] = None, ttl_seconds: Optional[int] = None,
                 clock: Callable[[], datetime] = utcnow):
        super().__init__(clock)
        self.r = client or redis.from_url(settings.redis_url, decode_responses=True)
        self.ttl_seconds = ttl_seconds

    def _key(self, task_id: str) -> str:
        return f"task:{task_id}"

    def create(self, rec: TaskRecord) -> None:
        created = self.r.set(self._key(rec.task_id), rec.to_json(), nx=True, ex=self.ttl_seconds)
        if not created:
            raise AlreadyExists(rec.task_id)
        logger.info("Created task %s status=%s", rec.task_id, rec.status.value)

    def get(self, task_id: str) -> Optional[TaskRecord]:
        raw = self.r.get(self._key(task_id))
        if raw is None:
            return None
        return TaskRecord.from_json(raw)

    def apply_completion(self, task_id: str, outcome: CompletionOutcome) -> TaskRecord:
        key = self._key(task_id)
        with self.r.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(key)
                    raw = pipe.get(key)
                    if raw is None:
                        raise TaskNotFound(task_id)
                    # Raises DuplicateCallback for terminal records; nothing is written then.
                    updated = TaskRecord.from_json(raw).complete(outcome, self.clock())
                    pipe.multi()
                    pipe.set(key, updated.to_json(), keepttl=True)
                    pipe.execute()
                except redis.WatchError:
                    logger.debug("Concurrent write on %s, retrying completion", key)
                    continue
                logger.info("Task %s completed with status=%s", task_id, updated.status.value)
                return updated


class MemoryTaskRepo(TaskRepo):
    """In-process store guarded by one lock per task id. Only valid within a single process."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        super().__init__(clock)
        self._records: Dict[str, TaskRecord] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, task_id: str, create: bool = False) -> Optional[threading.Lock]:
        with self._registry_lock:
            lock = self._locks.get(task_id)
            if lock is None and create:
                lock = self._locks[task_id] = threading.Lock()
            return lock

    def create(self, rec: TaskRecord) -> None:
        with self._lock_for(rec.task_id, create=True):
            if rec.task_id in self._records:
                raise AlreadyExists(rec.task_id)
            self._records[rec.task_id] = rec
        logger.info("Created task %s status=%s", rec.task_id, rec.status.value)

    def get(self, task_id: str) -> Optional[TaskRecord]:
        # Records are immutable, so a plain lookup never observes a torn write.
        return self._records.get(task_id)

    def apply_completion(self, task_id: str, outcome: CompletionOutcome) -> TaskRecord:
        # Locks exist only for created records, so unknown ids leave no trace.
        lock = self._lock_for(task_id)
        if lock is None:
            raise TaskNotFound(task_id)
        with lock:
            current = self._records.get(task_id)
            if current is None:
                raise TaskNotFound(task_id)
            updated = current.complete(outcome, self.clock())
            self._records[task_id] = updated
        logger.info("Task %s completed with status=%s", task_id, updated.status.value)
        return updated


def build_repo() -> TaskRepo:
    if settings.store_backend == "memory":
        return MemoryTaskRepo()
    if settings.store_backend == "redis":
        return RedisTaskRepo(ttl_seconds=settings.task_ttl_seconds)
    raise ValueError(f"Unsupported STORE_BACKEND: {settings.store_backend}")
