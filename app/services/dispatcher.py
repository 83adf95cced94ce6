import logging
from typing import Callable, Optional

from ..errors import DispatchError
from ..models import NewTaskRequest
from ..storage.repo import TaskRepo
from ..storage.schema import TaskRecord
from ..utils.ids import callback_url, generate_task_id
from .compute import ComputeProvider, SpawnRequest

logger = logging.getLogger(__name__)


class Dispatcher:
    def __init__(self, repo: TaskRepo, provider: ComputeProvider,
                 id_factory: Callable[[], str] = generate_task_id):
        self.repo = repo
        self.provider = provider
        self.id_factory = id_factory

    def dispatch(self, req: NewTaskRequest, callback_base: str, batch_id: Optional[str] = None) -> TaskRecord:
        """Spawn compute for ``req`` and persist the ``processing`` record.

        A DispatchError from the provider propagates and leaves no record behind.
        The caller may retry; every attempt gets a fresh task id.
        """
        task_id = self.id_factory()
        options = req.options.model_dump(by_alias=True)
        spawn = SpawnRequest(
            task_id=task_id,
            subject=req.subject,
            callback_url=callback_url(callback_base, task_id),
            batch_id=batch_id or "single",
            options=options,
        )
        logger.info("Dispatching task %s for subject %s via %s", task_id, req.subject, self.provider.name)
        try:
            handle = self.provider.spawn(spawn)
        except DispatchError as e:
            logger.error("Spawn failed for task %s: %s", task_id, e)
            raise

        rec = TaskRecord(
            task_id=task_id,
            batch_id=spawn.batch_id,
            subject=req.subject,
            options=options,
            handle=handle,
            created_at=self.repo.clock(),
        )
        self.repo.create(rec)
        return rec
