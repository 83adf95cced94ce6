import logging

from ..errors import DuplicateCallback, ValidationError
from ..models import CallbackAck, CallbackPayload
from ..storage.repo import TaskRepo
from ..storage.schema import CompletionOutcome, TaskResult

logger = logging.getLogger(__name__)


class CallbackIngestor:
    """Applies worker completion signals. Redelivery of a callback is expected and harmless."""

    def __init__(self, repo: TaskRepo):
        self.repo = repo

    def ingest(self, task_id: str, payload: CallbackPayload) -> CallbackAck:
        outcome = self._outcome(task_id, payload)
        logger.info("Callback for task %s status=%s", task_id, payload.status)
        try:
            rec = self.repo.apply_completion(task_id, outcome)
        except DuplicateCallback as dup:
            logger.warning("Ignoring duplicate callback for task %s (already %s)", task_id, dup.status)
            return CallbackAck(duplicate=True, status=dup.status)
        if rec.error:
            logger.error("Task %s failed: %s", task_id, rec.error)
        return CallbackAck(status=rec.status)

    @staticmethod
    def _outcome(task_id: str, payload: CallbackPayload) -> CompletionOutcome:
        if payload.task_id != task_id:
            raise ValidationError(f"Callback task_id {payload.task_id!r} does not match {task_id!r}")
        if payload.status == "success":
            if payload.result is None:
                raise ValidationError("Success callback must carry a result")
            if payload.result.file_size < 0 or not payload.result.key or not payload.result.file_name:
                raise ValidationError("Success callback result needs key, file_name and a non-negative file_size")
            return CompletionOutcome.success(TaskResult(**payload.result.model_dump()))
        if not payload.error:
            raise ValidationError("Error callback must carry an error message")
        return CompletionOutcome.failure(payload.error)
