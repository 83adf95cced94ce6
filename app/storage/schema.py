from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..errors import DuplicateCallback


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.PROCESSING


class DispatchHandle(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    machine_id: str
    instance_id: Optional[str] = None


class TaskResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    file_size: int = Field(ge=0)
    metrics: Dict[str, Union[int, float]] = Field(default_factory=dict)


class CompletionOutcome(BaseModel):
    """What a completion signal asks to do to a record: succeed with a result or fail with a message."""

    model_config = ConfigDict(frozen=True)

    status: Literal["success", "error"]
    result: Optional[TaskResult] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "CompletionOutcome":
        if self.status == "success" and (self.result is None or self.error is not None):
            raise ValueError("success outcome requires a result and no error")
        if self.status == "error" and (not self.error or self.result is not None):
            raise ValueError("error outcome requires a message and no result")
        return self

    @classmethod
    def success(cls, result: TaskResult) -> "CompletionOutcome":
        return cls(status="success", result=result)

    @classmethod
    def failure(cls, message: str) -> "CompletionOutcome":
        return cls(status="error", error=message)


class TaskRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    task_id: str
    batch_id: str = "single"
    status: TaskStatus = TaskStatus.PROCESSING
    subject: str
    options: Dict[str, Any] = Field(default_factory=dict)
    handle: DispatchHandle
    result: Optional[TaskResult] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "TaskRecord":
        if (self.result is not None) != (self.status is TaskStatus.SUCCESS):
            raise ValueError("result is present if and only if status is success")
        if (self.error is not None) != (self.status is TaskStatus.ERROR):
            raise ValueError("error is present if and only if status is error")
        if (self.completed_at is not None) != self.status.is_terminal:
            raise ValueError("completed_at is set if and only if the task is terminal")
        return self

    def complete(self, outcome: CompletionOutcome, now: Optional[datetime] = None) -> "TaskRecord":
        """Return the terminal version of this record.

        Raises DuplicateCallback when the record has already left ``processing``.
        Callers must hold the store's per-id serialization while calling this.
        """
        if self.status.is_terminal:
            raise DuplicateCallback(self.task_id, self.status.value)
        return type(self).model_validate(
            {
                **self.model_dump(),
                "status": TaskStatus(outcome.status),
                "result": outcome.result.model_dump() if outcome.result else None,
                "error": outcome.error,
                "completed_at": now or utcnow(),
            }
        )

    def to_json(self) -> bytes:
        return orjson.dumps(self.model_dump(mode="json"))

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> "TaskRecord":
        return cls.model_validate(orjson.loads(raw))
