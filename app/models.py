from datetime import datetime
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .storage.schema import TaskResult, TaskStatus


class ExportOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    recursive: bool = False
    max_depth: int = Field(10, ge=1, le=50, alias="maxDepth")
    include_ocr: bool = Field(True, alias="includeOcr")
    max_text_length: int = Field(100_000, ge=1, alias="maxTextLength")
    entity_source: Literal["graphdb", "cheimarros", "both"] = Field("graphdb", alias="entitySource")
    include_components: bool = Field(True, alias="includeComponents")
    parallel_batch_size: int = Field(10, ge=1, alias="parallelBatchSize")


class NewTaskRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    subject: str = Field(min_length=1)
    options: Optional[ExportOptions] = Field(default_factory=ExportOptions)

    @field_validator("options", mode="before")
    @classmethod
    def _default_options(cls, v: Any) -> Any:
        return ExportOptions() if v is None else v


class TaskStarted(BaseModel):
    task_id: str
    status: TaskStatus = TaskStatus.PROCESSING
    message: str = "Export job started. Use task_id to check status."


class StatusResponse(BaseModel):
    task_id: str
    batch_id: str
    status: TaskStatus
    subject: str
    options: Dict[str, Any]
    created_at: datetime
    completed_at: Optional[datetime] = None
    result: Optional[TaskResult] = None
    error: Optional[str] = None


class CallbackResult(BaseModel):
    key: str
    file_name: str
    file_size: int
    metrics: Dict[str, Union[int, float]] = Field(default_factory=dict)

    @field_validator("metrics", mode="before")
    @classmethod
    def _metrics_or_empty(cls, v: Any) -> Any:
        return {} if v is None else v


class CallbackPayload(BaseModel):
    task_id: str
    batch_id: Optional[str] = None
    status: Literal["success", "error"]
    result: Optional[CallbackResult] = None
    error: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _fold_flat_result(cls, data: Any) -> Any:
        # Workers report the artifact as flat output_* fields; fold them into ``result``.
        if not isinstance(data, dict) or data.get("result") is not None or "output_r2_key" not in data:
            return data
        data = dict(data)
        data["result"] = {
            "key": data.pop("output_r2_key"),
            "file_name": data.pop("output_file_name", None),
            "file_size": data.pop("output_file_size", None),
            "metrics": data.pop("metrics", None) or {},
        }
        return data


class CallbackAck(BaseModel):
    received: bool = True
    duplicate: bool = False
    status: TaskStatus


class ComputeStatus(BaseModel):
    task_id: str
    provider: str
    machine_id: str
    state: str
    detail: Dict[str, Any] = Field(default_factory=dict)
