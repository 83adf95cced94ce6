from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ..config import settings
from ..dependencies import get_dispatcher, get_gateway, get_ingestor
from ..models import CallbackAck, CallbackPayload, ComputeStatus, NewTaskRequest, StatusResponse, TaskStarted
from ..services.callbacks import CallbackIngestor
from ..services.dispatcher import Dispatcher
from ..services.gateway import TaskGateway

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("", response_model=TaskStarted)
def new_task(payload: NewTaskRequest, request: Request, dispatcher: Dispatcher = Depends(get_dispatcher)):
    callback_base = settings.public_base_url or str(request.base_url)
    rec = dispatcher.dispatch(payload, callback_base)
    return TaskStarted(task_id=rec.task_id)


@router.get("/{task_id}", response_model=StatusResponse)
def get_status(task_id: str, gateway: TaskGateway = Depends(get_gateway)):
    return gateway.status(task_id)


@router.post("/{task_id}/callback", response_model=CallbackAck)
def receive_callback(task_id: str, payload: CallbackPayload, ingestor: CallbackIngestor = Depends(get_ingestor)):
    return ingestor.ingest(task_id, payload)


@router.get("/{task_id}/download")
def download(task_id: str, gateway: TaskGateway = Depends(get_gateway)):
    dl = gateway.download(task_id)
    ascii_name = dl.file_name.encode("ascii", "replace").decode().replace('"', "_")
    headers = {
        "Content-Disposition": f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(dl.file_name)}",
        "Content-Length": str(dl.size),
    }
    return StreamingResponse(dl.chunks, media_type=dl.content_type, headers=headers)


@router.get("/{task_id}/compute", response_model=ComputeStatus)
def compute_status(task_id: str, gateway: TaskGateway = Depends(get_gateway)):
    return gateway.describe_compute(task_id)
