import re
import time
import uuid

TASK_ID_PREFIX = "export"
_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def generate_task_id() -> str:
    """URL-safe task id: ``export_{epoch_ms}_{uuid4 hex}``.

    The millisecond prefix keeps ids roughly sortable; the 122 random bits of
    the uuid make collisions negligible.
    """
    return f"{TASK_ID_PREFIX}_{int(time.time() * 1000)}_{uuid.uuid4().hex}"


def artifact_key(task_id: str, subject: str) -> str:
    """Object store key the worker is expected to upload the export to."""
    return f"exports/{task_id}/{_UNSAFE.sub('_', subject)}-collection.xml"


def callback_url(base_url: str, task_id: str) -> str:
    return f"{base_url.rstrip('/')}/tasks/{task_id}/callback"
