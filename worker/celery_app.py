import os
from celery import Celery

# Export workers consume from this broker and POST their outcome to CALLBACK_URL
# from the env they receive; the orchestrator only enqueues by task name.
celery_app = Celery(
    "export_orchestrator",
    broker=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
    backend=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
)
celery_app.conf.update(
    task_acks_late=True,
    task_track_started=True,
    task_default_queue=os.getenv("CELERY_EXPORT_QUEUE", "exports"),
)
