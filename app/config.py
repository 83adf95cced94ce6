from pydantic import BaseModel
import os


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name)
    return int(raw) if raw else None


class Settings(BaseModel):
    service_name: str = os.getenv("SERVICE_NAME", "export-orchestrator")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    public_base_url: str | None = os.getenv("PUBLIC_BASE_URL")

    store_backend: str = os.getenv("STORE_BACKEND", "redis")
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    # Retention of task records is an external policy; unset means no expiry.
    task_ttl_seconds: int | None = _optional_int("TASK_TTL_SECONDS")

    compute_backend: str = os.getenv("COMPUTE_BACKEND", "fly")
    fly_api_base: str = os.getenv("FLY_API_BASE", "https://api.machines.dev/v1")
    fly_api_token: str | None = os.getenv("FLY_API_TOKEN")
    fly_app_name: str = os.getenv("FLY_APP_NAME", "export-worker")
    fly_region: str = os.getenv("FLY_REGION", "ord")
    fly_worker_image: str = os.getenv("FLY_WORKER_IMAGE", "registry.fly.io/export-worker:latest")
    worker_cpus: int = int(os.getenv("WORKER_CPUS", 2))
    worker_memory_mb: int = int(os.getenv("WORKER_MEMORY_MB", 2048))
    dispatch_timeout_seconds: float = float(os.getenv("DISPATCH_TIMEOUT_SECONDS", 30))
    celery_export_task: str = os.getenv("CELERY_EXPORT_TASK", "run_export")

    object_store_backend: str = os.getenv("OBJECT_STORE_BACKEND", "s3")
    s3_bucket: str = os.getenv("S3_BUCKET", "exports")
    s3_endpoint_url: str | None = os.getenv("S3_ENDPOINT_URL")
    s3_region: str | None = os.getenv("S3_REGION")
    aws_access_key_id: str | None = os.getenv("AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str | None = os.getenv("AWS_SECRET_ACCESS_KEY")
    artifact_content_type: str = os.getenv("ARTIFACT_CONTENT_TYPE", "application/xml")

settings = Settings()
