import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

from ..config import settings

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


@dataclass
class StoredObject:
    key: str
    size: int
    content_type: Optional[str]
    chunks: Iterator[bytes]


class ObjectStore:
    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        raise NotImplementedError

    def head(self, key: str) -> Optional[int]:
        """Size in bytes of the object at ``key``, or None when absent."""
        raise NotImplementedError

    def open(self, key: str) -> Optional[StoredObject]:
        raise NotImplementedError


class S3ObjectStore(ObjectStore):
    def __init__(self, bucket: Optional[str] = None, client=None):
        self.bucket = bucket or settings.s3_bucket
        self.s3 = client or boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            config=Config(signature_version="s3v4"),
            region_name=settings.s3_region,
        )

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        extra = {"ContentType": content_type} if content_type else {}
        self.s3.put_object(Bucket=self.bucket, Key=key, Body=data, **extra)

    def head(self, key: str) -> Optional[int]:
        try:
            resp = self.s3.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                return None
            raise
        return int(resp["ContentLength"])

    def open(self, key: str) -> Optional[StoredObject]:
        try:
            resp = self.s3.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                return None
            raise
        body = resp["Body"]
        return StoredObject(
            key=key,
            size=int(resp["ContentLength"]),
            content_type=resp.get("ContentType"),
            chunks=_close_after(body.iter_chunks(CHUNK_SIZE), body),
        )


class MemoryObjectStore(ObjectStore):
    def __init__(self):
        self._objects: Dict[str, tuple[bytes, Optional[str]]] = {}
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        with self._lock:
            self._objects[key] = (bytes(data), content_type)

    def head(self, key: str) -> Optional[int]:
        entry = self._objects.get(key)
        return len(entry[0]) if entry else None

    def open(self, key: str) -> Optional[StoredObject]:
        entry = self._objects.get(key)
        if entry is None:
            return None
        data, content_type = entry
        chunks = (data[i:i + CHUNK_SIZE] for i in range(0, len(data), CHUNK_SIZE))
        return StoredObject(key=key, size=len(data), content_type=content_type, chunks=chunks)


def _is_missing(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in _MISSING_CODES


def _close_after(chunks: Iterator[bytes], body) -> Iterator[bytes]:
    try:
        yield from chunks
    finally:
        body.close()


def build_object_store() -> ObjectStore:
    if settings.object_store_backend == "memory":
        return MemoryObjectStore()
    if settings.object_store_backend == "s3":
        return S3ObjectStore()
    raise ValueError(f"Unsupported OBJECT_STORE_BACKEND: {settings.object_store_backend}")
