import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("OBJECT_STORE_BACKEND", "memory")

from app.storage.objects import MemoryObjectStore  # noqa: E402
from app.storage.repo import MemoryTaskRepo  # noqa: E402
from tests.fakes import FakeProvider  # noqa: E402


@pytest.fixture
def repo():
    return MemoryTaskRepo()


@pytest.fixture
def objects():
    return MemoryObjectStore()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def client(repo, objects, provider):
    from fastapi.testclient import TestClient

    from app import dependencies
    from app.main import app
    from app.services.callbacks import CallbackIngestor
    from app.services.dispatcher import Dispatcher
    from app.services.gateway import TaskGateway

    app.dependency_overrides[dependencies.get_dispatcher] = lambda: Dispatcher(repo, provider)
    app.dependency_overrides[dependencies.get_ingestor] = lambda: CallbackIngestor(repo)
    app.dependency_overrides[dependencies.get_gateway] = lambda: TaskGateway(repo, objects, provider)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
