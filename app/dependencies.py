from functools import lru_cache

from .services.callbacks import CallbackIngestor
from .services.compute import ComputeProvider, build_provider
from .services.dispatcher import Dispatcher
from .services.gateway import TaskGateway
from .storage.objects import ObjectStore, build_object_store
from .storage.repo import TaskRepo, build_repo


@lru_cache()
def get_repo() -> TaskRepo:
    return build_repo()


@lru_cache()
def get_provider() -> ComputeProvider:
    return build_provider()


@lru_cache()
def get_object_store() -> ObjectStore:
    return build_object_store()


def get_dispatcher() -> Dispatcher:
    return Dispatcher(get_repo(), get_provider())


def get_ingestor() -> CallbackIngestor:
    return CallbackIngestor(get_repo())


def get_gateway() -> TaskGateway:
    return TaskGateway(get_repo(), get_object_store(), get_provider())
