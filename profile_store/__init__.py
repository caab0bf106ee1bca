from .local_backend import LocalKeyValueBackend, connect_backend
from .models import ListResultsOrder, ProfileRecord
from .redis_storage import RESULTS_KEY, UNVIEWED_USER_PREFIX, RedisProfileStorage

__all__ = [
    "ListResultsOrder",
    "LocalKeyValueBackend",
    "ProfileRecord",
    "RESULTS_KEY",
    "RedisProfileStorage",
    "UNVIEWED_USER_PREFIX",
    "connect_backend",
]
