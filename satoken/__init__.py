from satoken.config import Settings, TokenStyle
from satoken.service.errors import ServiceError
from satoken.service.manager import Manager, TokenInfo
from satoken.service.runtime import build_manager, build_storage
from satoken.storage.base import Storage
from satoken.storage.memory import MemoryStorage
from satoken.storage.redis_cache import RedisStorage

__version__ = "0.1.0"

__all__ = [
    "Manager",
    "MemoryStorage",
    "RedisStorage",
    "ServiceError",
    "Settings",
    "Storage",
    "TokenInfo",
    "TokenStyle",
    "build_manager",
    "build_storage",
]
