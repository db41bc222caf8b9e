from __future__ import annotations

from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from satoken.config import Settings
from satoken.logging import get_logger
from satoken.service.errors import ConfigurationError
from satoken.service.manager import Manager
from satoken.storage.base import Storage
from satoken.storage.errors import StorageError
from satoken.storage.memory import MemoryStorage
from satoken.storage.redis_cache import RedisStorage

logger = get_logger(__name__)


def redact_url_password(url: Optional[str]) -> Optional[str]:
    """Return ``url`` with the password part of its userinfo replaced by ``***``."""
    if not url:
        return url
    parts = urlsplit(url)
    userinfo, at, host = parts.netloc.rpartition("@")
    if not at or ":" not in userinfo:
        return url
    username = userinfo.split(":", 1)[0]
    return urlunsplit(parts._replace(netloc=f"{username}:***@{host}"))


def build_storage(settings: Settings) -> Storage:
    """Pick the storage adapter the settings ask for.

    Redis is connectivity-checked up front. When it is unreachable the call
    fails unless ``allow_redis_fallback`` is set, in which case an in-process
    ``MemoryStorage`` is returned instead.
    """
    if settings.use_memory_storage:
        logger.info("storage_initialized", storage_type="memory")
        return MemoryStorage()

    if not settings.redis_url:
        if not settings.allow_redis_fallback:
            raise ConfigurationError(
                "redis_url is required when use_memory_storage is disabled; "
                "set SATOKEN_USE_MEMORY_STORAGE=true or SATOKEN_ALLOW_REDIS_FALLBACK=true "
                "for local fallback."
            )
        redis_error: Optional[Exception] = None
    else:
        storage = RedisStorage(settings.redis_url)
        try:
            storage.verify_connection()
        except StorageError as exc:
            redis_error = exc
            storage.close()
            if not settings.allow_redis_fallback:
                raise ConfigurationError(
                    "Redis is unreachable; start Redis or set "
                    "SATOKEN_ALLOW_REDIS_FALLBACK=true for in-memory fallback.",
                    detail={"redis_url": redact_url_password(settings.redis_url)},
                ) from exc
        else:
            logger.info(
                "storage_initialized",
                storage_type="redis",
                redis_url=redact_url_password(settings.redis_url),
            )
            return storage

    logger.warning(
        "redis_disabled_fallback",
        redis_url=redact_url_password(settings.redis_url),
        error=str(redis_error) if redis_error else "redis_url_missing",
        message="Running without Redis; logins, sessions, and nonces are in-memory only.",
    )
    return MemoryStorage()


def build_manager(
    settings: Optional[Settings] = None, storage: Optional[Storage] = None
) -> Manager:
    """Return a new ``Manager``; callers own it and pass it where it is needed."""
    settings = settings or Settings.from_env()
    storage = storage if storage is not None else build_storage(settings)
    manager = Manager(storage, settings)
    logger.info(
        "manager_initialized",
        storage_type=type(storage).__name__,
        token_style=settings.token_style.value,
        is_concurrent=settings.is_concurrent,
        auto_renew=settings.auto_renew,
    )
    return manager
