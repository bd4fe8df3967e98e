"""Exception boundary for the public async API."""

import functools

from .errors import CacheStoreError, ErrorCode
from .logging import get_logger
from .models import Result

logger = get_logger(__name__)


def guarded(message: str):
    """Convert exceptions escaping an async method into a failed Result."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except CacheStoreError as e:
                logger.exception("%s: cache store fault", message)
                return Result.fail(f"{message}: {e}", ErrorCode.STORAGE_ERROR)
            except Exception:
                logger.exception(message)
                return Result.fail(message, ErrorCode.INTERNAL_ERROR)

        return wrapper

    return decorator
