import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Optional, Tuple, TypeVar

from .config import settings
from .exceptions import InvalidArgumentError, StorageError

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_user_id(value, name: str = "user_id") -> int:
    """
    Validate a user id coming from a caller.

    Args:
        value: Candidate id
        name: Argument name used in the error message

    Returns:
        The id as an int

    Raises:
        InvalidArgumentError: if the value is not a positive integer
    """
    # bool is an int subclass but never a valid id
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidArgumentError(f"Invalid {name}")
    return value


def ensure_distinct_pair(a, b, what: str = "relationship") -> Tuple[int, int]:
    """Validate both ids and reject self-referential pairs."""
    a = ensure_user_id(a)
    b = ensure_user_id(b)
    if a == b:
        raise InvalidArgumentError(f"Cannot create a {what} with yourself")
    return a, b


def normalize_page(limit: Optional[int], offset: Optional[int], default_limit: int) -> Tuple[int, int]:
    """
    Resolve limit/offset for a list query.

    A missing limit falls back to the per-query default; limits above the
    configured maximum are clamped to it.
    """
    if limit is None:
        limit = default_limit
    if offset is None:
        offset = 0
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise InvalidArgumentError("limit must be a positive integer")
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise InvalidArgumentError("offset must be a non-negative integer")
    return min(limit, settings.max_page_size), offset


async def with_deadline(awaitable: Awaitable[T], seconds: Optional[float] = None, *, mutation: bool = False) -> T:
    """
    Await an operation under a deadline.

    Queries are cancelled when the deadline passes. Mutations are shielded
    so the in-flight statement still completes, but the caller stops
    waiting. Both surface as a retryable StorageError.
    """
    timeout = settings.operation_timeout_seconds if seconds is None else seconds
    task = asyncio.ensure_future(awaitable)
    try:
        if mutation:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        return await asyncio.wait_for(task, timeout)
    except asyncio.TimeoutError as e:
        raise StorageError("deadline exceeded") from e
