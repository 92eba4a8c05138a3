"""Unit tests for utility functions."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from socialgraph.exceptions import InvalidArgumentError, StorageError
from socialgraph.schemas import Page, UserRef
from socialgraph.utils import ensure_distinct_pair, ensure_user_id, normalize_page, with_deadline


def test_ensure_user_id_accepts_positive_ints():
    assert ensure_user_id(7) == 7


@pytest.mark.parametrize("value", [0, -3, "5", 1.0, None, True])
def test_ensure_user_id_rejects(value):
    with pytest.raises(InvalidArgumentError):
        ensure_user_id(value)


def test_ensure_distinct_pair():
    assert ensure_distinct_pair(1, 2) == (1, 2)
    with pytest.raises(InvalidArgumentError) as exc:
        ensure_distinct_pair(3, 3, "connection")
    assert exc.value.message == "Cannot create a connection with yourself"


def test_normalize_page_defaults_and_clamp():
    assert normalize_page(None, None, 50) == (50, 0)
    assert normalize_page(10, 5, 50) == (10, 5)
    assert normalize_page(1000, 0, 50) == (100, 0)


def test_normalize_page_rejects_bad_values():
    with pytest.raises(InvalidArgumentError):
        normalize_page(0, 0, 50)
    with pytest.raises(InvalidArgumentError):
        normalize_page(10, -1, 50)


def test_page_has_more_when_full():
    items = [UserRef(id=1), UserRef(id=2)]
    assert Page[UserRef].build(items, 2, 0).pagination.has_more is True
    assert Page[UserRef].build(items, 3, 0).pagination.has_more is False


@pytest.mark.asyncio
async def test_with_deadline_returns_result():
    op = AsyncMock(return_value=42)
    assert await with_deadline(op(), seconds=1) == 42


@pytest.mark.asyncio
async def test_with_deadline_times_out_as_storage_error():
    with pytest.raises(StorageError) as exc:
        await with_deadline(asyncio.sleep(1), seconds=0.01)
    assert exc.value.operation == "deadline exceeded"


@pytest.mark.asyncio
async def test_with_deadline_lets_mutations_finish():
    finished = asyncio.Event()

    async def mutation():
        await asyncio.sleep(0.05)
        finished.set()

    with pytest.raises(StorageError):
        await with_deadline(mutation(), seconds=0.01, mutation=True)
    await asyncio.wait_for(finished.wait(), 1)
    assert finished.is_set()
