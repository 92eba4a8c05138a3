import asyncio

import pytest

from socialgraph.schemas import ConnectionStatusEnum, UserRef
from socialgraph.services.visibility import VisibilityFilter


class SlowStore:
    """Relation store stand-in that records how many lookups overlap."""

    def __init__(self, blocked_pairs=()):
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls = 0
        self.blocked_pairs = set(blocked_pairs)

    async def _lookup(self, value):
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        return value

    async def is_blocked_either_way(self, a, b):
        return await self._lookup((a, b) in self.blocked_pairs or (b, a) in self.blocked_pairs)

    async def is_blocked_one_way(self, a, b):
        return await self._lookup((a, b) in self.blocked_pairs)

    async def find_connection(self, a, b):
        return await self._lookup(None)

    async def is_following(self, a, b):
        return await self._lookup(False)


def _refs(*ids):
    return [UserRef(id=i, username=f"user{i}") for i in ids]


@pytest.mark.asyncio
async def test_lookups_run_concurrently():
    store = SlowStore()
    visibility = VisibilityFilter(store)

    result = await visibility.apply(1, _refs(2, 3, 4))
    assert [r.id for r in result] == [2, 3, 4]
    assert store.calls == 18
    # Six lookups for each of three candidates, all in flight together
    assert store.max_in_flight == 18


@pytest.mark.asyncio
async def test_anonymous_viewer_passes_through():
    store = SlowStore(blocked_pairs={(1, 2)})
    visibility = VisibilityFilter(store)

    items = _refs(2, 3)
    result = await visibility.apply(None, items)
    assert result == items
    assert all(r.relationship is None for r in result)
    assert store.calls == 0


@pytest.mark.asyncio
async def test_self_entry_is_never_annotated():
    visibility = VisibilityFilter(SlowStore())
    result = await visibility.apply(1, _refs(1, 2))
    assert result[0].relationship is None
    assert result[1].relationship is not None


@pytest.mark.asyncio
async def test_blocked_entries_dropped_order_kept():
    store = SlowStore(blocked_pairs={(3, 1)})
    visibility = VisibilityFilter(store)

    result = await visibility.apply(1, _refs(4, 3, 2))
    assert [r.id for r in result] == [4, 2]

    unfiltered = await visibility.apply(1, _refs(4, 3, 2), drop_blocked=False)
    assert [r.id for r in unfiltered] == [4, 3, 2]
    assert unfiltered[1].relationship.blocked_me is True
    assert unfiltered[1].relationship.i_blocked is False


@pytest.mark.asyncio
async def test_flags_from_real_store(graph, make_user):
    me = await make_user()
    other = await make_user()
    await graph.store.request_connection(other, me)
    await graph.store.follow(me, other)

    blocked, flags = await graph.visibility.relationship(me, other)
    assert blocked is False
    assert flags.connection_pending is True
    assert flags.is_connected is False
    assert flags.connection_status == ConnectionStatusEnum.pending
    assert flags.connection_requester_id == other
    assert flags.i_follow_them is True
    assert flags.they_follow_me is False


@pytest.mark.asyncio
async def test_flags_serialize_camel_case():
    visibility = VisibilityFilter(SlowStore())
    [entry] = await visibility.apply(1, _refs(2))
    dumped = entry.relationship.model_dump(by_alias=True)
    assert dumped["iFollowThem"] is False
    assert "connectionPending" in dumped
