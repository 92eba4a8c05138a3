import pytest


async def _build(make_user, connect, edges):
    users = [await make_user() for _ in range(5)]
    for a, b in edges:
        await connect(users[a - 1], users[b - 1])
    return users


# U1-U2, U2-U3, U3-U4, U1-U5, U5-U3
BASE_EDGES = [(1, 2), (2, 3), (3, 4), (1, 5), (5, 3)]


@pytest.mark.asyncio
async def test_mutual_connections(graph, make_user, connect):
    u1, u2, u3, u4, u5 = await _build(make_user, connect, BASE_EDGES)

    mutuals = await graph.graph.mutual_connections(u1, u3)
    assert {m.id for m in mutuals} == {u2, u5}
    # Symmetric up to order
    assert {m.id for m in await graph.graph.mutual_connections(u3, u1)} == {u2, u5}
    assert await graph.graph.mutual_connections(u1, u4) == []


@pytest.mark.asyncio
async def test_second_degree_counts_intermediaries(graph, make_user, connect):
    u1, u2, u3, u4, u5 = await _build(make_user, connect, BASE_EDGES + [(2, 4)])

    candidates = await graph.graph.second_degree(u1, 10)
    assert [(c.id, c.mutual_count) for c in candidates] == [(u3, 2), (u4, 1)]


@pytest.mark.asyncio
async def test_second_degree_is_bounded_to_two_hops(graph, make_user, connect):
    u1, u2, u3, u4, u5 = await _build(make_user, connect, BASE_EDGES)

    candidates = await graph.graph.second_degree(u1, 10)
    ids = [c.id for c in candidates]
    assert ids == [u3]
    assert u1 not in ids and u2 not in ids and u5 not in ids


@pytest.mark.asyncio
async def test_second_degree_ignores_pending(graph, make_user, connect):
    u1 = await make_user()
    u2 = await make_user()
    u3 = await make_user()
    await connect(u1, u2)
    await graph.store.request_connection(u2, u3)

    assert await graph.graph.second_degree(u1, 10) == []


@pytest.mark.asyncio
async def test_second_degree_paging(graph, make_user, connect):
    u1, u2, u3, u4, u5 = await _build(make_user, connect, BASE_EDGES + [(2, 4)])

    first = await graph.graph.second_degree(u1, 1)
    second = await graph.graph.second_degree(u1, 1, offset=1)
    assert [c.id for c in first] == [u3]
    assert [c.id for c in second] == [u4]


@pytest.mark.asyncio
async def test_relationship_path_degrees(graph, make_user, connect):
    u1, u2, u3, u4, u5 = await _build(make_user, connect, BASE_EDGES + [(2, 4)])

    me = await graph.graph.relationship_path(u1, u1)
    assert me.degree == 0 and me.message == "This is you"

    direct = await graph.graph.relationship_path(u1, u2)
    assert direct.degree == 1 and direct.path == [u2]

    via = await graph.graph.relationship_path(u1, u4)
    assert via.degree == 2
    assert via.path == [u2, u4]


@pytest.mark.asyncio
async def test_relationship_path_beyond_two_hops(graph, make_user, connect):
    u1, u2, u3, u4, u5 = await _build(make_user, connect, BASE_EDGES)

    path = await graph.graph.relationship_path(u1, u4)
    assert path.degree is None
    assert path.path == []
    assert path.message == "No direct or second-degree connection found"


@pytest.mark.asyncio
async def test_network_stats_totals(graph, make_user, connect):
    me = await make_user()
    a = await make_user()
    b = await make_user()
    c = await make_user()
    await connect(me, a)
    await graph.store.request_connection(b, me)
    await graph.store.request_connection(me, c)
    await graph.store.follow(a, me)
    await graph.store.follow(me, b)
    await graph.store.follow(me, c)

    stats = await graph.graph.network_stats(me)
    assert stats.connections.connected == 1
    assert stats.connections.pending_incoming == 1
    assert stats.connections.pending_outgoing == 1
    assert stats.connections.total == 3
    assert stats.follows.followers == 1
    assert stats.follows.following == 2
