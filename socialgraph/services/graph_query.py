from __future__ import annotations

import asyncio
from typing import List, Optional

from sqlalchemy import desc, distinct, func, select, union_all

from ..database import Database
from ..models import Connection, User
from ..schemas import (
    ConnectionStats, FollowStats, NetworkStats, RelationshipPath,
    SuggestedUser, UserRef,
)
from ..utils import ensure_user_id
from .relation_store import CONNECTED, RelationStore
from .user_store import UserStore, not_blocked_with, user_ref_fields


def _connected_edges():
    """Connected rows as directed (src, dst) edges in both directions."""
    return union_all(
        select(Connection.requester_id.label("src"),
               Connection.addressee_id.label("dst"))
        .where(Connection.status == CONNECTED),
        select(Connection.addressee_id.label("src"),
               Connection.requester_id.label("dst"))
        .where(Connection.status == CONNECTED),
    )


class GraphQuery:
    """Derived queries over the connected graph, bounded to two hops."""

    def __init__(self, db: Database, store: RelationStore, users: UserStore):
        self.db = db
        self.store = store
        self.users = users

    async def mutual_connections(self, viewer_id: int, target_id: int) -> List[UserRef]:
        """Users connected to both viewer and target, in the viewer's connection order."""
        viewer_id = ensure_user_id(viewer_id)
        target_id = ensure_user_id(target_id)
        mine, theirs = await asyncio.gather(
            self.store.connected_ids(viewer_id),
            self.store.connected_ids(target_id),
        )
        theirs = set(theirs)
        mutual_ids = [uid for uid in mine
                      if uid in theirs and uid not in (viewer_id, target_id)]
        if not mutual_ids:
            return []
        refs = await self.users.get_users(mutual_ids)
        return [refs[uid] for uid in mutual_ids if uid in refs]

    async def second_degree(self, root_id: int, cap: int, offset: int = 0,
                            viewer_id: Optional[int] = None) -> List[SuggestedUser]:
        """
        Users two hops from root who are not directly connected to it.

        mutual_count is the number of distinct intermediaries. Ordered by
        mutual_count desc, then user id asc. Users blocked either way with
        `viewer_id` are excluded before paging.
        """
        root_id = ensure_user_id(root_id)
        first_hop = _connected_edges().subquery("first_hop")
        second_hop = _connected_edges().subquery("second_hop")
        direct = _connected_edges().subquery("direct")

        mutual_count = func.count(distinct(first_hop.c.dst)).label("mutual_count")
        stmt = (
            select(User, mutual_count)
            .join(second_hop, second_hop.c.dst == User.id)
            .join(first_hop, first_hop.c.dst == second_hop.c.src)
            .where(
                first_hop.c.src == root_id,
                User.id != root_id,
                User.id.not_in(select(direct.c.dst).where(direct.c.src == root_id)),
                not_blocked_with(viewer_id, User.id),
            )
            .group_by(User.id)
            .order_by(desc(mutual_count), User.id)
            .offset(offset)
            .limit(cap)
        )
        async with self.db.session_for("second_degree") as session:
            res = await session.execute(stmt)
            return [
                SuggestedUser(**user_ref_fields(u), mutual_count=int(count))
                for (u, count) in res.all()
            ]

    async def relationship_path(self, viewer_id: int, target_id: int) -> RelationshipPath:
        """Degree of separation up to 2; the first intermediary in the viewer's connection order wins."""
        viewer_id = ensure_user_id(viewer_id)
        target_id = ensure_user_id(target_id)
        if viewer_id == target_id:
            return RelationshipPath(degree=0, path=[], message="This is you")

        mine, theirs = await asyncio.gather(
            self.store.connected_ids(viewer_id),
            self.store.connected_ids(target_id),
        )
        if target_id in mine:
            return RelationshipPath(degree=1, path=[target_id],
                                    message="Directly connected")
        theirs = set(theirs)
        shared = [via for via in mine if via in theirs]
        # Intermediaries blocked either way with the viewer never appear in the path
        blocked = await asyncio.gather(
            *(self.store.is_blocked_either_way(viewer_id, via) for via in shared))
        for via, is_blocked in zip(shared, blocked):
            if not is_blocked:
                return RelationshipPath(
                    degree=2, path=[via, target_id],
                    message="Connected through mutual connection")
        return RelationshipPath(
            degree=None, path=[],
            message="No direct or second-degree connection found")

    async def network_stats(self, user_id: int) -> NetworkStats:
        user_id = ensure_user_id(user_id)
        connected, incoming, outgoing, followers, following = await asyncio.gather(
            self.store.count_connections(user_id),
            self.store.count_pending_incoming(user_id),
            self.store.count_pending_outgoing(user_id),
            self.store.count_followers(user_id),
            self.store.count_following(user_id),
        )
        return NetworkStats(
            connections=ConnectionStats(
                connected=connected,
                pending_incoming=incoming,
                pending_outgoing=outgoing,
                total=connected + incoming + outgoing,
            ),
            follows=FollowStats(followers=followers, following=following),
        )
