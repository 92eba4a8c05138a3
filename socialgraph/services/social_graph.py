"""
Logical API of the social graph core.

Every entry point runs the access guard first, reads through the stores and
graph queries, and pipes user-valued results through the visibility filter
before returning them.
"""
from __future__ import annotations

import asyncio
from typing import List, Optional

from ..database import Database
from ..exceptions import InvalidArgumentError
from ..schemas import (
    BlockEntry, BlockRecord, ConnectionEntry, ConnectionRecord, FollowEntry,
    FollowRecord, NetworkStats, Page, ProfileVisitRecord, RelationshipPath,
    SuggestedUser, UserRef, VisitEntry, VisitStats,
)
from ..utils import ensure_distinct_pair, ensure_user_id, normalize_page
from .access_guard import AccessGuard
from .graph_query import GraphQuery
from .relation_store import RelationStore
from .suggester import Suggester
from .user_store import UserStore
from .visibility import VisibilityFilter
from .visit_store import ProfileVisitStore

# Default page sizes per listing
CONNECTIONS_LIMIT = 50
PENDING_LIMIT = 50
FOLLOWS_LIMIT = 50
MUTUALS_LIMIT = 50
SECOND_DEGREE_LIMIT = 50
SUGGESTIONS_LIMIT = 20
VISITS_LIMIT = 50
BLOCKED_LIMIT = 50
SEARCH_LIMIT = 20


def _slice(items: List, limit: int, offset: int) -> List:
    return items[offset:offset + limit]


class SocialGraph:
    def __init__(self, db: Database):
        self.db = db
        self.users = UserStore(db)
        self.store = RelationStore(db)
        self.visits = ProfileVisitStore(db)
        self.visibility = VisibilityFilter(self.store)
        self.guard = AccessGuard(self.store, self.users)
        self.graph = GraphQuery(db, self.store, self.users)
        self.suggester = Suggester(self.store, self.graph, self.visibility)

    async def _inspect(self, viewer_id: int, user_id: Optional[int], what: str) -> int:
        """Resolve the listed user (default: the viewer) and guard access to it."""
        viewer_id = ensure_user_id(viewer_id, "viewer_id")
        if user_id is None or user_id == viewer_id:
            return viewer_id
        await self.guard.ensure_can_inspect(viewer_id, user_id, what)
        return user_id

    # Mutations

    async def request_connection(self, viewer_id: int, target_id: int) -> ConnectionRecord:
        await self.guard.ensure_can_interact(viewer_id, target_id, "connect with")
        return await self.store.request_connection(viewer_id, target_id)

    async def accept_connection(self, viewer_id: int, requester_id: int) -> Optional[ConnectionRecord]:
        """Accept the pending request requester -> viewer; None when there is none."""
        return await self.store.accept_connection(requester_id, viewer_id)

    async def remove_connection(self, viewer_id: int, other_id: int) -> Optional[ConnectionRecord]:
        return await self.store.remove_connection(viewer_id, other_id)

    async def follow(self, viewer_id: int, target_id: int) -> FollowRecord:
        await self.guard.ensure_can_interact(viewer_id, target_id, "follow")
        return await self.store.follow(viewer_id, target_id)

    async def unfollow(self, viewer_id: int, target_id: int) -> Optional[FollowRecord]:
        return await self.store.unfollow(viewer_id, target_id)

    async def block(self, viewer_id: int, target_id: int) -> BlockRecord:
        viewer_id, target_id = ensure_distinct_pair(viewer_id, target_id, "block")
        await self.guard.ensure_exists(target_id)
        return await self.store.block(viewer_id, target_id)

    async def unblock(self, viewer_id: int, target_id: int) -> Optional[BlockRecord]:
        return await self.store.unblock(viewer_id, target_id)

    async def record_visit(self, viewer_id: int, profile_user_id: int) -> Optional[ProfileVisitRecord]:
        """Count a profile view. Viewing your own profile is not recorded."""
        viewer_id = ensure_user_id(viewer_id, "viewer_id")
        profile_user_id = ensure_user_id(profile_user_id)
        if viewer_id == profile_user_id:
            return None
        await self.guard.ensure_can_interact(viewer_id, profile_user_id, "visit")
        return await self.visits.record_visit(viewer_id, profile_user_id)

    # Connection queries

    async def find_connection(self, viewer_id: int, other_id: int) -> Optional[ConnectionRecord]:
        return await self.store.find_connection(viewer_id, other_id)

    async def list_connections(
        self,
        viewer_id: int,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Page[ConnectionEntry]:
        limit, offset = normalize_page(limit, offset, CONNECTIONS_LIMIT)
        user_id = await self._inspect(viewer_id, user_id, "connections")
        entries = await self.store.list_connections(user_id, status, limit, offset, viewer_id=viewer_id)
        visible = await self.visibility.apply(viewer_id, entries)
        return Page[ConnectionEntry].build(visible, limit, offset)

    async def list_pending_incoming(self, viewer_id: int, limit: Optional[int] = None,
                                    offset: Optional[int] = None) -> Page[ConnectionEntry]:
        limit, offset = normalize_page(limit, offset, PENDING_LIMIT)
        entries = await self.store.list_pending_incoming(viewer_id, limit, offset)
        visible = await self.visibility.apply(viewer_id, entries)
        return Page[ConnectionEntry].build(visible, limit, offset)

    async def list_pending_outgoing(self, viewer_id: int, limit: Optional[int] = None,
                                    offset: Optional[int] = None) -> Page[ConnectionEntry]:
        limit, offset = normalize_page(limit, offset, PENDING_LIMIT)
        entries = await self.store.list_pending_outgoing(viewer_id, limit, offset)
        visible = await self.visibility.apply(viewer_id, entries)
        return Page[ConnectionEntry].build(visible, limit, offset)

    # Follow queries

    async def list_followers(self, viewer_id: int, user_id: Optional[int] = None,
                             limit: Optional[int] = None, offset: Optional[int] = None) -> Page[FollowEntry]:
        limit, offset = normalize_page(limit, offset, FOLLOWS_LIMIT)
        user_id = await self._inspect(viewer_id, user_id, "followers")
        entries = await self.store.list_followers(user_id, limit, offset, viewer_id=viewer_id)
        visible = await self.visibility.apply(viewer_id, entries)
        return Page[FollowEntry].build(visible, limit, offset)

    async def list_following(self, viewer_id: int, user_id: Optional[int] = None,
                             limit: Optional[int] = None, offset: Optional[int] = None) -> Page[FollowEntry]:
        limit, offset = normalize_page(limit, offset, FOLLOWS_LIMIT)
        user_id = await self._inspect(viewer_id, user_id, "following")
        entries = await self.store.list_following(user_id, limit, offset, viewer_id=viewer_id)
        visible = await self.visibility.apply(viewer_id, entries)
        return Page[FollowEntry].build(visible, limit, offset)

    async def is_following(self, follower_id: int, following_id: int) -> bool:
        return await self.store.is_following(follower_id, following_id)

    # Graph queries

    async def mutual_connections(self, viewer_id: int, target_id: int, limit: Optional[int] = None,
                                 offset: Optional[int] = None) -> Page[UserRef]:
        limit, offset = normalize_page(limit, offset, MUTUALS_LIMIT)
        await self.guard.ensure_can_inspect(viewer_id, target_id, "mutual connections")
        mutuals = await self.graph.mutual_connections(viewer_id, target_id)
        visible = await self.visibility.apply(viewer_id, mutuals)
        return Page[UserRef].build(_slice(visible, limit, offset), limit, offset)

    async def second_degree(self, viewer_id: int, root_id: Optional[int] = None, limit: Optional[int] = None,
                            offset: Optional[int] = None) -> Page[SuggestedUser]:
        limit, offset = normalize_page(limit, offset, SECOND_DEGREE_LIMIT)
        root_id = await self._inspect(viewer_id, root_id, "second-degree connections")
        candidates = await self.graph.second_degree(root_id, limit, offset, viewer_id=viewer_id)
        visible = await self.visibility.apply(viewer_id, candidates)
        return Page[SuggestedUser].build(visible, limit, offset)

    async def relationship_path(self, viewer_id: int, target_id: int) -> RelationshipPath:
        await self.guard.ensure_can_inspect(viewer_id, target_id, "relationship path")
        return await self.graph.relationship_path(viewer_id, target_id)

    async def network_stats(self, viewer_id: int, user_id: Optional[int] = None) -> NetworkStats:
        user_id = await self._inspect(viewer_id, user_id, "network stats")
        return await self.graph.network_stats(user_id)

    async def suggest(self, viewer_id: int, limit: Optional[int] = None) -> Page[SuggestedUser]:
        limit, _ = normalize_page(limit, 0, SUGGESTIONS_LIMIT)
        suggestions = await self.suggester.suggest(viewer_id, limit)
        annotated = await self.visibility.apply(viewer_id, suggestions)
        return Page[SuggestedUser].build(annotated, limit, 0)

    # Profile visits

    async def profile_visitors(self, viewer_id: int, user_id: int, limit: Optional[int] = None,
                               offset: Optional[int] = None) -> Page[VisitEntry]:
        limit, offset = normalize_page(limit, offset, VISITS_LIMIT)
        await self.guard.ensure_owner(viewer_id, user_id, "profile visitors")
        visitors = await self.visits.get_visitors(user_id, limit, offset)
        visible = await self.visibility.apply(viewer_id, visitors)
        return Page[VisitEntry].build(visible, limit, offset)

    async def visited_profiles(self, viewer_id: int, limit: Optional[int] = None,
                               offset: Optional[int] = None) -> Page[VisitEntry]:
        limit, offset = normalize_page(limit, offset, VISITS_LIMIT)
        visited = await self.visits.get_visited_profiles(viewer_id, limit, offset)
        visible = await self.visibility.apply(viewer_id, visited)
        return Page[VisitEntry].build(visible, limit, offset)

    async def visit_stats(self, viewer_id: int, user_id: int) -> VisitStats:
        await self.guard.ensure_owner(viewer_id, user_id, "visit statistics")
        total, unique = await asyncio.gather(
            self.visits.total_visits(user_id),
            self.visits.unique_visitors(user_id),
        )
        return VisitStats(total_visits=total, unique_visitors=unique)

    # Blocks and search

    async def list_blocked(self, viewer_id: int, limit: Optional[int] = None,
                           offset: Optional[int] = None) -> Page[BlockEntry]:
        limit, offset = normalize_page(limit, offset, BLOCKED_LIMIT)
        blocked = await self.store.list_blocked(viewer_id, limit, offset)
        # Every entry is blocked by definition, so annotate without dropping
        annotated = await self.visibility.apply(viewer_id, blocked, drop_blocked=False)
        return Page[BlockEntry].build(annotated, limit, offset)

    async def search_users(self, viewer_id: Optional[int], query: str, limit: Optional[int] = None,
                           offset: Optional[int] = None) -> Page[UserRef]:
        """Name search; anonymous callers get unfiltered, unannotated results."""
        limit, offset = normalize_page(limit, offset, SEARCH_LIMIT)
        if not query or not query.strip():
            raise InvalidArgumentError("Search query is required")
        if viewer_id is not None:
            viewer_id = ensure_user_id(viewer_id, "viewer_id")
        users = await self.users.search(query, limit, offset, viewer_id=viewer_id)
        visible = await self.visibility.apply(viewer_id, users)
        return Page[UserRef].build(visible, limit, offset)
