"""
Visibility filter applied to every user-valued result.

Hides users who are blocked in either direction from the viewer and, for
authenticated viewers, annotates the survivors with their relationship to
the viewer. All lookups for all candidates are issued concurrently.
"""
from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence, TypeVar

from ..schemas import ConnectionStatusEnum, RelationshipFlags, UserRef
from .relation_store import RelationStore

U = TypeVar("U", bound=UserRef)


class VisibilityFilter:
    def __init__(self, store: RelationStore):
        self.store = store

    async def relationship(self, viewer_id: int, other_id: int) -> tuple[bool, RelationshipFlags]:
        """Return (blocked_either_way, flags) from six concurrent lookups."""
        (blocked, connection, i_follow, they_follow, i_blocked, blocked_me) = await asyncio.gather(
            self.store.is_blocked_either_way(viewer_id, other_id),
            self.store.find_connection(viewer_id, other_id),
            self.store.is_following(viewer_id, other_id),
            self.store.is_following(other_id, viewer_id),
            self.store.is_blocked_one_way(viewer_id, other_id),
            self.store.is_blocked_one_way(other_id, viewer_id),
        )
        status = connection.status if connection else None
        flags = RelationshipFlags(
            is_connected=status == ConnectionStatusEnum.connected,
            connection_status=status,
            connection_requester_id=connection.requester_id if connection else None,
            connection_pending=status == ConnectionStatusEnum.pending,
            i_follow_them=i_follow,
            they_follow_me=they_follow,
            i_blocked=i_blocked,
            blocked_me=blocked_me,
        )
        return blocked, flags

    async def _visible(self, viewer_id: int, item: U, annotate: bool, drop_blocked: bool) -> Optional[U]:
        if item.id == viewer_id:
            return item
        if not annotate:
            blocked = await self.store.is_blocked_either_way(viewer_id, item.id)
            return None if blocked and drop_blocked else item
        blocked, flags = await self.relationship(viewer_id, item.id)
        if blocked and drop_blocked:
            return None
        return item.model_copy(update={"relationship": flags})

    async def apply(
        self,
        viewer_id: Optional[int],
        items: Sequence[U],
        *,
        annotate: bool = True,
        drop_blocked: bool = True,
    ) -> List[U]:
        """
        Filter and annotate user-valued records for a viewer.

        Args:
            viewer_id: Authenticated viewer, or None for anonymous callers
            items: Records carrying the listed user's id, in display order
            annotate: Attach RelationshipFlags to surviving non-self entries
            drop_blocked: Remove entries blocked in either direction; pass
                False only where the listing is about blocks themselves

        Returns:
            The surviving records in their original order
        """
        if viewer_id is None:
            # Blocks need a viewer identity
            return list(items)
        results = await asyncio.gather(
            *(self._visible(viewer_id, item, annotate, drop_blocked) for item in items)
        )
        return [item for item in results if item is not None]

    async def exclude_blocked(self, viewer_id: Optional[int], items: Sequence[U]) -> List[U]:
        return await self.apply(viewer_id, items, annotate=False)
