from __future__ import annotations

import asyncio

from ..exceptions import ForbiddenError, InvalidArgumentError, NotFoundError
from ..utils import ensure_user_id
from .relation_store import RelationStore
from .user_store import UserStore


class AccessGuard:
    """Entry checks for operations that target another user."""

    def __init__(self, store: RelationStore, users: UserStore):
        self.store = store
        self.users = users

    async def ensure_can_inspect(self, viewer_id: int, target_id: int, what: str = "this user") -> None:
        """
        Allow graph inspection of target by viewer.

        Raises:
            NotFoundError: target does not exist
            ForbiddenError: a block exists in either direction
        """
        viewer_id = ensure_user_id(viewer_id, "viewer_id")
        target_id = ensure_user_id(target_id)
        exists, blocked = await asyncio.gather(
            self.users.exists(target_id),
            self.store.is_blocked_either_way(viewer_id, target_id),
        )
        if not exists:
            raise NotFoundError()
        if blocked:
            raise ForbiddenError(f"Cannot view {what} of blocked user")

    async def ensure_owner(self, viewer_id: int, target_id: int, what: str = "this data") -> None:
        """Privacy gate: only the target may read it, block or not."""
        viewer_id = ensure_user_id(viewer_id, "viewer_id")
        target_id = ensure_user_id(target_id)
        if not await self.users.exists(target_id):
            raise NotFoundError()
        if viewer_id != target_id:
            raise ForbiddenError(f"You can only view your own {what}")

    async def ensure_can_interact(self, viewer_id: int, target_id: int, action: str) -> None:
        """Checks for mutations that create a relationship toward target."""
        viewer_id = ensure_user_id(viewer_id, "viewer_id")
        target_id = ensure_user_id(target_id)
        if viewer_id == target_id:
            raise InvalidArgumentError(f"Cannot {action} yourself")
        exists, blocked = await asyncio.gather(
            self.users.exists(target_id),
            self.store.is_blocked_either_way(viewer_id, target_id),
        )
        if not exists:
            raise NotFoundError()
        if blocked:
            raise ForbiddenError(f"Cannot {action} a blocked user")

    async def ensure_exists(self, target_id: int) -> None:
        if not await self.users.exists(ensure_user_id(target_id)):
            raise NotFoundError()
