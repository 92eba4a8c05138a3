from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from sqlalchemy import and_, delete, exists, func, or_, select, true

from ..database import Database
from ..models import Block, User
from ..schemas import UserRef
from ..utils import ensure_user_id


def user_ref_fields(user: User) -> dict:
    """Display payload shared by every user-valued record."""
    return {
        "id": user.id,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "profile_image_url": user.profile_image_url,
        "headline": user.headline,
    }


def not_blocked_with(viewer_id: Optional[int], other_id):
    """
    SQL condition: no block in either direction between viewer and `other_id`.

    `other_id` may be a column or expression. Without a viewer there is
    nothing to exclude. Listings apply it before LIMIT/OFFSET so pages stay full.
    """
    if viewer_id is None:
        return true()
    return ~exists().where(or_(
        and_(Block.blocker_id == viewer_id, Block.blocked_id == other_id),
        and_(Block.blocker_id == other_id, Block.blocked_id == viewer_id),
    ))


class UserStore:
    """Minimal user directory: existence checks, display fields and search."""

    def __init__(self, db: Database):
        self.db = db

    async def create_user(
        self,
        *,
        email: Optional[str] = None,
        username: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        profile_image_url: Optional[str] = None,
        headline: Optional[str] = None,
    ) -> UserRef:
        async with self.db.session_for("create_user") as session:
            user = User(
                email=email,
                username=username,
                first_name=first_name,
                last_name=last_name,
                profile_image_url=profile_image_url,
                headline=headline,
            )
            session.add(user)
            await session.commit()
            return UserRef(**user_ref_fields(user))

    async def exists(self, user_id: int) -> bool:
        user_id = ensure_user_id(user_id)
        async with self.db.session_for("user_exists") as session:
            res = await session.execute(select(User.id).where(User.id == user_id))
            return res.scalar_one_or_none() is not None

    async def get_user(self, user_id: int) -> Optional[UserRef]:
        user_id = ensure_user_id(user_id)
        async with self.db.session_for("get_user") as session:
            res = await session.execute(select(User).where(User.id == user_id))
            user = res.scalar_one_or_none()
            return UserRef(**user_ref_fields(user)) if user else None

    async def get_users(self, user_ids: Iterable[int]) -> Dict[int, UserRef]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        async with self.db.session_for("get_users") as session:
            res = await session.execute(select(User).where(User.id.in_(ids)))
            return {u.id: UserRef(**user_ref_fields(u)) for u in res.scalars().all()}

    async def delete_user(self, user_id: int) -> bool:
        """Delete a user; relationship rows go with it via ON DELETE CASCADE."""
        user_id = ensure_user_id(user_id)
        async with self.db.session_for("delete_user") as session:
            res = await session.execute(
                delete(User).where(User.id == user_id).returning(User.id))
            deleted = res.scalar_one_or_none()
            await session.commit()
            return deleted is not None

    async def search(self, query: str, limit: int, offset: int,
                     viewer_id: Optional[int] = None) -> List[UserRef]:
        pattern = f"%{query.strip().lower()}%"
        full_name = func.lower(func.coalesce(User.first_name, "") + " " +
                               func.coalesce(User.last_name, ""))
        stmt = (
            select(User)
            .where(
                or_(
                    full_name.like(pattern),
                    func.lower(func.coalesce(User.username, "")).like(pattern),
                    func.lower(func.coalesce(User.headline, "")).like(pattern),
                ),
                not_blocked_with(viewer_id, User.id),
            )
            .order_by(User.id)
            .offset(offset)
            .limit(limit)
        )
        async with self.db.session_for("search_users") as session:
            res = await session.execute(stmt)
            return [UserRef(**user_ref_fields(u)) for u in res.scalars().all()]
