from __future__ import annotations

from typing import List

from sqlalchemy import desc, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from ..database import Database
from ..models import ProfileVisitor, User
from ..schemas import ProfileVisitRecord, VisitEntry
from ..utils import ensure_distinct_pair, ensure_user_id, utcnow
from .user_store import not_blocked_with, user_ref_fields


class ProfileVisitStore:
    """Profile visit counters, read by the graph only through listings."""

    def __init__(self, db: Database):
        self.db = db

    def _insert(self):
        if self.db.dialect_name == "postgresql":
            return pg_insert(ProfileVisitor)
        return sqlite_insert(ProfileVisitor)

    async def record_visit(self, visitor_id: int, profile_user_id: int) -> ProfileVisitRecord:
        """Upsert the (visitor, profile) row: visit_count += 1, last_visited_at = now."""
        visitor_id, profile_user_id = ensure_distinct_pair(
            visitor_id, profile_user_id, "profile visit")
        now = utcnow()
        stmt = self._insert().values(
            visitor_id=visitor_id,
            profile_user_id=profile_user_id,
            visit_count=1,
            first_visited_at=now,
            last_visited_at=now,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["visitor_id", "profile_user_id"],
            set_={
                "visit_count": ProfileVisitor.visit_count + 1,
                "last_visited_at": now,
                "updated_at": now,
            },
        )
        async with self.db.session_for("record_visit") as session:
            await session.execute(stmt)
            await session.commit()
            res = await session.execute(
                select(ProfileVisitor).where(
                    ProfileVisitor.visitor_id == visitor_id,
                    ProfileVisitor.profile_user_id == profile_user_id))
            return ProfileVisitRecord.model_validate(res.scalar_one())

    async def _listing(self, operation: str, mine, theirs, user_id: int, limit: int, offset: int) -> List[VisitEntry]:
        # Listings belong to user_id, so blocks are checked against them
        stmt = (
            select(ProfileVisitor, User)
            .join(User, User.id == theirs)
            .where(mine == user_id, not_blocked_with(user_id, User.id))
            .order_by(desc(ProfileVisitor.last_visited_at), desc(ProfileVisitor.id))
            .offset(offset)
            .limit(limit)
        )
        async with self.db.session_for(operation) as session:
            res = await session.execute(stmt)
            return [
                VisitEntry(
                    **user_ref_fields(u),
                    visit_count=v.visit_count,
                    first_visited_at=v.first_visited_at,
                    last_visited_at=v.last_visited_at,
                )
                for (v, u) in res.all()
            ]

    async def get_visitors(self, profile_user_id: int, limit: int = 50, offset: int = 0) -> List[VisitEntry]:
        """Users who viewed the profile, most recent first."""
        profile_user_id = ensure_user_id(profile_user_id)
        return await self._listing("get_visitors", ProfileVisitor.profile_user_id,
                                   ProfileVisitor.visitor_id, profile_user_id, limit, offset)

    async def get_visited_profiles(self, visitor_id: int, limit: int = 50, offset: int = 0) -> List[VisitEntry]:
        """Profiles the user has viewed, most recent first."""
        visitor_id = ensure_user_id(visitor_id)
        return await self._listing("get_visited_profiles", ProfileVisitor.visitor_id,
                                   ProfileVisitor.profile_user_id, visitor_id, limit, offset)

    async def total_visits(self, profile_user_id: int) -> int:
        profile_user_id = ensure_user_id(profile_user_id)
        async with self.db.session_for("total_visits") as session:
            res = await session.execute(
                select(func.coalesce(func.sum(ProfileVisitor.visit_count), 0))
                .where(ProfileVisitor.profile_user_id == profile_user_id))
            return int(res.scalar_one())

    async def unique_visitors(self, profile_user_id: int) -> int:
        profile_user_id = ensure_user_id(profile_user_id)
        async with self.db.session_for("unique_visitors") as session:
            res = await session.execute(
                select(func.count(ProfileVisitor.id))
                .where(ProfileVisitor.profile_user_id == profile_user_id))
            return int(res.scalar_one())
