from __future__ import annotations

import hashlib
import logging
from typing import List, Optional

from sqlalchemy import and_, case, delete, desc, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import Database
from ..exceptions import InvalidArgumentError
from ..models import Block, Connection, Follow, User
from ..schemas import (
    BlockEntry, BlockRecord, ConnectionEntry, ConnectionRecord,
    ConnectionStatusEnum, FollowEntry, FollowRecord,
)
from ..utils import ensure_distinct_pair, ensure_user_id, utcnow
from .user_store import not_blocked_with, user_ref_fields

logger = logging.getLogger(__name__)

PENDING = ConnectionStatusEnum.pending.value
CONNECTED = ConnectionStatusEnum.connected.value


def _pair_condition(a: int, b: int):
    """Connection rows for the unordered pair {a, b}."""
    return or_(
        and_(Connection.requester_id == a, Connection.addressee_id == b),
        and_(Connection.requester_id == b, Connection.addressee_id == a),
    )


def _involves(user_id: int):
    return or_(Connection.requester_id == user_id,
               Connection.addressee_id == user_id)


def _pair_lock_key(a: int, b: int) -> int:
    """Advisory lock key for the canonical (low, high) pair."""
    low, high = min(a, b), max(a, b)
    digest = hashlib.sha256(f"{low}_{high}".encode()).digest()
    return int.from_bytes(digest[:4], "big")


class RelationStore:
    """
    Primitive lookups and mutations for connections, follows and blocks.

    Every method opens its own pooled session, so independent primitives
    can be awaited concurrently with asyncio.gather. Mutations are
    idempotent: duplicates return the existing row, deletes of missing
    rows return None.
    """

    def __init__(self, db: Database):
        self.db = db

    # Connections

    async def _find_connection_row(self, session: AsyncSession, a: int, b: int) -> Optional[Connection]:
        res = await session.execute(select(Connection).where(_pair_condition(a, b)))
        return res.scalars().first()

    async def request_connection(self, requester_id: int, addressee_id: int) -> ConnectionRecord:
        requester_id, addressee_id = ensure_distinct_pair(
            requester_id, addressee_id, "connection")
        async with self.db.session_for("request_connection") as session:
            if self.db.dialect_name == "postgresql":
                # Serializes a request and its reverse so the unordered pair
                # never gets two rows
                await session.execute(
                    select(func.pg_advisory_xact_lock(
                        _pair_lock_key(requester_id, addressee_id))))

            existing = await self._find_connection_row(session, requester_id, addressee_id)
            if existing:
                await session.commit()
                return ConnectionRecord.model_validate(existing)

            now = utcnow()
            row = Connection(
                requester_id=requester_id,
                addressee_id=addressee_id,
                status=PENDING,
                requested_at=now,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                await session.commit()
                return ConnectionRecord.model_validate(row)
            except IntegrityError:
                # Lost a race on the unique pair: return the winner's row
                await session.rollback()
                logger.info(
                    f"Absorbed concurrent connection request {requester_id}->{addressee_id}")
                existing = await self._find_connection_row(session, requester_id, addressee_id)
                if existing is None:
                    raise
                return ConnectionRecord.model_validate(existing)

    async def accept_connection(self, requester_id: int, addressee_id: int) -> Optional[ConnectionRecord]:
        requester_id, addressee_id = ensure_distinct_pair(
            requester_id, addressee_id, "connection")
        now = utcnow()
        stmt = (
            update(Connection)
            .where(
                Connection.requester_id == requester_id,
                Connection.addressee_id == addressee_id,
                Connection.status == PENDING,
            )
            .values(status=CONNECTED, accepted_at=now, updated_at=now)
            .returning(Connection)
        )
        async with self.db.session_for("accept_connection") as session:
            res = await session.execute(stmt)
            row = res.scalars().first()
            record = ConnectionRecord.model_validate(row) if row else None
            await session.commit()
            return record

    async def remove_connection(self, a: int, b: int) -> Optional[ConnectionRecord]:
        a, b = ensure_distinct_pair(a, b, "connection")
        stmt = delete(Connection).where(
            _pair_condition(a, b)).returning(Connection)
        async with self.db.session_for("remove_connection") as session:
            res = await session.execute(stmt)
            row = res.scalars().first()
            record = ConnectionRecord.model_validate(row) if row else None
            await session.commit()
            return record

    async def find_connection(self, a: int, b: int) -> Optional[ConnectionRecord]:
        a = ensure_user_id(a)
        b = ensure_user_id(b)
        if a == b:
            return None
        async with self.db.session_for("find_connection") as session:
            row = await self._find_connection_row(session, a, b)
            return ConnectionRecord.model_validate(row) if row else None

    def _ordered_connections(self, user_id: int, status: Optional[str], viewer_id: Optional[int]):
        other_id = case(
            (Connection.requester_id == user_id, Connection.addressee_id),
            else_=Connection.requester_id,
        )
        stmt = (
            select(Connection, User)
            .join(User, User.id == other_id)
            .where(_involves(user_id), not_blocked_with(viewer_id, User.id))
        )
        if status:
            stmt = stmt.where(Connection.status == status)
        return stmt.order_by(
            Connection.accepted_at.desc().nulls_last(),
            desc(Connection.created_at),
            desc(Connection.id),
        )

    async def list_connections(
        self,
        user_id: int,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        viewer_id: Optional[int] = None,
    ) -> List[ConnectionEntry]:
        """Connections of a user with the other party's display fields.

        Ordered by accepted_at desc (pending rows last), then created_at desc.
        When `viewer_id` is given, users blocked either way with the viewer
        are left out before paging.
        """
        user_id = ensure_user_id(user_id)
        if status:
            try:
                status = ConnectionStatusEnum(status).value
            except ValueError:
                raise InvalidArgumentError(f"Unknown connection status: {status}")
        stmt = self._ordered_connections(user_id, status, viewer_id).offset(offset).limit(limit)
        async with self.db.session_for("list_connections") as session:
            res = await session.execute(stmt)
            return [
                ConnectionEntry(**user_ref_fields(u),
                                connection=ConnectionRecord.model_validate(c))
                for (c, u) in res.all()
            ]

    async def connected_ids(self, user_id: int) -> List[int]:
        """Ids of connected users, in list_connections order."""
        user_id = ensure_user_id(user_id)
        other_id = case(
            (Connection.requester_id == user_id, Connection.addressee_id),
            else_=Connection.requester_id,
        )
        stmt = (
            select(other_id)
            .where(_involves(user_id), Connection.status == CONNECTED)
            .order_by(
                Connection.accepted_at.desc().nulls_last(),
                desc(Connection.created_at),
                desc(Connection.id),
            )
        )
        async with self.db.session_for("connected_ids") as session:
            res = await session.execute(stmt)
            return [row[0] for row in res.all()]

    async def _pending(self, operation: str, user_id: int, incoming: bool,
                       limit: Optional[int], offset: int) -> List[ConnectionEntry]:
        user_id = ensure_user_id(user_id)
        if incoming:
            mine, theirs = Connection.addressee_id, Connection.requester_id
        else:
            mine, theirs = Connection.requester_id, Connection.addressee_id
        stmt = (
            select(Connection, User)
            .join(User, User.id == theirs)
            .where(mine == user_id, Connection.status == PENDING,
                   not_blocked_with(user_id, User.id))
            .order_by(desc(Connection.requested_at), desc(Connection.id))
            .offset(offset)
            .limit(limit)
        )
        async with self.db.session_for(operation) as session:
            res = await session.execute(stmt)
            return [
                ConnectionEntry(**user_ref_fields(u),
                                connection=ConnectionRecord.model_validate(c))
                for (c, u) in res.all()
            ]

    async def list_pending_incoming(self, user_id: int, limit: Optional[int] = None,
                                    offset: int = 0) -> List[ConnectionEntry]:
        """Requests received by user_id, newest first; blocked senders excluded."""
        return await self._pending("list_pending_incoming", user_id, True, limit, offset)

    async def list_pending_outgoing(self, user_id: int, limit: Optional[int] = None,
                                    offset: int = 0) -> List[ConnectionEntry]:
        return await self._pending("list_pending_outgoing", user_id, False, limit, offset)

    async def _count(self, operation: str, *conditions) -> int:
        async with self.db.session_for(operation) as session:
            res = await session.execute(
                select(func.count(Connection.id)).where(*conditions))
            return int(res.scalar_one())

    async def count_connections(self, user_id: int) -> int:
        user_id = ensure_user_id(user_id)
        return await self._count("count_connections", _involves(user_id),
                                 Connection.status == CONNECTED)

    async def count_pending_incoming(self, user_id: int) -> int:
        user_id = ensure_user_id(user_id)
        return await self._count("count_pending_incoming",
                                 Connection.addressee_id == user_id,
                                 Connection.status == PENDING)

    async def count_pending_outgoing(self, user_id: int) -> int:
        user_id = ensure_user_id(user_id)
        return await self._count("count_pending_outgoing",
                                 Connection.requester_id == user_id,
                                 Connection.status == PENDING)

    # Follows

    async def follow(self, follower_id: int, following_id: int) -> FollowRecord:
        follower_id, following_id = ensure_distinct_pair(
            follower_id, following_id, "follow")
        lookup = select(Follow).where(Follow.follower_id == follower_id,
                                      Follow.following_id == following_id)
        async with self.db.session_for("follow") as session:
            res = await session.execute(lookup)
            existing = res.scalars().first()
            if existing:
                return FollowRecord.model_validate(existing)

            row = Follow(follower_id=follower_id,
                         following_id=following_id, created_at=utcnow())
            session.add(row)
            try:
                await session.commit()
                return FollowRecord.model_validate(row)
            except IntegrityError:
                # Duplicate follow from a concurrent request
                await session.rollback()
                res = await session.execute(lookup)
                existing = res.scalars().first()
                if existing is None:
                    raise
                return FollowRecord.model_validate(existing)

    async def unfollow(self, follower_id: int, following_id: int) -> Optional[FollowRecord]:
        follower_id, following_id = ensure_distinct_pair(
            follower_id, following_id, "follow")
        stmt = (
            delete(Follow)
            .where(Follow.follower_id == follower_id,
                   Follow.following_id == following_id)
            .returning(Follow)
        )
        async with self.db.session_for("unfollow") as session:
            res = await session.execute(stmt)
            row = res.scalars().first()
            record = FollowRecord.model_validate(row) if row else None
            await session.commit()
            return record

    async def is_following(self, follower_id: int, following_id: int) -> bool:
        follower_id = ensure_user_id(follower_id)
        following_id = ensure_user_id(following_id)
        async with self.db.session_for("is_following") as session:
            res = await session.execute(
                select(Follow.id).where(Follow.follower_id == follower_id,
                                        Follow.following_id == following_id).limit(1))
            return res.scalar_one_or_none() is not None

    async def _follow_list(self, operation: str, mine, theirs, user_id: int, limit: int, offset: int,
                           viewer_id: Optional[int]) -> List[FollowEntry]:
        stmt = (
            select(Follow, User)
            .join(User, User.id == theirs)
            .where(mine == user_id, not_blocked_with(viewer_id, User.id))
            .order_by(desc(Follow.created_at), desc(Follow.id))
            .offset(offset)
            .limit(limit)
        )
        async with self.db.session_for(operation) as session:
            res = await session.execute(stmt)
            return [
                FollowEntry(**user_ref_fields(u), followed_at=f.created_at)
                for (f, u) in res.all()
            ]

    async def list_followers(self, user_id: int, limit: int = 50, offset: int = 0,
                             viewer_id: Optional[int] = None) -> List[FollowEntry]:
        """Users who follow user_id, most recent first."""
        user_id = ensure_user_id(user_id)
        return await self._follow_list("list_followers", Follow.following_id,
                                       Follow.follower_id, user_id, limit, offset, viewer_id)

    async def list_following(self, user_id: int, limit: int = 50, offset: int = 0,
                             viewer_id: Optional[int] = None) -> List[FollowEntry]:
        """Users user_id follows, most recent first."""
        user_id = ensure_user_id(user_id)
        return await self._follow_list("list_following", Follow.follower_id,
                                       Follow.following_id, user_id, limit, offset, viewer_id)

    async def count_followers(self, user_id: int) -> int:
        user_id = ensure_user_id(user_id)
        async with self.db.session_for("count_followers") as session:
            res = await session.execute(
                select(func.count(Follow.id)).where(Follow.following_id == user_id))
            return int(res.scalar_one())

    async def count_following(self, user_id: int) -> int:
        user_id = ensure_user_id(user_id)
        async with self.db.session_for("count_following") as session:
            res = await session.execute(
                select(func.count(Follow.id)).where(Follow.follower_id == user_id))
            return int(res.scalar_one())

    # Blocks

    async def block(self, blocker_id: int, blocked_id: int) -> BlockRecord:
        blocker_id, blocked_id = ensure_distinct_pair(
            blocker_id, blocked_id, "block")
        lookup = select(Block).where(Block.blocker_id == blocker_id,
                                     Block.blocked_id == blocked_id)
        async with self.db.session_for("block") as session:
            res = await session.execute(lookup)
            existing = res.scalars().first()
            if existing:
                return BlockRecord.model_validate(existing)

            row = Block(blocker_id=blocker_id,
                        blocked_id=blocked_id, created_at=utcnow())
            session.add(row)
            try:
                await session.commit()
                return BlockRecord.model_validate(row)
            except IntegrityError:
                await session.rollback()
                res = await session.execute(lookup)
                existing = res.scalars().first()
                if existing is None:
                    raise
                return BlockRecord.model_validate(existing)

    async def unblock(self, blocker_id: int, blocked_id: int) -> Optional[BlockRecord]:
        blocker_id, blocked_id = ensure_distinct_pair(
            blocker_id, blocked_id, "block")
        stmt = (
            delete(Block)
            .where(Block.blocker_id == blocker_id, Block.blocked_id == blocked_id)
            .returning(Block)
        )
        async with self.db.session_for("unblock") as session:
            res = await session.execute(stmt)
            row = res.scalars().first()
            record = BlockRecord.model_validate(row) if row else None
            await session.commit()
            return record

    async def is_blocked_one_way(self, blocker_id: int, blocked_id: int) -> bool:
        """Return True if `blocker_id` has blocked `blocked_id`."""
        blocker_id = ensure_user_id(blocker_id)
        blocked_id = ensure_user_id(blocked_id)
        if blocker_id == blocked_id:
            return False
        async with self.db.session_for("is_blocked_one_way") as session:
            res = await session.execute(
                select(Block.id).where(Block.blocker_id == blocker_id,
                                       Block.blocked_id == blocked_id).limit(1))
            return res.scalar_one_or_none() is not None

    async def is_blocked_either_way(self, user_a_id: int, user_b_id: int) -> bool:
        """Return True if either user has blocked the other."""
        user_a_id = ensure_user_id(user_a_id)
        user_b_id = ensure_user_id(user_b_id)
        if user_a_id == user_b_id:
            return False

        pair_condition = or_(
            and_(Block.blocker_id == user_a_id, Block.blocked_id == user_b_id),
            and_(Block.blocker_id == user_b_id, Block.blocked_id == user_a_id),
        )
        async with self.db.session_for("is_blocked_either_way") as session:
            res = await session.execute(
                select(Block.id).where(pair_condition).limit(1))
            return res.scalar_one_or_none() is not None

    async def list_blocked(self, user_id: int, limit: int = 50, offset: int = 0) -> List[BlockEntry]:
        """Users `user_id` has blocked, most recent first."""
        user_id = ensure_user_id(user_id)
        stmt = (
            select(Block, User)
            .join(User, User.id == Block.blocked_id)
            .where(Block.blocker_id == user_id)
            .order_by(desc(Block.created_at), desc(Block.id))
            .offset(offset)
            .limit(limit)
        )
        async with self.db.session_for("list_blocked") as session:
            res = await session.execute(stmt)
            return [
                BlockEntry(**user_ref_fields(u), blocked_at=b.created_at)
                for (b, u) in res.all()
            ]
