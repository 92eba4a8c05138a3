from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=True)
    username = Column(String, unique=True, index=True, nullable=True)
    # Profile
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    profile_image_url = Column(String, nullable=True)
    headline = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Connection(Base):
    __tablename__ = "connections"

    id = Column(Integer, primary_key=True, index=True)
    requester_id = Column(Integer, ForeignKey(
        "users.id", ondelete="CASCADE"), nullable=False, index=True)
    addressee_id = Column(Integer, ForeignKey(
        "users.id", ondelete="CASCADE"), nullable=False, index=True)
    # pending, connected
    status = Column(String(50), nullable=False, default="pending",
                    server_default="pending")
    requested_at = Column(DateTime(timezone=True), server_default=func.now())
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('requester_id', 'addressee_id',
                         name='uq_connections_pair'),
        CheckConstraint('requester_id != addressee_id',
                        name='ck_connections_not_self'),
        CheckConstraint("status IN ('pending', 'connected')",
                        name='ck_connections_status'),
    )


class Follow(Base):
    __tablename__ = "follows"

    id = Column(Integer, primary_key=True, index=True)
    follower_id = Column(Integer, ForeignKey(
        "users.id", ondelete="CASCADE"), nullable=False, index=True)
    following_id = Column(Integer, ForeignKey(
        "users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('follower_id', 'following_id',
                         name='uq_follows_pair'),
        CheckConstraint('follower_id != following_id',
                        name='ck_follows_not_self'),
    )


class Block(Base):
    __tablename__ = "blocks"

    id = Column(Integer, primary_key=True, index=True)
    blocker_id = Column(Integer, ForeignKey(
        "users.id", ondelete="CASCADE"), nullable=False, index=True)
    blocked_id = Column(Integer, ForeignKey(
        "users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('blocker_id', 'blocked_id', name='uq_blocks_pair'),
        CheckConstraint('blocker_id != blocked_id',
                        name='ck_blocks_not_self'),
    )


class ProfileVisitor(Base):
    __tablename__ = "profile_visitors"

    id = Column(Integer, primary_key=True, index=True)
    visitor_id = Column(Integer, ForeignKey(
        "users.id", ondelete="CASCADE"), nullable=False, index=True)
    profile_user_id = Column(Integer, ForeignKey(
        "users.id", ondelete="CASCADE"), nullable=False, index=True)
    visit_count = Column(Integer, nullable=False, default=1,
                         server_default="1")
    first_visited_at = Column(DateTime(timezone=True),
                              server_default=func.now())
    last_visited_at = Column(DateTime(timezone=True),
                             server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('visitor_id', 'profile_user_id',
                         name='uq_profile_visitors_pair'),
        CheckConstraint('visitor_id != profile_user_id',
                        name='ck_profile_visitors_not_self'),
    )
