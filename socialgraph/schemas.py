from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, List, Generic, TypeVar
from enum import Enum
from datetime import datetime


T = TypeVar("T")


class ConnectionStatusEnum(str, Enum):
    pending = "pending"
    connected = "connected"


# Relationship records

class ConnectionRecord(BaseModel):
    id: int
    requester_id: int
    addressee_id: int
    status: ConnectionStatusEnum
    requested_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

    def other_user_id(self, user_id: int) -> int:
        return self.addressee_id if self.requester_id == user_id else self.requester_id


class FollowRecord(BaseModel):
    id: int
    follower_id: int
    following_id: int
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class BlockRecord(BaseModel):
    id: int
    blocker_id: int
    blocked_id: int
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ProfileVisitRecord(BaseModel):
    id: int
    visitor_id: int
    profile_user_id: int
    visit_count: int
    first_visited_at: Optional[datetime] = None
    last_visited_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# Users as they appear in listings

class RelationshipFlags(BaseModel):
    """Relationship of a listed user to the viewer."""
    is_connected: bool = False
    connection_status: Optional[ConnectionStatusEnum] = None
    # Lets the caller tell inbound from outbound pending requests
    connection_requester_id: Optional[int] = None
    connection_pending: bool = False
    i_follow_them: bool = False
    they_follow_me: bool = False
    i_blocked: bool = False
    blocked_me: bool = False
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserRef(BaseModel):
    id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    headline: Optional[str] = None
    # Only set for authenticated viewers, never on the viewer's own entry
    relationship: Optional[RelationshipFlags] = None
    model_config = ConfigDict(from_attributes=True)


class ConnectionEntry(UserRef):
    connection: ConnectionRecord


class FollowEntry(UserRef):
    followed_at: Optional[datetime] = None


class BlockEntry(UserRef):
    blocked_at: Optional[datetime] = None


class SuggestedUser(UserRef):
    mutual_count: int = Field(default=1, ge=0)


class VisitEntry(UserRef):
    visit_count: int
    first_visited_at: Optional[datetime] = None
    last_visited_at: Optional[datetime] = None


# Graph results

class RelationshipPath(BaseModel):
    degree: Optional[int] = None
    path: List[int] = []
    message: str


class ConnectionStats(BaseModel):
    connected: int = 0
    pending_incoming: int = 0
    pending_outgoing: int = 0
    total: int = 0


class FollowStats(BaseModel):
    followers: int = 0
    following: int = 0


class NetworkStats(BaseModel):
    connections: ConnectionStats
    follows: FollowStats


class VisitStats(BaseModel):
    total_visits: int = 0
    unique_visitors: int = 0


class FollowStatusResponse(BaseModel):
    following: bool


# Pagination

class Pagination(BaseModel):
    limit: int
    offset: int
    has_more: bool
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Page(BaseModel, Generic[T]):
    items: List[T]
    pagination: Pagination

    @classmethod
    def build(cls, items: List[T], limit: int, offset: int) -> "Page[T]":
        return cls(
            items=items,
            pagination=Pagination(limit=limit, offset=offset,
                                  has_more=len(items) == limit),
        )
