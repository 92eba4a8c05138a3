from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..schemas import FollowEntry, FollowRecord, FollowStatusResponse, Page
from ..services.jwt_service import JWTService, get_graph
from ..services.social_graph import SocialGraph
from ..utils import with_deadline

router = APIRouter(prefix="/follow", tags=["follow"])


@router.post("/{user_id}", response_model=FollowRecord)
async def follow_user(user_id: int, current_user_id: int = Depends(JWTService.get_current_user_id),
                      graph: SocialGraph = Depends(get_graph)):
    return await with_deadline(graph.follow(current_user_id, user_id), mutation=True)


@router.delete("/{user_id}", response_model=Optional[FollowRecord])
async def unfollow_user(user_id: int, current_user_id: int = Depends(JWTService.get_current_user_id),
                        graph: SocialGraph = Depends(get_graph)):
    return await with_deadline(graph.unfollow(current_user_id, user_id), mutation=True)


@router.get("/{user_id}/status", response_model=FollowStatusResponse)
async def follow_status(user_id: int, current_user_id: int = Depends(JWTService.get_current_user_id),
                        graph: SocialGraph = Depends(get_graph)):
    following = await with_deadline(graph.is_following(current_user_id, user_id))
    return FollowStatusResponse(following=following)


@router.get("/{user_id}/followers", response_model=Page[FollowEntry])
async def list_user_followers(
    user_id: int,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    """Get a user's followers; blocked users are hidden."""
    return await with_deadline(graph.list_followers(current_user_id, user_id, limit, offset))


@router.get("/{user_id}/following", response_model=Page[FollowEntry])
async def list_user_following(
    user_id: int,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    """Get the users a user follows; blocked users are hidden."""
    return await with_deadline(graph.list_following(current_user_id, user_id, limit, offset))
