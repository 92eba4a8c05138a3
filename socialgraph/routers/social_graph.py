from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..schemas import (
    NetworkStats, Page, ProfileVisitRecord, RelationshipPath, SuggestedUser,
    UserRef, VisitEntry, VisitStats,
)
from ..services.jwt_service import JWTService, get_graph
from ..services.social_graph import SocialGraph
from ..utils import with_deadline

router = APIRouter(prefix="/social-graph", tags=["social-graph"])


@router.get("/mutual-connections/{user_id}", response_model=Page[UserRef])
async def get_mutual_connections(
    user_id: int,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    """Users both the current user and `user_id` are connected to."""
    return await with_deadline(graph.mutual_connections(current_user_id, user_id, limit, offset))


@router.get("/network-stats", response_model=NetworkStats)
async def get_my_network_stats(current_user_id: int = Depends(JWTService.get_current_user_id),
                               graph: SocialGraph = Depends(get_graph)):
    return await with_deadline(graph.network_stats(current_user_id))


@router.get("/network-stats/{user_id}", response_model=NetworkStats)
async def get_user_network_stats(user_id: int, current_user_id: int = Depends(JWTService.get_current_user_id),
                                 graph: SocialGraph = Depends(get_graph)):
    return await with_deadline(graph.network_stats(current_user_id, user_id))


@router.get("/suggestions", response_model=Page[SuggestedUser])
async def get_suggested_connections(
    limit: int = Query(20, ge=1, le=100),
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    """People you may know, ranked by mutual connections."""
    return await with_deadline(graph.suggest(current_user_id, limit))


@router.get("/relationship-path/{user_id}", response_model=RelationshipPath)
async def get_relationship_path(user_id: int, current_user_id: int = Depends(JWTService.get_current_user_id),
                                graph: SocialGraph = Depends(get_graph)):
    """Degrees of separation, up to 2."""
    return await with_deadline(graph.relationship_path(current_user_id, user_id))


@router.get("/second-degree/{user_id}", response_model=Page[SuggestedUser])
async def get_second_degree_connections(
    user_id: int,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    return await with_deadline(graph.second_degree(current_user_id, user_id, limit, offset))


@router.post("/visits/{user_id}", response_model=Optional[ProfileVisitRecord])
async def record_profile_visit(user_id: int, current_user_id: int = Depends(JWTService.get_current_user_id),
                               graph: SocialGraph = Depends(get_graph)):
    return await with_deadline(graph.record_visit(current_user_id, user_id), mutation=True)


@router.get("/profile-visitors/{user_id}", response_model=Page[VisitEntry])
async def get_profile_visitors(
    user_id: int,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    """Who viewed a profile; only the profile owner may ask."""
    return await with_deadline(graph.profile_visitors(current_user_id, user_id, limit, offset))


@router.get("/visited-profiles", response_model=Page[VisitEntry])
async def get_visited_profiles(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    return await with_deadline(graph.visited_profiles(current_user_id, limit, offset))


@router.get("/visit-stats/{user_id}", response_model=VisitStats)
async def get_visit_stats(user_id: int, current_user_id: int = Depends(JWTService.get_current_user_id),
                          graph: SocialGraph = Depends(get_graph)):
    return await with_deadline(graph.visit_stats(current_user_id, user_id))
