from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..schemas import ConnectionEntry, ConnectionRecord, ConnectionStatusEnum, Page
from ..services.jwt_service import JWTService, get_graph
from ..services.social_graph import SocialGraph
from ..utils import with_deadline

router = APIRouter(prefix="/connections", tags=["connections"])


@router.get("", response_model=Page[ConnectionEntry])
async def list_connections(
    status: Optional[ConnectionStatusEnum] = Query(None),
    user_id: Optional[int] = Query(None, ge=1),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    """List connections of the current user (or of `user_id`), blocked users hidden."""
    return await with_deadline(graph.list_connections(
        current_user_id, user_id, status.value if status else None, limit, offset))


@router.get("/pending", response_model=Page[ConnectionEntry])
async def list_pending_requests(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    """Pending requests received by the current user."""
    return await with_deadline(graph.list_pending_incoming(current_user_id, limit, offset))


@router.get("/outgoing", response_model=Page[ConnectionEntry])
async def list_outgoing_requests(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    """Pending requests sent by the current user."""
    return await with_deadline(graph.list_pending_outgoing(current_user_id, limit, offset))


@router.get("/{user_id}", response_model=Optional[ConnectionRecord])
async def get_connection(
    user_id: int,
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    return await with_deadline(graph.find_connection(current_user_id, user_id))


@router.post("/{user_id}", response_model=ConnectionRecord)
async def request_connection(
    user_id: int,
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    """Send a connection request; repeating it returns the existing record."""
    return await with_deadline(graph.request_connection(current_user_id, user_id), mutation=True)


@router.post("/{user_id}/accept", response_model=ConnectionRecord)
async def accept_connection(
    user_id: int,
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    """Accept the pending request `user_id` sent to the current user."""
    record = await with_deadline(graph.accept_connection(current_user_id, user_id), mutation=True)
    if record is None:
        raise HTTPException(status_code=404, detail="Connection request not found")
    return record


@router.delete("/{user_id}", response_model=Optional[ConnectionRecord])
async def remove_connection(
    user_id: int,
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    """Remove a connection or withdraw/decline a request; null when none existed."""
    return await with_deadline(graph.remove_connection(current_user_id, user_id), mutation=True)
