from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..schemas import BlockEntry, BlockRecord, Page
from ..services.jwt_service import JWTService, get_graph
from ..services.social_graph import SocialGraph
from ..utils import with_deadline

router = APIRouter(prefix="/blocks", tags=["blocks"])


@router.get("", response_model=Page[BlockEntry])
async def list_blocked_users(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user_id: int = Depends(JWTService.get_current_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    return await with_deadline(graph.list_blocked(current_user_id, limit, offset))


@router.post("/{user_id}", response_model=BlockRecord)
async def block_user(user_id: int, current_user_id: int = Depends(JWTService.get_current_user_id),
                     graph: SocialGraph = Depends(get_graph)):
    """Block a user. Existing connections and follows are kept but hidden."""
    return await with_deadline(graph.block(current_user_id, user_id), mutation=True)


@router.delete("/{user_id}", response_model=Optional[BlockRecord])
async def unblock_user(user_id: int, current_user_id: int = Depends(JWTService.get_current_user_id),
                       graph: SocialGraph = Depends(get_graph)):
    return await with_deadline(graph.unblock(current_user_id, user_id), mutation=True)
