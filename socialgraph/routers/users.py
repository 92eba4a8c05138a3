from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..schemas import Page, UserRef
from ..services.jwt_service import JWTService, get_graph
from ..services.social_graph import SocialGraph
from ..utils import with_deadline

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/search", response_model=Page[UserRef])
async def search_users(
    q: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user_id: Optional[int] = Depends(JWTService.get_optional_user_id),
    graph: SocialGraph = Depends(get_graph),
):
    """Search users by name, username or headline. Works without a token."""
    return await with_deadline(graph.search_users(current_user_id, q, limit, offset))
