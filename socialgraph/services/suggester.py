from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from ..config import settings
from ..schemas import SuggestedUser
from ..utils import ensure_user_id
from .graph_query import GraphQuery
from .relation_store import RelationStore
from .visibility import VisibilityFilter


class Suggester:
    """People you may know, ranked by mutual-connection count."""

    def __init__(self, store: RelationStore, graph: GraphQuery, visibility: VisibilityFilter,
                 fanout: Optional[int] = None, candidate_multiplier: Optional[int] = None):
        self.store = store
        self.graph = graph
        self.visibility = visibility
        # Only the first `fanout` connections are expanded for mutuals
        self.fanout = settings.suggestion_fanout if fanout is None else fanout
        self.candidate_multiplier = (settings.suggestion_candidate_multiplier
                                     if candidate_multiplier is None else candidate_multiplier)

    async def suggest(self, viewer_id: int, limit: int) -> List[SuggestedUser]:
        viewer_id = ensure_user_id(viewer_id)
        connected = await self.store.connected_ids(viewer_id)
        if not connected:
            return []

        second_degree, *mutual_lists = await asyncio.gather(
            self.graph.second_degree(viewer_id, self.candidate_multiplier * limit,
                                     viewer_id=viewer_id),
            *(self.graph.mutual_connections(viewer_id, conn_id)
              for conn_id in connected[:self.fanout]),
        )

        candidates: Dict[int, SuggestedUser] = {
            s.id: s for s in second_degree}
        for mutuals in mutual_lists:
            for mutual in mutuals:
                if mutual.id in candidates:
                    candidates[mutual.id].mutual_count += 1
                else:
                    candidates[mutual.id] = SuggestedUser(
                        **mutual.model_dump(exclude={"relationship"}), mutual_count=1)

        excluded = set(connected)
        excluded.add(viewer_id)
        visible = await self.visibility.exclude_blocked(
            viewer_id, [c for uid, c in candidates.items() if uid not in excluded])

        visible.sort(key=lambda s: (-s.mutual_count, s.id))
        return visible[:limit]
