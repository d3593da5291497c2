"""
Follow graph endpoints, acting as the authenticated caller:
  POST   /follow/{target_id} — follow (idempotent)
  DELETE /follow/{target_id} — unfollow (idempotent)

SelfFollowError / UserNotFoundError / GraphMutationError are turned into
JSON error responses by the handlers registered in main.py.
"""
import logging

from fastapi import APIRouter, Depends

from recipe_feed.dependencies import get_current_user_id, get_follow_graph
from recipe_feed.engine.graph import FollowGraph
from recipe_feed.schemas import FollowResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/{target_id}", response_model=FollowResponse)
async def follow_user(
    target_id: str,
    actor_id: str = Depends(get_current_user_id),
    graph: FollowGraph = Depends(get_follow_graph),
):
    """
    Add the caller → target edge. Following someone already followed is a
    successful no-op (`changed: false`).
    """
    changed = await graph.follow(actor_id, target_id)
    return FollowResponse(actor_id=actor_id, target_id=target_id, following=True, changed=changed)


@router.delete("/{target_id}", response_model=FollowResponse)
async def unfollow_user(
    target_id: str,
    actor_id: str = Depends(get_current_user_id),
    graph: FollowGraph = Depends(get_follow_graph),
):
    # Earlier deliveries stay in the caller's feed; only future fan-out stops
    changed = await graph.unfollow(actor_id, target_id)
    return FollowResponse(actor_id=actor_id, target_id=target_id, following=False, changed=changed)
