"""
Home endpoints:
  GET  /home/feed                               — personal or global happenings feed
  GET  /home/filters                            — filter options for the feed
  GET  /home/friend-requests                    — pending requests addressed to me
  POST /home/friend-requests/{id}/accept|reject
  GET  /home/unfriend-count                     — global REMOVED_FRIEND counter
"""
import logging
import time

from fastapi import APIRouter, Depends, Query
from opentelemetry import trace

from unfriendable.dependencies import SessionContext, require_actor, require_profile
from unfriendable.happenings import action_type_options
from unfriendable.schemas import (
    CountResponse,
    FeedFilters,
    FeedKind,
    FeedResponse,
    FilterOption,
    FriendRequest,
    MessageResponse,
    RelationshipFilter,
)
from unfriendable.services import feed as feed_service
from unfriendable.telemetry import FEED_LATENCY

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)

_RELATIONSHIP_LABELS = {
    RelationshipFilter.ALL: "All Connections",
    RelationshipFilter.FRIENDS: "Friends",
    RelationshipFilter.BEST_FRIENDS: "Best Friends",
    RelationshipFilter.FOLLOWING: "Following",
}


@router.get("/feed", response_model=FeedResponse)
async def get_feed(
    feed: FeedKind = Query(FeedKind.PERSONAL),
    action_type: str = Query("all", description="'all' or a happening type"),
    relationship: RelationshipFilter = Query(RelationshipFilter.ALL),
    ctx: SessionContext = Depends(require_profile),
):
    start_time = time.time()

    with tracer.start_as_current_span("get_feed") as span:
        span.set_attribute("user.id", ctx.viewer.id)
        span.set_attribute("feed.kind", feed.value)

        happenings = await feed_service.load_feed(
            ctx.rest,
            ctx.viewer,
            feed=feed,
            action_type=action_type,
            relationship=relationship,
        )
        span.set_attribute("feed.size", len(happenings))

    latency = time.time() - start_time
    FEED_LATENCY.observe(latency)
    return FeedResponse(feed=feed, happenings=happenings, latency_ms=round(latency * 1000, 2))


@router.get("/filters", response_model=FeedFilters)
async def get_filters(ctx: SessionContext = Depends(require_profile)):
    return FeedFilters(
        action_types=action_type_options(),
        relationships=[
            FilterOption(value=value.value, label=label)
            for value, label in _RELATIONSHIP_LABELS.items()
        ],
    )


@router.get("/friend-requests", response_model=list[FriendRequest])
async def list_friend_requests(ctx: SessionContext = Depends(require_profile)):
    return await feed_service.pending_requests(ctx.rest, ctx.viewer)


@router.post("/friend-requests/{request_id}/accept", response_model=MessageResponse)
async def accept_friend_request(request_id: int, ctx: SessionContext = Depends(require_actor)):
    with tracer.start_as_current_span("accept_friend_request"):
        await feed_service.respond_to_request(ctx.rest, ctx.viewer, request_id, accept=True)
        return MessageResponse(message="Friend request accepted!")


@router.post("/friend-requests/{request_id}/reject", response_model=MessageResponse)
async def reject_friend_request(request_id: int, ctx: SessionContext = Depends(require_actor)):
    with tracer.start_as_current_span("reject_friend_request"):
        await feed_service.respond_to_request(ctx.rest, ctx.viewer, request_id, accept=False)
        return MessageResponse(message="Friend request rejected.")


@router.get("/unfriend-count", response_model=CountResponse)
async def get_unfriend_count(ctx: SessionContext = Depends(require_profile)):
    return CountResponse(count=await feed_service.unfriend_count(ctx.rest))
