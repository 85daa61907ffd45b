"""
User search: GET /search?q=<text>

Case-insensitive substring match on username or display name.
"""
import logging

from fastapi import APIRouter, Depends, Query
from opentelemetry import trace

from unfriendable.clients.rest_client import clause
from unfriendable.config import settings
from unfriendable.dependencies import SessionContext, require_profile
from unfriendable.schemas import UserProfile

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.get("", response_model=list[UserProfile])
async def search_users(
    q: str = Query("", description="Text to match against username or display name"),
    ctx: SessionContext = Depends(require_profile),
):
    term = q.strip()
    if not term:
        return []

    with tracer.start_as_current_span("search_users") as span:
        span.set_attribute("search.term", term)
        pattern = f"%{term}%"
        result = await (
            ctx.rest.table("users")
            .select("*")
            .or_(clause("username", "ilike", pattern), clause("display_name", "ilike", pattern))
            .limit(settings.search_limit)
            .execute()
        )
        return [UserProfile.model_validate(row) for row in result.data or []]
