"""Tag Routes: substring search, posts by tag, tag deletion (caller token in X-Token)."""

import logging

from fastapi import APIRouter, Depends, Header, Query, Response, status

from postboard.api.dependencies import get_lifecycle
from postboard.schemas.post import PostView, TagRead
from postboard.services.post_lifecycle import PostLifecycle

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/tags", tags=["tags"])


@router.get("", response_model=list[TagRead])
async def search_tags(
    q: str = Query(..., min_length=1, max_length=255),
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.search_tags(q)


@router.get("/{tag_id}/posts", response_model=list[PostView])
async def list_posts_by_tag(
    tag_id: int, lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.list_by_tag(tag_id)


@router.delete("/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tag(
    tag_id: int,
    token: str = Header(..., alias="X-Token", min_length=1),
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    await lifecycle.delete_tag(tag_id, token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
