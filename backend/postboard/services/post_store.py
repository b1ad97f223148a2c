"""Post Store: persistence queries over posts, tags and post-tag links.

Invariants:
    - Bound to exactly one AsyncSession; never commits (the lifecycle engine owns commit/rollback)
    - Writes are flushed immediately so generated ids are available inside the transaction
    - Post listings are newest first
    - Deleting a post or tag removes its links in the same transaction
    - advance_status is a compare-and-set on the stored status, so concurrent settlements of one post cannot both win
"""

import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.core.domain_types import PostId, PostStatus, SettlementKind, TagId, UserId
from postboard.core.errors import NotFoundError
from postboard.models.post import Post
from postboard.models.post_tag import PostTag
from postboard.models.tag import Tag

logger = logging.getLogger(__name__)


class PostStore:
    """Queries and writes for one logical operation."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Posts ───────────────────────────────────────────────────

    async def get_post(self, post_id: PostId) -> Post:
        post = await self.db.get(Post, post_id)
        if post is None:
            raise NotFoundError("Post", post_id)
        return post

    async def list_posts(
        self, requester_id: UserId | None = None, helper_id: UserId | None = None,
    ) -> list[Post]:
        query = select(Post).order_by(Post.id.desc())
        if requester_id is not None:
            query = query.where(Post.requester_id == requester_id)
        if helper_id is not None:
            query = query.where(Post.helper_id == helper_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_posts_by_tag(self, tag_id: TagId) -> list[Post]:
        result = await self.db.execute(
            select(Post)
            .join(PostTag, PostTag.post_id == Post.id)
            .where(PostTag.tag_id == tag_id)
            .order_by(Post.id.desc())
        )
        return list(result.scalars().all())

    async def list_pending_settlements(self) -> list[Post]:
        result = await self.db.execute(
            select(Post)
            .where(Post.settlement_pending.is_not(None))
            .order_by(Post.id)
        )
        return list(result.scalars().all())

    async def add_post(self, requester_id: UserId, body: str, point: int) -> Post:
        post = Post(
            requester_id=requester_id, helper_id=0, body=body, point=point,
            status=PostStatus.OPEN,
        )
        self.db.add(post)
        await self.db.flush()
        return post

    async def save(self, post: Post) -> Post:
        self.db.add(post)
        await self.db.flush()
        return post

    async def advance_status(
        self,
        post_id: PostId,
        expected: PostStatus,
        target: PostStatus,
        pending: SettlementKind,
    ) -> bool:
        """Compare-and-set on status; also refuses while a delta is still pending.

        False when another writer moved the post first.
        """
        result = await self.db.execute(
            update(Post)
            .where(
                Post.id == post_id,
                Post.status == expected,
                Post.settlement_pending.is_(None),
            )
            .values(status=target, settlement_pending=pending)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete_post(self, post_id: PostId) -> None:
        post = await self.get_post(post_id)
        await self.db.execute(delete(PostTag).where(PostTag.post_id == post_id))
        await self.db.delete(post)
        await self.db.flush()

    async def scheduled_payment_total(self, user_id: UserId) -> int:
        """Sum of point over the user's posts that are still open."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(Post.point), 0))
            .where(Post.requester_id == user_id)
            .where(Post.status == PostStatus.OPEN)
        )
        return int(result.scalar_one())

    # ─── Tags ────────────────────────────────────────────────────

    async def get_tag(self, tag_id: TagId) -> Tag:
        tag = await self.db.get(Tag, tag_id)
        if tag is None:
            raise NotFoundError("Tag", tag_id)
        return tag

    async def find_tag_by_body(self, body: str) -> Tag | None:
        result = await self.db.execute(select(Tag).where(Tag.body == body))
        return result.scalars().first()

    async def add_tag(self, body: str) -> Tag:
        tag = Tag(body=body)
        self.db.add(tag)
        await self.db.flush()
        return tag

    async def search_tags(self, fragment: str) -> list[Tag]:
        result = await self.db.execute(
            select(Tag)
            .where(Tag.body.contains(fragment, autoescape=True))
            .order_by(Tag.id)
        )
        return list(result.scalars().all())

    async def delete_tag(self, tag_id: TagId) -> None:
        tag = await self.get_tag(tag_id)
        await self.db.execute(delete(PostTag).where(PostTag.tag_id == tag_id))
        await self.db.delete(tag)
        await self.db.flush()

    # ─── Links ───────────────────────────────────────────────────

    async def link_tag(self, post_id: PostId, tag_id: TagId) -> PostTag:
        link = PostTag(post_id=post_id, tag_id=tag_id)
        self.db.add(link)
        await self.db.flush()
        return link

    async def tags_for_post(self, post_id: PostId) -> list[Tag]:
        result = await self.db.execute(
            select(Tag)
            .join(PostTag, PostTag.tag_id == Tag.id)
            .where(PostTag.post_id == post_id)
            .order_by(Tag.id)
        )
        return list(result.scalars().all())
