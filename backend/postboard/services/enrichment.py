"""Enrichment Layer: joins stored posts with identity directory and tag data for presentation.

Invariants:
    - The identity directory is fetched at most once per call, never per post
    - Unknown requester/helper ids render as the empty identity, never an error
    - A post with requester_id 0 is a DataError
    - Tags are listed in creation order (tag id)
"""

import logging
from collections.abc import Sequence

from postboard.core.domain_types import UNASSIGNED, UserIdentity
from postboard.core.errors import DataError, ErrorContext
from postboard.core.repository_protocols import IdentityDirectory
from postboard.models.post import Post
from postboard.schemas.post import (
    JoinedPost, PostRead, PostView, PostWithTags, TagRead, UserRead,
)
from postboard.services.post_store import PostStore

logger = logging.getLogger(__name__)

Directory = dict[int, UserIdentity]


class Enrichment:

    def __init__(self, store: PostStore, identity: IdentityDirectory):
        self.store = store
        self.identity = identity

    async def directory(self) -> Directory:
        """Fetch the full user directory as an id -> identity lookup."""
        return {user.id: user for user in await self.identity.list_all()}

    async def attach_identities(
        self, posts: Sequence[Post], directory: Directory | None = None,
    ) -> list[PostView]:
        if not posts:
            return []
        if directory is None:
            directory = await self.directory()
        return [
            PostView(post=PostRead.model_validate(post), **_identities(post, directory))
            for post in posts
        ]

    async def attach_tags(self, posts: Sequence[Post]) -> list[PostWithTags]:
        return [
            PostWithTags(post=PostRead.model_validate(post), tags=await self._tags(post))
            for post in posts
        ]

    async def attach_all(
        self, posts: Sequence[Post], directory: Directory | None = None,
    ) -> list[JoinedPost]:
        """Identities and tags together, with a single directory fetch."""
        if not posts:
            return []
        if directory is None:
            directory = await self.directory()
        return [
            JoinedPost(
                post=PostRead.model_validate(post),
                tags=await self._tags(post),
                **_identities(post, directory),
            )
            for post in posts
        ]

    async def _tags(self, post: Post) -> list[TagRead]:
        return [TagRead.model_validate(tag) for tag in await self.store.tags_for_post(post.id)]


def _identities(post: Post, directory: Directory) -> dict[str, UserRead]:
    if post.requester_id == UNASSIGNED:
        raise DataError(
            f"PostID:{post.id} has no requester",
            ErrorContext(post_id=post.id),
        )
    user = directory.get(post.requester_id, UserIdentity.EMPTY)
    helper = directory.get(post.helper_id, UserIdentity.EMPTY)
    return {
        "user": UserRead.model_validate(user),
        "helper_user": UserRead.model_validate(helper),
    }
