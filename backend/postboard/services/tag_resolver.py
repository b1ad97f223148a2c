"""Tag Resolver: find-or-create tags by exact body.

Invariants:
    - resolve() never creates a second row for a body that already exists
    - A unique-body conflict from a concurrent resolver counts as success: the winner's row is returned
    - The conflict is contained in a SAVEPOINT, so the caller's transaction stays usable
"""

import logging

from sqlalchemy.exc import IntegrityError

from postboard.core.errors import DataError
from postboard.models.tag import Tag
from postboard.services.post_store import PostStore

logger = logging.getLogger(__name__)


class TagResolver:

    def __init__(self, store: PostStore):
        self.store = store

    async def resolve(self, body: str) -> Tag:
        existing = await self.store.find_tag_by_body(body)
        if existing is not None:
            return existing

        try:
            async with self.store.db.begin_nested():
                return await self.store.add_tag(body)
        except IntegrityError:
            logger.info(f"Tag '{body}' created concurrently, reusing it")

        winner = await self.store.find_tag_by_body(body)
        if winner is None:
            raise DataError(f"tag '{body}' conflicted on insert but cannot be found")
        return winner
