"""Tag Resolver: find-or-create semantics and unique-body conflicts."""

from postboard.models.tag import Tag
from postboard.services.post_store import PostStore
from postboard.services.tag_resolver import TagResolver

from tests.services.db_helpers import count_rows


async def test_resolve_creates_missing_tag(test_db):
    resolver = TagResolver(PostStore(test_db))

    tag = await resolver.resolve("garden")

    assert tag.id is not None
    assert tag.body == "garden"
    assert await count_rows(test_db, Tag) == 1


async def test_resolve_twice_returns_same_row(test_db):
    resolver = TagResolver(PostStore(test_db))

    first = await resolver.resolve("garden")
    second = await resolver.resolve("garden")

    assert first.id == second.id
    assert await count_rows(test_db, Tag) == 1


async def test_resolve_is_case_sensitive(test_db):
    resolver = TagResolver(PostStore(test_db))

    lower = await resolver.resolve("garden")
    upper = await resolver.resolve("Garden")

    assert lower.id != upper.id
    assert await count_rows(test_db, Tag) == 2


async def test_conflicting_insert_reuses_existing_row(test_db, monkeypatch):
    store = PostStore(test_db)
    winner = await store.add_tag("garden")
    await test_db.commit()

    original_find = PostStore.find_tag_by_body
    misses = {"left": 1}

    async def stale_find(self, body):
        # first lookup runs before the concurrent insert became visible
        if misses["left"]:
            misses["left"] -= 1
            return None
        return await original_find(self, body)

    monkeypatch.setattr(PostStore, "find_tag_by_body", stale_find)

    tag = await TagResolver(store).resolve("garden")

    assert tag.id == winner.id
    assert await count_rows(test_db, Tag) == 1


async def test_conflict_keeps_outer_transaction_usable(test_db, monkeypatch):
    store = PostStore(test_db)
    await store.add_tag("garden")
    await test_db.commit()

    original_find = PostStore.find_tag_by_body
    misses = {"left": 1}

    async def stale_find(self, body):
        if misses["left"]:
            misses["left"] -= 1
            return None
        return await original_find(self, body)

    monkeypatch.setattr(PostStore, "find_tag_by_body", stale_find)
    resolver = TagResolver(store)

    await resolver.resolve("garden")
    kitchen = await resolver.resolve("kitchen")
    await test_db.commit()

    assert kitchen.body == "kitchen"
    assert await count_rows(test_db, Tag) == 2
