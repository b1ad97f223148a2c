"""Post Lifecycle: creation atomicity, helper assignment, settlement and accounting.

Tests cover:
    - create() resolves the requester from the token and links deduplicated tags
    - any failure during create() leaves zero Post, Tag and PostTag rows
    - open -> payment -> acceptance with the matching ledger deltas
    - forward-only rules, missing helper, wrong state
    - ledger failure after commit leaves a pending marker that reconciliation clears
    - acceptance waits for a pending payment debit; concurrent settlements post once
    - amount_payable = ledger total - open bounties
"""

import pytest
from sqlalchemy.exc import OperationalError

from postboard.core.domain_types import PostStatus, SettlementKind
from postboard.core.errors import (
    AuthError, CollaboratorError, DatabaseError, DomainError, NotFoundError,
    ValidationError,
)
from postboard.models.post import Post
from postboard.models.post_tag import PostTag
from postboard.models.tag import Tag
from postboard.services.post_lifecycle import PostLifecycle
from postboard.services.post_store import PostStore
from postboard.services.tag_resolver import TagResolver

from tests.services.db_helpers import count_rows


async def _open_post(lifecycle, point=100, token="T-alice", tags=()):
    joined = await lifecycle.create("fix sink", point, list(tags), token)
    return joined.post.id


# ─── create ──────────────────────────────────────────────────────

async def test_create_sets_requester_from_token_and_links_tags(lifecycle, test_db):
    joined = await lifecycle.create("fix sink", 100, ["plumbing", "urgent"], "T-alice")

    assert joined.post.status is PostStatus.OPEN
    assert joined.post.requester_id == 1
    assert joined.post.helper_id == 0
    assert joined.user.name == "alice"
    assert joined.helper_user.id == 0
    assert [t.body for t in joined.tags] == ["plumbing", "urgent"]
    assert await count_rows(test_db, Tag) == 2
    assert await count_rows(test_db, PostTag) == 2


async def test_create_reuses_existing_tags(lifecycle, test_db):
    first = await lifecycle.create("fix sink", 100, ["plumbing", "urgent"], "T-alice")
    second = await lifecycle.create("fix tap", 30, ["urgent", "plumbing"], "T-bob")

    assert await count_rows(test_db, Tag) == 2
    assert await count_rows(test_db, PostTag) == 4
    assert {t.id for t in first.tags} == {t.id for t in second.tags}


async def test_create_collapses_duplicate_tags_in_one_request(lifecycle, test_db):
    joined = await lifecycle.create("fix sink", 100, ["plumbing", "plumbing"], "T-alice")

    assert len(joined.tags) == 1
    assert await count_rows(test_db, PostTag) == 1


async def test_create_without_tags(lifecycle, test_db):
    joined = await lifecycle.create("walk the dog", 0, [], "T-carol")

    assert joined.tags == []
    assert joined.post.point == 0
    assert await count_rows(test_db, Post) == 1


async def test_create_with_invalid_token_raises_auth_error(lifecycle, test_db):
    with pytest.raises(AuthError):
        await lifecycle.create("fix sink", 100, ["plumbing"], "T-nobody")
    assert await count_rows(test_db, Post) == 0


async def test_create_rejects_negative_point(lifecycle, test_db):
    with pytest.raises(ValidationError) as exc:
        await lifecycle.create("fix sink", -1, [], "T-alice")
    assert exc.value.field == "point"
    assert await count_rows(test_db, Post) == 0


async def test_create_rejects_blank_tag(lifecycle, test_db):
    with pytest.raises(ValidationError):
        await lifecycle.create("fix sink", 10, ["plumbing", "  "], "T-alice")
    assert await count_rows(test_db, Tag) == 0


async def test_create_rolls_back_everything_when_a_link_fails(
    lifecycle, test_db, monkeypatch,
):
    original_link = PostStore.link_tag
    calls = {"n": 0}

    async def failing_link(self, post_id, tag_id):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("link insert failed")
        return await original_link(self, post_id, tag_id)

    monkeypatch.setattr(PostStore, "link_tag", failing_link)

    with pytest.raises(RuntimeError):
        await lifecycle.create("fix sink", 100, ["plumbing", "urgent"], "T-alice")

    assert await count_rows(test_db, Post) == 0
    assert await count_rows(test_db, Tag) == 0
    assert await count_rows(test_db, PostTag) == 0


async def test_create_rolls_back_everything_when_a_tag_fails(
    lifecycle, test_db, monkeypatch,
):
    original_resolve = TagResolver.resolve

    async def failing_resolve(self, body):
        if body == "urgent":
            raise RuntimeError("tag insert failed")
        return await original_resolve(self, body)

    monkeypatch.setattr(TagResolver, "resolve", failing_resolve)

    with pytest.raises(RuntimeError):
        await lifecycle.create("fix sink", 100, ["plumbing", "urgent"], "T-alice")

    assert await count_rows(test_db, Post) == 0
    assert await count_rows(test_db, Tag) == 0
    assert await count_rows(test_db, PostTag) == 0


# ─── helper assignment ───────────────────────────────────────────

async def test_assign_helper_sets_caller_as_helper(lifecycle):
    post_id = await _open_post(lifecycle)

    view = await lifecycle.assign_helper(post_id, "T-bob")

    assert view.post.helper_id == 2
    assert view.helper_user.name == "bob"
    assert view.post.status is PostStatus.OPEN


async def test_unassign_helper_clears_helper(lifecycle):
    post_id = await _open_post(lifecycle)
    await lifecycle.assign_helper(post_id, "T-bob")

    view = await lifecycle.unassign_helper(post_id, "T-bob")

    assert view.post.helper_id == 0
    assert view.helper_user.name == ""


async def test_assign_helper_unknown_post_raises_not_found(lifecycle):
    with pytest.raises(NotFoundError):
        await lifecycle.assign_helper(999, "T-bob")


async def test_assign_helper_bad_token_is_auth_error_not_not_found(lifecycle):
    with pytest.raises(AuthError):
        await lifecycle.assign_helper(999, "T-nobody")


async def test_helper_is_fixed_after_payment(lifecycle):
    post_id = await _open_post(lifecycle)
    await lifecycle.assign_helper(post_id, "T-bob")
    await lifecycle.settle_payment(post_id, "T-alice")

    with pytest.raises(DomainError):
        await lifecycle.unassign_helper(post_id, "T-bob")
    with pytest.raises(DomainError):
        await lifecycle.assign_helper(post_id, "T-carol")


# ─── settlement ──────────────────────────────────────────────────

async def test_full_lifecycle_posts_ledger_deltas(lifecycle, ledger):
    post_id = await _open_post(lifecycle, point=100)
    await lifecycle.assign_helper(post_id, "T-bob")

    paid = await lifecycle.settle_payment(post_id, "T-alice")
    assert paid.post.status is PostStatus.PAYMENT
    assert paid.post.settlement_pending is None
    assert len(ledger.deltas) == 1
    assert ledger.deltas[0].user_id == 1
    assert ledger.deltas[0].amount == -100
    assert "bob" in ledger.deltas[0].comment
    assert ledger.deltas[0].token == "T-alice"

    accepted = await lifecycle.settle_acceptance(post_id, "T-alice")
    assert accepted.post.status is PostStatus.ACCEPTANCE
    assert len(ledger.deltas) == 2
    assert ledger.deltas[1].user_id == 2
    assert ledger.deltas[1].amount == 100
    assert "alice" in ledger.deltas[1].comment


async def test_payment_without_helper_is_domain_error(lifecycle, ledger, test_db):
    post_id = await _open_post(lifecycle)

    with pytest.raises(DomainError, match="no helper assigned"):
        await lifecycle.settle_payment(post_id, "T-alice")

    post = await test_db.get(Post, post_id)
    assert post.status is PostStatus.OPEN
    assert ledger.deltas == []


async def test_acceptance_requires_payment_state(lifecycle, ledger):
    post_id = await _open_post(lifecycle)
    await lifecycle.assign_helper(post_id, "T-bob")

    with pytest.raises(DomainError, match="not in Payment state"):
        await lifecycle.settle_acceptance(post_id, "T-alice")
    assert ledger.deltas == []


async def test_payment_cannot_repeat(lifecycle, ledger):
    post_id = await _open_post(lifecycle)
    await lifecycle.assign_helper(post_id, "T-bob")
    await lifecycle.settle_payment(post_id, "T-alice")

    with pytest.raises(DomainError):
        await lifecycle.settle_payment(post_id, "T-alice")
    assert len(ledger.deltas) == 1


async def test_acceptance_is_terminal(lifecycle):
    post_id = await _open_post(lifecycle)
    await lifecycle.assign_helper(post_id, "T-bob")
    await lifecycle.settle_payment(post_id, "T-alice")
    await lifecycle.settle_acceptance(post_id, "T-alice")

    with pytest.raises(DomainError):
        await lifecycle.settle_acceptance(post_id, "T-alice")
    with pytest.raises(DomainError):
        await lifecycle.settle_payment(post_id, "T-alice")


async def test_ledger_failure_keeps_transition_and_marks_pending(
    lifecycle, ledger, test_db,
):
    post_id = await _open_post(lifecycle)
    await lifecycle.assign_helper(post_id, "T-bob")
    ledger.unavailable = True

    with pytest.raises(CollaboratorError):
        await lifecycle.settle_payment(post_id, "T-alice")

    post = await test_db.get(Post, post_id)
    assert post.status is PostStatus.PAYMENT
    assert post.settlement_pending is SettlementKind.PAYMENT


async def test_reconcile_replays_pending_deltas(lifecycle, ledger, test_db):
    post_id = await _open_post(lifecycle, point=70)
    await lifecycle.assign_helper(post_id, "T-bob")
    ledger.unavailable = True
    with pytest.raises(CollaboratorError):
        await lifecycle.settle_payment(post_id, "T-alice")

    still_down = await lifecycle.reconcile_settlements()
    assert still_down.reconciled == 0
    assert still_down.remaining == 1

    ledger.unavailable = False
    result = await lifecycle.reconcile_settlements()

    assert result.reconciled == 1
    assert result.remaining == 0
    assert ledger.deltas[-1].user_id == 1
    assert ledger.deltas[-1].amount == -70
    assert ledger.deltas[-1].token is None
    post = await test_db.get(Post, post_id)
    assert post.settlement_pending is None


async def test_reconcile_with_nothing_pending(lifecycle, identity):
    result = await lifecycle.reconcile_settlements()

    assert result.reconciled == 0
    assert result.remaining == 0
    assert identity.list_calls == 0


async def test_acceptance_refused_while_payment_debit_pending(lifecycle, ledger, test_db):
    post_id = await _open_post(lifecycle, point=100)
    await lifecycle.assign_helper(post_id, "T-bob")
    ledger.unavailable = True
    with pytest.raises(CollaboratorError):
        await lifecycle.settle_payment(post_id, "T-alice")
    ledger.unavailable = False

    with pytest.raises(DomainError, match="payment not yet recorded"):
        await lifecycle.settle_acceptance(post_id, "T-alice")

    post = await test_db.get(Post, post_id)
    assert post.status is PostStatus.PAYMENT
    assert post.settlement_pending is SettlementKind.PAYMENT
    assert ledger.deltas == []


async def test_acceptance_after_reconciled_payment_posts_both_deltas(lifecycle, ledger):
    post_id = await _open_post(lifecycle, point=100)
    await lifecycle.assign_helper(post_id, "T-bob")
    ledger.unavailable = True
    with pytest.raises(CollaboratorError):
        await lifecycle.settle_payment(post_id, "T-alice")
    ledger.unavailable = False

    await lifecycle.reconcile_settlements()
    await lifecycle.settle_acceptance(post_id, "T-alice")

    assert [(d.user_id, d.amount) for d in ledger.deltas] == [(1, -100), (2, 100)]


async def test_concurrent_payment_reaches_ledger_once(
    lifecycle, ledger, identity, test_session_factory,
):
    post_id = await _open_post(lifecycle, point=100)
    await lifecycle.assign_helper(post_id, "T-bob")

    # this session still holds the post as open when the other request commits
    async with test_session_factory() as other_db:
        other = PostLifecycle(other_db, identity, ledger)
        await other.settle_payment(post_id, "T-alice")

    with pytest.raises(DomainError, match="concurrent"):
        await lifecycle.settle_payment(post_id, "T-alice")

    assert [(d.user_id, d.amount) for d in ledger.deltas] == [(1, -100)]


async def test_marker_clear_is_retried_once(lifecycle, ledger, monkeypatch):
    post_id = await _open_post(lifecycle, point=100)
    await lifecycle.assign_helper(post_id, "T-bob")
    _fail_marker_clear(monkeypatch, times=1)

    view = await lifecycle.settle_payment(post_id, "T-alice")

    assert view.post.settlement_pending is None
    assert len(ledger.deltas) == 1


async def test_unclearable_marker_surfaces_database_error(
    lifecycle, ledger, test_db, monkeypatch,
):
    post_id = await _open_post(lifecycle, point=100)
    await lifecycle.assign_helper(post_id, "T-bob")
    _fail_marker_clear(monkeypatch, times=2)

    with pytest.raises(DatabaseError, match="not confirmed locally"):
        await lifecycle.settle_payment(post_id, "T-alice")

    # the ledger took the delta; the marker is left for an operator to inspect
    assert len(ledger.deltas) == 1
    post = await test_db.get(Post, post_id)
    assert post.settlement_pending is SettlementKind.PAYMENT


async def test_reconcile_uses_service_token(test_db, identity, ledger):
    lifecycle = PostLifecycle(test_db, identity, ledger, service_token="svc-ledger")
    post_id = await _open_post(lifecycle, point=30)
    await lifecycle.assign_helper(post_id, "T-bob")
    ledger.unavailable = True
    with pytest.raises(CollaboratorError):
        await lifecycle.settle_payment(post_id, "T-alice")
    ledger.unavailable = False

    await lifecycle.reconcile_settlements()

    assert ledger.deltas[-1].token == "svc-ledger"


def _fail_marker_clear(monkeypatch, times):
    """Make PostStore.save fail while it persists a cleared settlement marker."""
    original_save = PostStore.save
    left = {"n": times}

    async def flaky_save(self, post):
        if (
            left["n"] and post.settlement_pending is None
            and post.status is not PostStatus.OPEN
        ):
            left["n"] -= 1
            raise OperationalError("UPDATE posts", {}, Exception("database is locked"))
        return await original_save(self, post)

    monkeypatch.setattr(PostStore, "save", flaky_save)


# ─── accounting ──────────────────────────────────────────────────

async def test_amount_payable_subtracts_open_bounties(lifecycle):
    await _open_post(lifecycle, point=100)

    assert await lifecycle.amount_payable(1) == 400


async def test_amount_payable_ignores_posts_past_open(lifecycle):
    await _open_post(lifecycle, point=50)
    paid_id = await _open_post(lifecycle, point=100)
    await lifecycle.assign_helper(paid_id, "T-bob")
    await lifecycle.settle_payment(paid_id, "T-alice")

    # fake ledger totals are static, so only the open 50 is subtracted
    assert await lifecycle.amount_payable(1) == 450


async def test_amount_payable_without_posts_is_ledger_total(lifecycle):
    assert await lifecycle.amount_payable(2) == 40
    assert await lifecycle.amount_payable(3) == 0


async def test_amount_payable_rejects_non_positive_user(lifecycle):
    with pytest.raises(ValidationError):
        await lifecycle.amount_payable(0)


# ─── reads and plain edits ───────────────────────────────────────

async def test_list_posts_filters_by_requester_and_helper(lifecycle):
    first = await _open_post(lifecycle, token="T-alice")
    await _open_post(lifecycle, token="T-alice")
    await _open_post(lifecycle, token="T-carol")
    await lifecycle.assign_helper(first, "T-bob")

    assert len(await lifecycle.list_posts()) == 3
    assert len(await lifecycle.list_posts(requester_id=1)) == 2
    helped = await lifecycle.list_posts(helper_id=2)
    assert [v.post.id for v in helped] == [first]


async def test_list_posts_newest_first_with_tags(lifecycle):
    older = await _open_post(lifecycle, tags=["garden"])
    newer = await _open_post(lifecycle)

    views = await lifecycle.list_posts(with_tags=True)

    assert [v.post.id for v in views] == [newer, older]
    assert [t.body for t in views[1].tags] == ["garden"]


async def test_list_by_tag(lifecycle, test_db):
    tagged = await _open_post(lifecycle, tags=["garden"])
    await _open_post(lifecycle, tags=["kitchen"])
    tag = await PostStore(test_db).find_tag_by_body("garden")

    views = await lifecycle.list_by_tag(tag.id)

    assert [v.post.id for v in views] == [tagged]
    assert views[0].user.name == "alice"


async def test_list_by_unknown_tag_raises_not_found(lifecycle):
    with pytest.raises(NotFoundError):
        await lifecycle.list_by_tag(404)


async def test_get_returns_joined_view(lifecycle):
    post_id = await _open_post(lifecycle, tags=["garden"])

    joined = await lifecycle.get(post_id)

    assert joined.post.id == post_id
    assert joined.user.name == "alice"
    assert [t.body for t in joined.tags] == ["garden"]


async def test_update_replaces_body_only(lifecycle):
    post_id = await _open_post(lifecycle, point=100)

    post = await lifecycle.update(post_id, "fix the kitchen sink", "T-alice")

    assert post.body == "fix the kitchen sink"
    assert post.point == 100
    assert post.status is PostStatus.OPEN


async def test_update_rejects_unknown_token(lifecycle, test_db):
    post_id = await _open_post(lifecycle)

    with pytest.raises(AuthError):
        await lifecycle.update(post_id, "hijacked", "T-nobody")

    post = await test_db.get(Post, post_id)
    assert post.body == "fix sink"


async def test_delete_removes_post_and_links(lifecycle, test_db):
    post_id = await _open_post(lifecycle, tags=["garden", "weekend"])

    await lifecycle.delete(post_id, "T-alice")

    assert await count_rows(test_db, Post) == 0
    assert await count_rows(test_db, PostTag) == 0
    assert await count_rows(test_db, Tag) == 2


async def test_delete_unknown_post_raises_not_found(lifecycle):
    with pytest.raises(NotFoundError):
        await lifecycle.delete(12345, "T-alice")


async def test_delete_rejects_unknown_token(lifecycle, test_db):
    await _open_post(lifecycle, tags=["garden"])
    post_id = await _open_post(lifecycle)

    with pytest.raises(AuthError):
        await lifecycle.delete(post_id, "T-nobody")

    assert await count_rows(test_db, Post) == 2


async def test_search_tags_matches_substring(lifecycle):
    await _open_post(lifecycle, tags=["test", "testing", "other", "50%_off"])

    found = await lifecycle.search_tags("te")
    assert [t.body for t in found] == ["test", "testing"]

    literal = await lifecycle.search_tags("%_")
    assert [t.body for t in literal] == ["50%_off"]


async def test_search_tags_rejects_empty_text(lifecycle):
    with pytest.raises(ValidationError):
        await lifecycle.search_tags("")


async def test_delete_tag_removes_links(lifecycle, test_db):
    post_id = await _open_post(lifecycle, tags=["garden"])
    tag = await PostStore(test_db).find_tag_by_body("garden")

    await lifecycle.delete_tag(tag.id, "T-alice")

    assert await count_rows(test_db, Tag) == 0
    assert (await lifecycle.get(post_id)).tags == []


async def test_delete_tag_rejects_unknown_token(lifecycle, test_db):
    await _open_post(lifecycle, tags=["garden"])
    tag = await PostStore(test_db).find_tag_by_body("garden")

    with pytest.raises(AuthError):
        await lifecycle.delete_tag(tag.id, "T-nobody")

    assert await count_rows(test_db, Tag) == 1
    assert await count_rows(test_db, PostTag) == 1
