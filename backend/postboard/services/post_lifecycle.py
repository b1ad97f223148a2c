"""Post Lifecycle Engine: creation, helper assignment, settlement and point accounting.

Invariants:
    - Every mutating call resolves the caller token first; failure is AuthError
    - create() writes the post, its tags and links in ONE transaction: commit all or roll back all
    - Settlement commits the status change together with a settlement_pending marker,
      THEN calls the ledger; the marker is cleared only once the ledger confirms
    - The status change is a compare-and-set: of two concurrent settlements of one post,
      exactly one reaches the ledger, the other is a DomainError
    - Acceptance is refused while the payment debit is still pending
    - A failed ledger call leaves the status advanced and the marker set; the error is re-raised
    - amount_payable = ledger total - sum(point of the user's open posts)

Known window:
    - If the ledger accepts a delta but the commit clearing the marker fails (after one retry),
      the marker stays set and a later reconcile_settlements() posts that delta again.
      This is logged as SETTLEMENT_UNCONFIRMED and surfaces as DatabaseError; the ledger
      offers no idempotency key to close it from this side.

Design Decisions:
    - The AsyncSession passed in is the transaction handle; no process-wide transaction exists
    - Pending markers instead of compensation: reconcile_settlements() replays the owed deltas
"""

import logging
from collections.abc import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.core.domain_types import (
    PostId, PostStatus, ReconcileResult, SettlementKind, TagId, UserId,
)
from postboard.core.enforce_lifecycle import (
    check_can_settle_acceptance,
    check_can_settle_payment,
    check_helper_editable,
    check_point,
    compute_amount_payable,
    normalize_tag_bodies,
    settlement_comment,
    settlement_delta,
)
from postboard.core.errors import (
    DatabaseError, DomainError, ErrorContext, PostboardError, ValidationError,
)
from postboard.core.repository_protocols import IdentityDirectory, PointLedger
from postboard.models.post import Post
from postboard.models.tag import Tag
from postboard.schemas.post import JoinedPost, PostView
from postboard.services.enrichment import Directory, Enrichment
from postboard.services.post_store import PostStore
from postboard.services.tag_resolver import TagResolver

logger = logging.getLogger(__name__)

_CONFIRM_ATTEMPTS = 2


class PostLifecycle:
    """State machine and accounting over one request's session."""

    def __init__(
        self,
        db: AsyncSession,
        identity: IdentityDirectory,
        ledger: PointLedger,
        service_token: str | None = None,
    ):
        self.db = db
        self.identity = identity
        self.ledger = ledger
        self.service_token = service_token
        self.store = PostStore(db)
        self.tags = TagResolver(self.store)
        self.enrichment = Enrichment(self.store, identity)

    # ─── Creation ────────────────────────────────────────────────

    async def create(
        self, body: str, point: int, tags: Sequence[str], token: str,
    ) -> JoinedPost:
        requester_id = await self.identity.resolve_token(token)
        check_point(point)
        tag_bodies = normalize_tag_bodies(tags)

        try:
            post = await self.store.add_post(requester_id, body, point)
            for tag_body in tag_bodies:
                tag = await self.tags.resolve(tag_body)
                await self.store.link_tag(post.id, tag.id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.warning(
                "Post creation rolled back", extra={"user_id": requester_id},
            )
            raise

        logger.info(
            f"Post created with {len(tag_bodies)} tag(s)",
            extra={"post_id": post.id, "user_id": requester_id},
        )
        return (await self.enrichment.attach_all([post]))[0]

    # ─── Helper assignment ───────────────────────────────────────

    async def assign_helper(self, post_id: PostId, token: str) -> PostView:
        post, user_id = await self._auth_and_get_post(post_id, token)
        check_helper_editable(post.id, post.status)
        post.helper_id = user_id
        await self._persist(post)
        return (await self.enrichment.attach_identities([post]))[0]

    async def unassign_helper(self, post_id: PostId, token: str) -> PostView:
        post, _ = await self._auth_and_get_post(post_id, token)
        check_helper_editable(post.id, post.status)
        post.helper_id = 0
        await self._persist(post)
        return (await self.enrichment.attach_identities([post]))[0]

    # ─── Settlement ──────────────────────────────────────────────

    async def settle_payment(self, post_id: PostId, token: str) -> PostView:
        post, _ = await self._auth_and_get_post(post_id, token)
        check_can_settle_payment(post.id, post.status, post.helper_id)
        return await self._settle(post, SettlementKind.PAYMENT, token)

    async def settle_acceptance(self, post_id: PostId, token: str) -> PostView:
        post, _ = await self._auth_and_get_post(post_id, token)
        check_can_settle_acceptance(post.id, post.status, post.settlement_pending)
        return await self._settle(post, SettlementKind.ACCEPTANCE, token)

    async def reconcile_settlements(self) -> ReconcileResult:
        """Replay the ledger delta of every post still marked settlement_pending.

        No caller is present, so deltas go out with the configured service token.
        Without one the token is None, and a ledger that insists on a token
        answers AuthError: those posts stay pending and count as remaining.
        """
        pending = await self.store.list_pending_settlements()
        if not pending:
            return ReconcileResult(reconciled=0, remaining=0)

        # a rollback while confirming expires loaded rows, so iterate by id
        owed = [(post.id, post.settlement_pending) for post in pending]
        directory = await self.enrichment.directory()
        reconciled = 0
        for post_id, kind in owed:
            post = await self.store.get_post(post_id)
            try:
                await self._post_ledger_delta(post, kind, directory, self.service_token)
            except PostboardError as e:
                logger.warning(
                    f"Settlement still pending: {e.message}",
                    extra={"post_id": post_id, "error_code": e.code},
                )
                continue
            await self._confirm_settlement(post_id, kind)
            reconciled += 1

        return ReconcileResult(
            reconciled=reconciled, remaining=len(pending) - reconciled,
        )

    # ─── Accounting ──────────────────────────────────────────────

    async def amount_payable(self, user_id: UserId) -> int:
        if user_id <= 0:
            raise ValidationError("user id must be positive", field="user_id")
        ledger_total = await self.ledger.total_for(user_id)
        scheduled = await self.store.scheduled_payment_total(user_id)
        return compute_amount_payable(ledger_total, scheduled)

    # ─── Reads and plain edits ───────────────────────────────────

    async def get(self, post_id: PostId) -> JoinedPost:
        post = await self.store.get_post(post_id)
        return (await self.enrichment.attach_all([post]))[0]

    async def list_posts(
        self,
        requester_id: UserId | None = None,
        helper_id: UserId | None = None,
        with_tags: bool = False,
    ) -> list[PostView] | list[JoinedPost]:
        posts = await self.store.list_posts(requester_id, helper_id)
        if with_tags:
            return await self.enrichment.attach_all(posts)
        return await self.enrichment.attach_identities(posts)

    async def list_by_tag(self, tag_id: TagId) -> list[PostView]:
        await self.store.get_tag(tag_id)
        posts = await self.store.list_posts_by_tag(tag_id)
        return await self.enrichment.attach_identities(posts)

    async def update(self, post_id: PostId, body: str, token: str) -> Post:
        """Replace the body; point, status and participants are not editable here."""
        post, _ = await self._auth_and_get_post(post_id, token)
        post.body = body
        await self._persist(post)
        return post

    async def delete(self, post_id: PostId, token: str) -> None:
        user_id = await self.identity.resolve_token(token)
        await self.store.delete_post(post_id)
        await self.db.commit()
        logger.info("Post deleted", extra={"post_id": post_id, "user_id": user_id})

    async def search_tags(self, fragment: str) -> list[Tag]:
        if not fragment:
            raise ValidationError("search text must be non-empty", field="q")
        return await self.store.search_tags(fragment)

    async def delete_tag(self, tag_id: TagId, token: str) -> None:
        user_id = await self.identity.resolve_token(token)
        await self.store.delete_tag(tag_id)
        await self.db.commit()
        logger.info("Tag deleted", extra={"tag_id": tag_id, "user_id": user_id})

    # ─── Internals ───────────────────────────────────────────────

    async def _auth_and_get_post(self, post_id: PostId, token: str) -> tuple[Post, UserId]:
        user_id = await self.identity.resolve_token(token)
        post = await self.store.get_post(post_id)
        return post, user_id

    async def _persist(self, post: Post) -> None:
        await self.store.save(post)
        await self.db.commit()

    async def _settle(
        self, post: Post, kind: SettlementKind, token: str,
    ) -> PostView:
        post_id = post.id
        target = PostStatus(kind.value)
        advanced = await self.store.advance_status(post_id, post.status, target, kind)
        if not advanced:
            await self.db.rollback()
            raise DomainError(
                f"PostID:{post_id} was settled by a concurrent request",
                ErrorContext(post_id=post_id),
            )
        await self.db.commit()
        await self.db.refresh(post)
        logger.info(f"Post moved to {target.value}", extra={"post_id": post_id})

        directory = await self.enrichment.directory()
        try:
            await self._post_ledger_delta(post, kind, directory, token)
        except PostboardError as e:
            logger.error(
                f"Ledger delta failed after {kind.value} commit, left pending",
                extra={"post_id": post_id, "error_code": e.code},
            )
            raise

        post = await self._confirm_settlement(post_id, kind)
        return (await self.enrichment.attach_identities([post], directory))[0]

    async def _confirm_settlement(self, post_id: PostId, kind: SettlementKind) -> Post:
        """Clear the marker of a delta the ledger has accepted, retrying the commit once."""
        cause = None
        for attempt in range(1, _CONFIRM_ATTEMPTS + 1):
            try:
                post = await self.store.get_post(post_id)
                post.settlement_pending = None
                await self._persist(post)
                return post
            except SQLAlchemyError as e:
                cause = e
                await self.db.rollback()
                logger.warning(
                    f"Clearing {kind.value} marker failed: {e}",
                    extra={"post_id": post_id, "attempt": attempt},
                )

        logger.error(
            f"Ledger recorded the {kind.value} delta but the marker is still set; "
            "reconcile would post it again",
            extra={"post_id": post_id, "error_code": "SETTLEMENT_UNCONFIRMED"},
        )
        raise DatabaseError(
            f"{kind.value} delta recorded by the ledger but not confirmed locally",
            "commit",
            ErrorContext(post_id=post_id),
        ) from cause

    async def _post_ledger_delta(
        self,
        post: Post,
        kind: SettlementKind,
        directory: Directory,
        token: str | None = None,
    ) -> None:
        if kind is SettlementKind.PAYMENT:
            user_id, counterpart_id = post.requester_id, post.helper_id
        else:
            user_id, counterpart_id = post.helper_id, post.requester_id
        counterpart = directory.get(counterpart_id)
        await self.ledger.post_delta(
            UserId(user_id),
            settlement_delta(kind, post.point),
            settlement_comment(kind, counterpart.name if counterpart else ""),
            token,
        )
