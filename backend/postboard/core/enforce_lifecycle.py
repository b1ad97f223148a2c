"""Lifecycle Enforcement: pure rules for the post state machine and point accounting.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no side effects
    - Transitions are strictly forward: open -> payment -> acceptance
    - A post without a helper never enters payment
    - A post whose payment debit is unconfirmed never enters acceptance
    - Violations raise typed errors (DomainError / ValidationError); success returns None or a value

Design Decisions:
    - Functions take plain values, not ORM objects: testable without a session
"""

from collections.abc import Iterable

from postboard.core.domain_types import UNASSIGNED, PostId, PostStatus, SettlementKind
from postboard.core.errors import DomainError, ErrorContext, ValidationError


def check_point(point: int) -> None:
    """Bounty must be a non-negative integer."""
    if isinstance(point, bool) or not isinstance(point, int):
        raise ValidationError("point must be an integer", field="point")
    if point < 0:
        raise ValidationError(
            f"point must be >= 0, got {point}", field="point",
        )


def normalize_tag_bodies(bodies: Iterable[str]) -> list[str]:
    """Reject empty bodies and collapse duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for body in bodies:
        if not isinstance(body, str) or not body.strip():
            raise ValidationError("tag body must be non-empty", field="tags")
        seen.setdefault(body, None)
    return list(seen)


def check_transition(post_id: PostId, current: PostStatus, target: PostStatus) -> None:
    """Only the next state in the lifecycle is reachable."""
    if target.rank != current.rank + 1:
        raise DomainError(
            f"PostID:{post_id} cannot move from {current.value} to {target.value}",
            ErrorContext(post_id=post_id),
        )


def check_helper_editable(post_id: PostId, status: PostStatus) -> None:
    """Helper can only be (un)assigned while the post is still open."""
    if status is not PostStatus.OPEN:
        raise DomainError(
            f"PostID:{post_id} helper is fixed once the post is {status.value}",
            ErrorContext(post_id=post_id),
        )


def check_can_settle_payment(post_id: PostId, status: PostStatus, helper_id: int) -> None:
    """Payment needs an assigned helper and an open post."""
    if helper_id == UNASSIGNED:
        raise DomainError(
            f"PostID:{post_id} no helper assigned",
            ErrorContext(post_id=post_id),
        )
    check_transition(post_id, status, PostStatus.PAYMENT)


def check_can_settle_acceptance(
    post_id: PostId, status: PostStatus, settlement_pending: SettlementKind | None = None,
) -> None:
    """Acceptance needs payment, and the payment debit must be confirmed by the ledger."""
    if status is not PostStatus.PAYMENT:
        raise DomainError(
            f"PostID:{post_id} not in Payment state",
            ErrorContext(post_id=post_id),
        )
    if settlement_pending is not None:
        raise DomainError(
            f"PostID:{post_id} payment not yet recorded by the ledger, reconcile first",
            ErrorContext(post_id=post_id),
        )


def settlement_delta(kind: SettlementKind, point: int) -> int:
    """Signed ledger amount: payment debits the requester, acceptance credits the helper."""
    return -point if kind is SettlementKind.PAYMENT else point


def settlement_comment(kind: SettlementKind, counterpart_name: str) -> str:
    if kind is SettlementKind.PAYMENT:
        return f"{counterpart_name} helped you out!"
    return f"You helped {counterpart_name}!"


def compute_amount_payable(ledger_total: int, scheduled_payment_total: int) -> int:
    """Available balance: ledger credit minus points pledged to still-open posts."""
    return ledger_total - scheduled_payment_total
