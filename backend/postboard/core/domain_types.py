"""Domain Types: rich types that replace bare primitives across the codebase.

Invariants:
    - PostId, TagId, UserId wrap ints; UNASSIGNED (0) is never a real user
    - PostStatus order is the lifecycle order: OPEN < PAYMENT < ACCEPTANCE
    - UserIdentity.EMPTY stands in for any id the directory does not know

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: stored as-is in String columns and serialized without custom encoders
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, NewType


# ─── Identity Types ──────────────────────────────────────────────

PostId = NewType("PostId", int)
TagId = NewType("TagId", int)
UserId = NewType("UserId", int)

UNASSIGNED = UserId(0)


# ─── Enums ───────────────────────────────────────────────────────

class PostStatus(str, Enum):
    """Post lifecycle states, maps to the `status` column."""
    OPEN = "open"
    PAYMENT = "payment"
    ACCEPTANCE = "acceptance"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = (PostStatus.OPEN, PostStatus.PAYMENT, PostStatus.ACCEPTANCE)


class SettlementKind(str, Enum):
    """Which ledger delta a post still owes, maps to `settlement_pending`."""
    PAYMENT = "payment"
    ACCEPTANCE = "acceptance"


# ─── Value Types ─────────────────────────────────────────────────

@dataclass(frozen=True)
class UserIdentity:
    """A user as known by the external identity directory."""
    id: int
    name: str

    EMPTY: ClassVar["UserIdentity"]


UserIdentity.EMPTY = UserIdentity(id=0, name="")


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconciliation pass over pending settlements."""
    reconciled: int
    remaining: int
