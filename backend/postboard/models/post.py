"""Post ORM: a help request with a point bounty and a lifecycle status.

Invariants:
    - point >= 0 (CHECK constraint), immutable after creation
    - requester_id is non-zero once the row exists
    - helper_id 0 means unassigned
    - status only moves forward: open -> payment -> acceptance
    - settlement_pending is set only while a ledger delta is unconfirmed
"""

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, Enum, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from postboard.core.domain_types import PostStatus, SettlementKind
from postboard.db.base import Base


def _values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Post(Base):
    """Post entity, the unit of work."""
    __tablename__ = "posts"
    __table_args__ = (
        CheckConstraint("point >= 0", name="ck_posts_point_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    requester_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    helper_id: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, index=True,
    )
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    point: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[PostStatus] = mapped_column(
        Enum(
            PostStatus, native_enum=False, length=20,
            values_callable=_values, validate_strings=True,
        ),
        nullable=False,
        default=PostStatus.OPEN,
    )
    settlement_pending: Mapped[SettlementKind | None] = mapped_column(
        Enum(
            SettlementKind, native_enum=False, length=20,
            values_callable=_values, validate_strings=True,
        ),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
