"""PostTag ORM: many-to-many link between posts and tags.

Invariants:
    - (post_id, tag_id) is the primary key, so a pair is linked at most once
    - Deleting a post or a tag removes its links (ON DELETE CASCADE)
"""

from sqlalchemy import ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from postboard.db.base import Base


class PostTag(Base):
    __tablename__ = "post_tags"

    post_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True,
    )
    tag_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True,
        index=True,
    )
