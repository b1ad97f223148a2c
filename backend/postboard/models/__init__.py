"""ORM Models: SQLAlchemy declarative models for posts, tags and their association.

Invariants:
    - All models inherit from Base (db/base.py)
    - All models imported here so Base.metadata is complete before create_all
"""

from postboard.models.post import Post  # noqa: F401
from postboard.models.tag import Tag  # noqa: F401
from postboard.models.post_tag import PostTag  # noqa: F401
