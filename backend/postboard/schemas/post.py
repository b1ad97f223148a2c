"""Post Schemas: Pydantic models for post requests and the enriched post views.

Invariants:
    - PostCreate never carries requester_id; the requester always comes from the token
    - Read models are snapshots built from ORM rows (from_attributes)
    - An unknown user renders as UserRead(id=0, name="")
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from postboard.core.domain_types import PostStatus, SettlementKind


class TagIn(BaseModel):
    """Tag reference in a create request; only the body is used."""
    body: str = Field(min_length=1, max_length=255)


class PostCreate(BaseModel):
    """Post creation with optional tags and the caller's token."""
    body: str = Field(max_length=10_000)
    point: int = Field(ge=0)
    tags: list[TagIn] = Field(default_factory=list)
    token: str = Field(min_length=1)


class PostUpdate(BaseModel):
    """Body replacement; the caller token is required like every other write."""
    body: str = Field(max_length=10_000)
    token: str = Field(min_length=1)


class TokenBody(BaseModel):
    """Caller token for helper and settlement actions."""
    token: str = Field(min_length=1)


class PostRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    requester_id: int
    helper_id: int
    body: str
    point: int
    status: PostStatus
    settlement_pending: SettlementKind | None = None
    created_at: datetime
    updated_at: datetime


class TagRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    body: str


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class PostView(BaseModel):
    """Post decorated with requester and helper identities."""
    post: PostRead
    user: UserRead
    helper_user: UserRead


class PostWithTags(BaseModel):
    """Post decorated with its tags, in store iteration order."""
    post: PostRead
    tags: list[TagRead]


class JoinedPost(BaseModel):
    """Post decorated with identities and tags."""
    post: PostRead
    tags: list[TagRead]
    user: UserRead
    helper_user: UserRead


class AmountPayableResponse(BaseModel):
    user_id: int
    amount_payable: int


class ReconcileResponse(BaseModel):
    reconciled: int
    remaining: int
