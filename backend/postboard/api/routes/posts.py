"""Post Routes: creation, reads, helper assignment, settlement and accounting.

Invariants:
    - Every mutating endpoint needs the caller token: in the JSON body, or the
      X-Token header for DELETE
    - Failures surface as PostboardError envelopes via the global handlers
"""

import logging

from fastapi import APIRouter, Depends, Header, Query, Response, status

from postboard.api.dependencies import get_lifecycle
from postboard.schemas.post import (
    AmountPayableResponse,
    JoinedPost,
    PostCreate,
    PostRead,
    PostUpdate,
    PostView,
    ReconcileResponse,
    TokenBody,
)
from postboard.services.post_lifecycle import PostLifecycle

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/posts", tags=["posts"])


@router.get("", response_model=None)
async def list_posts(
    requester_id: int | None = Query(None, ge=1),
    helper_id: int | None = Query(None, ge=0),
    with_tags: bool = Query(False),
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    """List posts newest first, with identities and optionally tags."""
    return await lifecycle.list_posts(requester_id, helper_id, with_tags)


@router.post(
    "", response_model=JoinedPost, status_code=status.HTTP_201_CREATED,
)
async def create_post(
    body: PostCreate, lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.create(
        body.body, body.point, [tag.body for tag in body.tags], body.token,
    )


@router.get("/amount/{user_id}", response_model=AmountPayableResponse)
async def get_amount_payable(
    user_id: int, lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    """Points the user can still spend: ledger total minus open bounties."""
    amount = await lifecycle.amount_payable(user_id)
    return AmountPayableResponse(user_id=user_id, amount_payable=amount)


@router.post("/settlements/reconcile", response_model=ReconcileResponse)
async def reconcile_settlements(
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    result = await lifecycle.reconcile_settlements()
    return ReconcileResponse(reconciled=result.reconciled, remaining=result.remaining)


@router.get("/{post_id}", response_model=JoinedPost)
async def get_post(
    post_id: int, lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.get(post_id)


@router.put("/{post_id}", response_model=PostRead)
async def update_post(
    post_id: int, body: PostUpdate,
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    return PostRead.model_validate(
        await lifecycle.update(post_id, body.body, body.token),
    )


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: int,
    token: str = Header(..., alias="X-Token", min_length=1),
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    await lifecycle.delete(post_id, token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{post_id}/assign", response_model=PostView)
async def assign_helper(
    post_id: int, body: TokenBody,
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    """Caller becomes the helper."""
    return await lifecycle.assign_helper(post_id, body.token)


@router.post("/{post_id}/unassign", response_model=PostView)
async def unassign_helper(
    post_id: int, body: TokenBody,
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.unassign_helper(post_id, body.token)


@router.post("/{post_id}/payment", response_model=PostView)
async def settle_payment(
    post_id: int, body: TokenBody,
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    """Move to payment and debit the requester's ledger account."""
    return await lifecycle.settle_payment(post_id, body.token)


@router.post("/{post_id}/acceptance", response_model=PostView)
async def settle_acceptance(
    post_id: int, body: TokenBody,
    lifecycle: PostLifecycle = Depends(get_lifecycle),
):
    """Move to acceptance and credit the helper's ledger account."""
    return await lifecycle.settle_acceptance(post_id, body.token)
