"""Route Dependencies: builds the lifecycle engine for one request.

Invariants:
    - One PostLifecycle per request, bound to that request's AsyncSession
    - Reconciliation replays deltas with the configured ledger service token
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.config import Settings, get_settings
from postboard.infrastructure.collaborators import get_identity_client, get_ledger_client
from postboard.infrastructure.database import get_db
from postboard.services.post_lifecycle import PostLifecycle


def get_lifecycle(
    db: AsyncSession = Depends(get_db),
    identity=Depends(get_identity_client),
    ledger=Depends(get_ledger_client),
    settings: Settings = Depends(get_settings),
) -> PostLifecycle:
    return PostLifecycle(
        db, identity, ledger, service_token=settings.ledger_service_token,
    )
