"""Boundary Protocols: contracts between the lifecycle core and its external collaborators.

Invariants:
    - Core NEVER imports infrastructure modules; implementations are injected
    - resolve_token raises AuthError for a rejected token, CollaboratorError for an unreachable service
    - post_delta amounts are signed: negative debits, positive credits

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
"""

from typing import Protocol

from postboard.core.domain_types import UserId, UserIdentity


class IdentityDirectory(Protocol):
    """Contract for the external identity service."""
    async def resolve_token(self, token: str) -> UserId: ...
    async def list_all(self) -> list[UserIdentity]: ...


class PointLedger(Protocol):
    """Contract for the external point ledger."""
    async def post_delta(
        self, user_id: UserId, amount: int, comment: str,
        token: str | None = None,
    ) -> None: ...
    async def total_for(self, user_id: UserId) -> int: ...
