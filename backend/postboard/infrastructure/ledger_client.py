"""Ledger Client: posts signed point deltas and reads credited totals.

Invariants:
    - post_delta is non-idempotent: only retried when the request never left
    - HTTP 400/401/403 -> AuthError; other failures -> CollaboratorError
"""

import logging

from postboard.core.domain_types import UserId
from postboard.core.errors import AuthError, CollaboratorError, ErrorContext
from postboard.infrastructure.collaborator_http import ResilientHttpClient, decode_json

logger = logging.getLogger(__name__)

_AUTH_REJECTED = frozenset({400, 401, 403})


class LedgerClient:
    """HTTP adapter for the point ledger (PointLedger protocol)."""

    def __init__(self, http: ResilientHttpClient):
        self.http = http

    async def post_delta(
        self, user_id: UserId, amount: int, comment: str,
        token: str | None = None,
    ) -> None:
        payload = {
            "user_id": user_id,
            "number": amount,
            "comment": comment,
            "token": token,
        }
        response = await self.http.request(
            "POST", "/points", json=payload, idempotent=False,
            context=ErrorContext(user_id=user_id),
        )
        if response.status_code in _AUTH_REJECTED:
            raise AuthError("ledger rejected the token")
        if response.status_code >= 400:
            raise CollaboratorError(
                f"point delta answered {response.status_code}", self.http.name,
            )
        logger.info(
            "Ledger delta recorded",
            extra={"user_id": user_id, "amount": amount},
        )

    async def total_for(self, user_id: UserId) -> int:
        response = await self.http.request("GET", f"/sum/{user_id}")
        if response.status_code >= 400:
            raise CollaboratorError(
                f"point total answered {response.status_code}", self.http.name,
            )
        payload = decode_json(response, self.http.name)
        total = payload.get("total") if isinstance(payload, dict) else None
        if isinstance(total, bool) or not isinstance(total, (int, float)):
            raise CollaboratorError("point total missing", self.http.name)
        return int(total)
