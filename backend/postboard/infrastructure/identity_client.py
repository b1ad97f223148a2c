"""Identity Client: resolves caller tokens and fetches the user directory.

Invariants:
    - HTTP 400/401/403/404 on token lookup -> AuthError; a missing or zero id is also AuthError
    - Transport failures and malformed payloads -> CollaboratorError
    - Directory entries without an integer id are rejected, never guessed
"""

import logging
from urllib.parse import quote

from postboard.core.domain_types import UNASSIGNED, UserId, UserIdentity
from postboard.core.errors import AuthError, CollaboratorError
from postboard.infrastructure.collaborator_http import ResilientHttpClient, decode_json

logger = logging.getLogger(__name__)

_AUTH_REJECTED = frozenset({400, 401, 403, 404})


class IdentityClient:
    """HTTP adapter for the identity service (IdentityDirectory protocol)."""

    def __init__(self, http: ResilientHttpClient):
        self.http = http

    async def resolve_token(self, token: str) -> UserId:
        if not token:
            raise AuthError("token missing")
        response = await self.http.request("GET", f"/auth/{quote(token, safe='')}")
        if response.status_code in _AUTH_REJECTED:
            raise AuthError("token invalid")
        if response.status_code >= 400:
            raise CollaboratorError(
                f"token lookup answered {response.status_code}", self.http.name,
            )
        payload = decode_json(response, self.http.name)
        user_id = payload.get("id") if isinstance(payload, dict) else None
        if isinstance(user_id, bool) or not isinstance(user_id, (int, float)):
            raise AuthError("identity service returned no user id")
        if int(user_id) == UNASSIGNED:
            raise AuthError("token resolved to no user")
        return UserId(int(user_id))

    async def list_all(self) -> list[UserIdentity]:
        response = await self.http.request("GET", "/users")
        if response.status_code >= 400:
            raise CollaboratorError(
                f"user directory answered {response.status_code}", self.http.name,
            )
        payload = decode_json(response, self.http.name)
        if not isinstance(payload, list):
            raise CollaboratorError("user directory is not a list", self.http.name)

        users = []
        for entry in payload:
            raw_id = entry.get("id") if isinstance(entry, dict) else None
            if isinstance(raw_id, bool) or not isinstance(raw_id, (int, float)):
                raise CollaboratorError("user id does not exist", self.http.name)
            name = entry.get("name")
            users.append(UserIdentity(
                id=int(raw_id), name=name if isinstance(name, str) else "",
            ))
        return users
