"""Collaborator Registry: process-wide identity and ledger clients for FastAPI dependencies.

Invariants:
    - Clients are created once on startup (init_collaborators) and closed on shutdown
    - Routes receive them via get_identity_client / get_ledger_client, tests override those
"""

import logging

from postboard.config import Settings
from postboard.infrastructure.collaborator_http import ResilientHttpClient
from postboard.infrastructure.identity_client import IdentityClient
from postboard.infrastructure.ledger_client import LedgerClient

logger = logging.getLogger(__name__)

identity_client: IdentityClient | None = None
ledger_client: LedgerClient | None = None


def _http(name: str, base_url: str, settings: Settings) -> ResilientHttpClient:
    return ResilientHttpClient(
        name,
        base_url,
        max_retries=settings.collaborator_max_retries,
        base_delay_ms=settings.collaborator_base_delay_ms,
        max_delay_ms=settings.collaborator_max_delay_ms,
        timeout_seconds=settings.collaborator_timeout_seconds,
    )


def init_collaborators(settings: Settings) -> None:
    global identity_client, ledger_client
    identity_client = IdentityClient(_http("identity", settings.identity_url, settings))
    ledger_client = LedgerClient(_http("ledger", settings.ledger_url, settings))
    logger.info(
        f"Collaborators configured: identity={settings.identity_url} ledger={settings.ledger_url}",
    )


async def close_collaborators() -> None:
    global identity_client, ledger_client
    for client in (identity_client, ledger_client):
        if client is not None:
            await client.http.aclose()
    identity_client = None
    ledger_client = None


def get_identity_client() -> IdentityClient:
    """FastAPI dependency for the identity service."""
    if identity_client is None:
        raise RuntimeError("Collaborators not initialized")
    return identity_client


def get_ledger_client() -> LedgerClient:
    """FastAPI dependency for the point ledger."""
    if ledger_client is None:
        raise RuntimeError("Collaborators not initialized")
    return ledger_client
