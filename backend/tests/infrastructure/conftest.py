"""Infrastructure test fixtures: collaborator clients over httpx.MockTransport."""

import httpx
import pytest

from postboard.infrastructure.collaborator_http import ResilientHttpClient

from tests.infrastructure.mock_transport import Recorder


@pytest.fixture
async def make_http():
    """Build ResilientHttpClients whose retries never sleep."""
    clients = []

    def _make(recorder: Recorder, name: str = "ledger", max_retries: int = 3):
        http = ResilientHttpClient(
            name, "http://collaborator.test/",
            max_retries=max_retries, base_delay_ms=0, max_delay_ms=0,
            transport=httpx.MockTransport(recorder),
        )
        clients.append(http)
        return http

    yield _make
    for http in clients:
        await http.aclose()
