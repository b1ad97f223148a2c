"""Resilient Collaborator HTTP Client: wraps httpx.AsyncClient with timeout, retry, backoff, and error mapping.

Invariants:
    - Every call has a bounded timeout (collaborator_timeout_seconds)
    - Transient errors (connection, timeout, 5xx): max_retries retries with exponential backoff
    - Non-idempotent calls retry only when the request never left (connect errors)
    - 4xx responses are returned to the caller untouched; it decides auth vs. bad request
    - All exhausted or unexpected transport failures mapped to CollaboratorError (core/errors.py)

Design Decisions:
    - ±25% jitter on backoff: concurrent callers do not retry in lockstep
    - 429 honours Retry-After when present
"""

import asyncio
import logging
import random

import httpx

from postboard.core.errors import CollaboratorError, ErrorContext

logger = logging.getLogger(__name__)

_RATE_LIMITED = 429


class ResilientHttpClient:
    """One collaborator's HTTP client with retry logic, timeouts, and error mapping."""

    def __init__(
        self,
        name: str,
        base_url: str,
        max_retries: int = 3,
        base_delay_ms: int = 200,
        max_delay_ms: int = 5_000,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.name = name
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
        )
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: object | None = None,
        idempotent: bool = True,
        context: ErrorContext | None = None,
    ) -> httpx.Response:
        """Send a request, retrying transient failures. Returns any non-5xx response."""
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(method, path, json=json)
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                await self._handle_transient_error(e, attempt, context)
                continue
            except (httpx.TimeoutException, httpx.TransportError) as e:
                if not idempotent:
                    raise CollaboratorError(
                        f"{method} {path} outcome unknown: {e}",
                        self.name, context=context,
                    )
                await self._handle_transient_error(e, attempt, context)
                continue

            if response.status_code == _RATE_LIMITED:
                await self._handle_rate_limit(response, attempt, context)
                continue
            if response.status_code >= 500:
                if not idempotent:
                    raise CollaboratorError(
                        f"{method} {path} answered {response.status_code}",
                        self.name, context=context,
                    )
                await self._handle_transient_error(
                    httpx.HTTPStatusError(
                        f"server error {response.status_code}",
                        request=response.request, response=response,
                    ),
                    attempt, context,
                )
                continue

            self._log_success(method, path, response, attempt)
            return response

        raise CollaboratorError(
            f"{method} {path} failed after {self.max_retries} retries",
            self.name, context=context,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    def _log_success(
        self, method: str, path: str, response: httpx.Response, attempt: int,
    ) -> None:
        logger.info(
            f"{self.name} {method} {path} -> {response.status_code}",
            extra={
                "collaborator": self.name,
                "attempt": attempt + 1,
                "status_code": response.status_code,
            },
        )

    async def _handle_rate_limit(
        self, response: httpx.Response, attempt: int, context: ErrorContext | None,
    ) -> None:
        """Handle 429 with retry or raise."""
        retry_after_ms = self._extract_retry_after(response)
        if attempt >= self.max_retries:
            raise CollaboratorError(
                "rate limit exceeded after retries",
                self.name,
                retry_after_ms=retry_after_ms,
                context=context,
            )
        delay = retry_after_ms or self._backoff(attempt)
        logger.warning(
            f"{self.name} rate limited, retry after {delay}ms (attempt {attempt + 1})",
            extra={"collaborator": self.name, "attempt": attempt + 1},
        )
        await asyncio.sleep(delay / 1000)

    async def _handle_transient_error(
        self, e: Exception, attempt: int, context: ErrorContext | None,
    ) -> None:
        """Handle transient errors with retry or raise."""
        if attempt >= self.max_retries:
            raise CollaboratorError(
                f"transient failure after {self.max_retries} retries: {e}",
                self.name,
                context=context,
            )
        delay = self._backoff(attempt)
        logger.warning(
            f"{self.name} transient error, retry after {delay}ms: {e}",
            extra={"collaborator": self.name, "attempt": attempt + 1},
        )
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    def _extract_retry_after(self, response: httpx.Response) -> int | None:
        """Extract Retry-After header (returns milliseconds)."""
        val = response.headers.get("retry-after")
        if val and val.isdigit():
            return int(val) * 1000
        return None


def decode_json(response: httpx.Response, collaborator: str) -> object:
    """Parse a collaborator body, mapping garbage to CollaboratorError."""
    try:
        return response.json()
    except ValueError as e:
        raise CollaboratorError(
            f"malformed response body: {e}", collaborator,
        )
