"""
Client for the downstream optimization engine.

Wraps a single logical call in bounded retries with capped exponential
backoff, all under one overall deadline. Failures come back as a
``DownstreamUnavailable`` value on the result rather than being raised, so
the pipeline can decide how to degrade.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from routeoptimizer.config.settings import EngineSettings
from routeoptimizer.core.exceptions import DownstreamUnavailable
from routeoptimizer.core.logging import get_logger

logger = get_logger("routeoptimizer.engine")

RETRYABLE_STATUS_CODES = frozenset({408, 425, 429})

SleepFn = Callable[[float], Awaitable[Any]]


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Wait before the attempt after ``attempt`` (1-based)."""
    return min(base_delay * 2 ** (attempt - 1), max_delay)


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES or 500 <= status_code < 600


@dataclass
class EngineCallResult:
    """Outcome of ``EngineClient.call``: exactly one of payload/error is set."""
    payload: dict[str, Any] | None = None
    error: DownstreamUnavailable | None = None
    attempts: int = 0
    delays: list[float] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


class EngineClient:
    """Backoff-retry HTTP client for the route-processing engine."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: EngineSettings,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._client = client
        self.settings = settings
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "EngineClient":
        client = httpx.AsyncClient(
            base_url=settings.url,
            timeout=httpx.Timeout(settings.request_timeout_seconds),
            transport=transport,
        )
        return cls(client, settings)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def call(
        self,
        payload: dict[str, Any],
        *,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
        overall_timeout: float | None = None,
    ) -> EngineCallResult:
        """
        POST ``payload`` to the engine.

        Args:
            payload: JSON-serializable request body
            max_attempts: Total requests allowed, including the first
            base_delay: Backoff before the second attempt, in seconds
            max_delay: Cap on any single backoff wait
            overall_timeout: Deadline for all attempts and waits together

        Returns:
            EngineCallResult with the decoded JSON object or a
            DownstreamUnavailable error. Task cancellation is not caught.
        """
        max_attempts = max_attempts or self.settings.max_attempts
        base_delay = self.settings.base_delay_seconds if base_delay is None else base_delay
        max_delay = self.settings.max_delay_seconds if max_delay is None else max_delay
        overall_timeout = overall_timeout or self.settings.overall_timeout_seconds

        outcome = EngineCallResult()
        try:
            await asyncio.wait_for(
                self._attempt_all(payload, outcome, max_attempts, base_delay, max_delay),
                timeout=overall_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Engine call timed out",
                attempts=outcome.attempts,
                overall_timeout=overall_timeout,
            )
            outcome.payload = None
            outcome.error = DownstreamUnavailable(
                f"Engine did not answer within {overall_timeout}s",
                attempts=outcome.attempts,
                timed_out=True,
            )
        return outcome

    async def _attempt_all(
        self,
        payload: dict[str, Any],
        outcome: EngineCallResult,
        max_attempts: int,
        base_delay: float,
        max_delay: float,
    ) -> None:
        last_reason = "no attempt made"
        last_status: int | None = None

        for attempt in range(1, max_attempts + 1):
            outcome.attempts = attempt
            try:
                response = await self._client.post(self.settings.path, json=payload)
            except httpx.TransportError as exc:
                last_reason = f"{type(exc).__name__}: {exc}"
                last_status = None
            else:
                if response.is_success:
                    try:
                        body = response.json()
                    except json.JSONDecodeError:
                        outcome.error = DownstreamUnavailable(
                            "Engine returned a non-JSON body",
                            attempts=attempt,
                            last_status=response.status_code,
                        )
                        return
                    outcome.payload = body if isinstance(body, dict) else {"result": body}
                    return

                last_status = response.status_code
                last_reason = f"HTTP {response.status_code}"
                if not is_retryable_status(response.status_code):
                    outcome.error = DownstreamUnavailable(
                        f"Engine rejected the request: {last_reason}",
                        attempts=attempt,
                        last_status=last_status,
                    )
                    return

            if attempt < max_attempts:
                delay = backoff_delay(attempt, base_delay, max_delay)
                logger.warning(
                    "Retrying engine call",
                    attempt=attempt,
                    next_attempt=attempt + 1,
                    delay=delay,
                    reason=last_reason,
                )
                outcome.delays.append(delay)
                await self._sleep(delay)

        outcome.error = DownstreamUnavailable(
            f"Engine unavailable after {max_attempts} attempts ({last_reason})",
            attempts=max_attempts,
            last_status=last_status,
        )
