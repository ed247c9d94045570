"""Capability gateway base: uniform invoke contract with mock fallback.

Every external dependency is reached through a CapabilityGateway. A gateway
decides once, at construction, whether it is configured. After that:

- unconfigured: ``invoke`` never touches the network and returns a
  deterministic mocked value built from the request alone
- configured: the real call runs under a bounded httpx timeout; transient
  failures (timeout, connect error, 5xx) are retried once, then the gateway
  falls back to the same mock synthesis
- quota/billing failure: the gateway's QuotaBreaker opens and every later
  call short-circuits to the mock until ``reset_quota()``

Errors raised by ``_call`` never escape ``invoke``; they are logged and
recorded on the mocked CapabilityResult's ``error`` field.

Usage:
    gateway = ModerationGateway(api_key=settings.openai_api_key)
    result = await gateway.invoke(ModerationRequest(text="..."))
    if result.is_mocked:
        ...
"""

import hashlib
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from proof_pipeline.config.logging import get_logger
from proof_pipeline.data_management.schemas.capability_schema import (
    CapabilityResult,
    Origin,
)
from proof_pipeline.gateways.rate_limiter import RateLimiter

RequestT = TypeVar("RequestT")
OutputT = TypeVar("OutputT", bound=BaseModel)

QUOTA_MARKERS = ("insufficient_quota", "quota", "billing")


class GatewayError(Exception):
    """Base for failures raised inside a gateway's real call."""


class TransientGatewayError(GatewayError):
    """Timeout, connection failure or 5xx. Retried once."""


class QuotaExceededError(GatewayError):
    """Definitive rate-limit or billing failure. Opens the breaker."""


class GatewayResponseError(GatewayError):
    """Non-retryable provider error or malformed response body."""


class QuotaBreaker:
    """Process-wide quota flag for one provider account.

    Shared by every gateway billed against the same account and read from
    concurrent runs, so all access goes through a lock.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._open = False
        self._reason: Optional[str] = None
        self._tripped_at: Optional[float] = None
        self._lock = threading.Lock()
        self._logger = get_logger(f"breaker.{name}")

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._open

    @property
    def reason(self) -> Optional[str]:
        with self._lock:
            return self._reason

    def trip(self, reason: str) -> None:
        with self._lock:
            if self._open:
                return
            self._open = True
            self._reason = reason
            self._tripped_at = time.time()
        self._logger.warning(f"Quota exceeded for {self.name}, switching to mock mode: {reason}")

    def reset(self) -> None:
        with self._lock:
            was_open = self._open
            self._open = False
            self._reason = None
            self._tripped_at = None
        if was_open:
            self._logger.info(f"Quota status reset for {self.name}")


class CapabilityGateway(ABC, Generic[RequestT, OutputT]):
    """Adapter exposing one external capability through ``invoke``.

    Subclasses implement ``_configured`` (credentials present?), ``_call``
    (the real provider call, raising GatewayError subclasses) and ``_mock``
    (deterministic synthesis from the request).
    """

    name: str = "capability"
    endpoint: Optional[str] = None

    def __init__(
        self,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        quota_breaker: Optional[QuotaBreaker] = None,
        rate_limiter: Optional[RateLimiter] = None,
        max_attempts: int = 2,
        backoff_seconds: float = 0.5,
    ) -> None:
        """
        Args:
            timeout: Seconds allowed for each HTTP request.
            transport: Optional httpx transport (tests inject MockTransport).
            quota_breaker: Breaker to share with gateways on the same account.
            rate_limiter: Optional token bucket limiter; throttled calls are mocked.
            max_attempts: Total attempts for transient failures.
            backoff_seconds: Base for exponential backoff between attempts.
        """
        self._timeout = timeout
        self._transport = transport
        self._breaker = quota_breaker or QuotaBreaker(self.name)
        self._rate_limiter = rate_limiter
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._logger = get_logger(f"gateway.{self.name}")
        self._available = self._configured()

        if not self._available:
            self._logger.info(f"{self.name} not configured, using mock mode")

    @abstractmethod
    def _configured(self) -> bool:
        """Whether credentials/endpoints needed for real calls are present."""

    @abstractmethod
    async def _call(self, request: RequestT) -> OutputT:
        """Perform the real provider call."""

    @abstractmethod
    def _mock(self, request: RequestT) -> OutputT:
        """Deterministic, schema-valid output derived only from ``request``."""

    def is_available(self) -> bool:
        return self._available

    @property
    def quota_exceeded(self) -> bool:
        return self._breaker.is_open

    @property
    def quota_breaker(self) -> QuotaBreaker:
        return self._breaker

    def reset_quota(self) -> None:
        self._breaker.reset()

    def status(self) -> dict[str, Any]:
        """Snapshot for diagnostics and the CLI status table."""
        return {
            "capability": self.name,
            "configured": self._available,
            "quota_exceeded": self._breaker.is_open,
            "endpoint": self.endpoint,
        }

    async def invoke(self, request: RequestT) -> CapabilityResult[OutputT]:
        """Return the real result, or a mocked one. Never raises for provider failures."""
        if not self._available:
            return self._mocked(request, "not configured")

        if self._breaker.is_open:
            return self._mocked(request, "quota exceeded")

        if self._rate_limiter and not self._rate_limiter.can_proceed(1):
            self._logger.warning(f"{self.name} rate limited, using mock")
            return self._mocked(request, "rate limited")

        try:
            value = await self._call_with_retry(request)
        except QuotaExceededError as e:
            self._breaker.trip(str(e))
            return self._mocked(request, f"quota exceeded: {e}")
        except GatewayError as e:
            self._logger.warning(f"{self.name} call failed, using mock: {e}")
            return self._mocked(request, str(e))
        except (ValidationError, KeyError, IndexError, TypeError, ValueError) as e:
            self._logger.warning(f"{self.name} returned a malformed response, using mock: {e}")
            return self._mocked(request, f"malformed response: {e}")

        return CapabilityResult(capability=self.name, value=value, origin=Origin.REAL)

    async def _call_with_retry(self, request: RequestT) -> OutputT:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff_seconds, max=4),
            retry=retry_if_exception_type(TransientGatewayError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    self._logger.debug(f"Retrying {self.name} call")
                return await self._call(request)
        raise GatewayError(f"{self.name} exhausted retries")

    def _mocked(self, request: RequestT, reason: str) -> CapabilityResult[OutputT]:
        self._logger.debug(f"{self.name} mocked: {reason}")
        return CapabilityResult(
            capability=self.name,
            value=self._mock(request),
            origin=Origin.MOCKED,
            error=reason,
        )

    # ── HTTP helpers ──────────────────────────────────────────────────────

    def _client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            **kwargs,
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send one request and classify failures into GatewayError subclasses.

        The client is closed before returning on every path, including
        cancellation.
        """
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientGatewayError(f"timeout calling {url}") from e
        except httpx.TransportError as e:
            raise TransientGatewayError(f"transport error calling {url}: {e}") from e

        self._raise_for_status(response)
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        body = response.text[:500]
        if status in (402, 429) or any(marker in body.lower() for marker in QUOTA_MARKERS):
            raise QuotaExceededError(f"HTTP {status}: {body}")
        if status >= 500:
            raise TransientGatewayError(f"HTTP {status}: {body}")
        raise GatewayResponseError(f"HTTP {status}: {body}")

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise GatewayResponseError(f"response is not JSON: {e}") from e


def stable_number(seed: str, modulo: int) -> int:
    """Deterministic integer in ``[0, modulo)`` derived from ``seed``.

    Mocks use this instead of ``random`` so identical requests always
    produce identical outputs.
    """
    digest = hashlib.sha256(seed.encode("utf-8")).hexdigest()
    return int(digest[:12], 16) % modulo
