"""
Retry policy: jittered exponential backoff and retryability classification.

    delay_for(n) = max(0, base + jitter)
        base   = initial_delay * backoff_factor ** n
        jitter = uniform(-jitter_factor, +jitter_factor) * base

Classification:
    5xx, 429                        -> retry
    410                             -> stop (challenge expired)
    other 4xx                       -> stop
    DNS / refused / timeout / reset -> retry
    TLS, certificate, CORS          -> stop
    user cancellation               -> stop
"""

from __future__ import annotations

import asyncio
import random
import ssl
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

import httpx

from humanmark.protocol.enums import NetworkErrorCategory, RetryDecision
from humanmark.protocol.errors import (
    HumanmarkApiError,
    HumanmarkCancelledError,
    HumanmarkError,
    HumanmarkNetworkError,
    is_retryable_status,
)
from humanmark.utils.timestamps import monotonic

from .settings import HumanmarkSettings

_TEMPORARY_SIGNATURES = (
    "failed to fetch",
    "network request failed",
    "err_network",
    "err_internet_disconnected",
    "econnrefused",
    "connection refused",
    "etimedout",
    "timed out",
    "enotfound",
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "connection reset",
)

# case-sensitive, so "ssl" inside a module path such as "_ssl.c" does not match
_PERMANENT_SIGNATURES = (
    "ERR_CERT",
    "CERTIFICATE_VERIFY_FAILED",
    "certificate verify failed",
    "SSL",
    "TLS",
    "CORS",
)


def categorize_network_error(exc: BaseException) -> NetworkErrorCategory:
    """
    Sort a transport-level failure into temporary / permanent / unknown.

    Order matters: timeouts of any kind (a TLS handshake timeout included)
    and temporary message signatures win over the permanent TLS / certificate /
    CORS signatures; a connect error that is neither is temporary.
    """
    if isinstance(exc, HumanmarkNetworkError):
        return exc.category
    if isinstance(exc, (HumanmarkCancelledError, asyncio.CancelledError)):
        return NetworkErrorCategory.PERMANENT
    if isinstance(exc, (httpx.TimeoutException, TimeoutError, asyncio.TimeoutError)):
        return NetworkErrorCategory.TEMPORARY
    if isinstance(exc, (ssl.SSLError, ssl.CertificateError)):
        return NetworkErrorCategory.PERMANENT

    message = str(exc)
    lowered = message.lower()
    if any(sig in lowered for sig in _TEMPORARY_SIGNATURES):
        return NetworkErrorCategory.TEMPORARY
    if any(sig in message for sig in _PERMANENT_SIGNATURES):
        return NetworkErrorCategory.PERMANENT
    if isinstance(exc, (httpx.NetworkError, httpx.RemoteProtocolError, ConnectionError)):
        return NetworkErrorCategory.TEMPORARY
    return NetworkErrorCategory.UNKNOWN


@dataclass
class RetryPolicy:
    initial_delay: float = 1.0
    backoff_factor: float = 2.0
    jitter_factor: float = 0.1
    max_attempts: int = 20
    random_fn: Callable[[], float] = field(default=random.random, repr=False)

    @classmethod
    def from_settings(cls, settings: HumanmarkSettings) -> "RetryPolicy":
        return cls(
            initial_delay=settings.initial_delay,
            backoff_factor=settings.backoff_factor,
            jitter_factor=settings.jitter_factor,
            max_attempts=settings.max_retries,
        )

    # ------------------------------------------------------------------
    def base_delay(self, attempt_index: int) -> float:
        return self.initial_delay * (self.backoff_factor ** attempt_index)

    def delay_for(self, attempt_index: int) -> float:
        """Seconds to wait before the retry following failed attempt `attempt_index`."""
        if attempt_index < 0:
            raise ValueError("attempt_index must be >= 0")
        base = self.base_delay(attempt_index)
        jitter = base * self.jitter_factor * (self.random_fn() * 2 - 1)
        return max(0.0, base + jitter)

    def classify(self, outcome: Union[int, BaseException]) -> RetryDecision:
        if isinstance(outcome, bool):
            raise TypeError("classify() expects a status code or an exception")
        if isinstance(outcome, int):
            return RetryDecision.RETRY if is_retryable_status(outcome) else RetryDecision.STOP

        if isinstance(outcome, HumanmarkApiError):
            return RetryDecision.RETRY if outcome.retryable else RetryDecision.STOP
        if isinstance(outcome, HumanmarkNetworkError):
            return RetryDecision.RETRY if outcome.is_temporary else RetryDecision.STOP
        if isinstance(outcome, HumanmarkError):
            # config, challenge, verification, cancellation
            return RetryDecision.STOP

        if categorize_network_error(outcome) == NetworkErrorCategory.TEMPORARY:
            return RetryDecision.RETRY
        return RetryDecision.STOP

    def should_continue(
        self,
        attempt_index: int,
        started_at: float,
        total_budget: float,
        *,
        max_attempts: Optional[int] = None,
        now: Optional[float] = None,
    ) -> bool:
        limit = self.max_attempts if max_attempts is None else max_attempts
        if attempt_index >= limit:
            return False
        current = monotonic() if now is None else now
        return current - started_at < total_budget
