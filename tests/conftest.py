"""
Shared fixtures: token factory, fake clock and a mocked HTTP stack.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Callable, List, Optional

import httpx
import pytest

from humanmark.core.cancellation import CancellationToken
from humanmark.core.client import ApiClient
from humanmark.core.retry import RetryPolicy
from humanmark.core.settings import HumanmarkSettings
from humanmark.protocol.challenge_token import encode_challenge_token
from humanmark.protocol.models import ChallengeClaims
from humanmark.transport.http import HTTPTransport

BASE_URL = "https://humanmark.test"
REGION = "us-east-1"
CHALLENGE_ID = "ch_123"


def make_token(
    *,
    region: str = REGION,
    challenge_id: str = CHALLENGE_ID,
    expires_in: int = 300,
    domain: Optional[str] = None,
) -> str:
    now = int(time.time())
    claims = ChallengeClaims(
        region=region,
        challenge_id=challenge_id,
        expires_at=now + expires_in,
        issued_at=now,
        domain=domain,
    )
    return encode_challenge_token(claims)


class FakeClock:
    """
    Monotonic clock that only moves when something sleeps on it.

    Passed to ApiClient as both `clock` and `sleep`, so backoff is
    instantaneous in tests and every requested delay is recorded.
    """

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, delay: float, token: Optional[CancellationToken] = None) -> None:
        if token is not None:
            token.raise_if_cancelled()
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


class Recorder:
    """MockTransport handler wrapper that keeps every request it saw."""

    def __init__(self, handler: Callable) -> None:
        self._handler = handler
        self.requests: List[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        result = self._handler(request)
        if asyncio.iscoroutine(result):
            result = await result
        return result

    @property
    def calls(self) -> int:
        return len(self.requests)

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]


def json_response(status: int, body: Optional[dict] = None) -> httpx.Response:
    if body is None:
        return httpx.Response(status)
    return httpx.Response(status, content=json.dumps(body).encode("utf-8"),
                          headers={"Content-Type": "application/json"})


async def hang_forever(request: httpx.Request) -> httpx.Response:
    await asyncio.Event().wait()
    raise AssertionError("unreachable")


def make_settings(**overrides) -> HumanmarkSettings:
    values = dict(
        base_url=BASE_URL,
        wait_timeout=60.0,
        create_timeout=30.0,
        request_timeout=5.0,
        initial_delay=1.0,
        backoff_factor=2.0,
        jitter_factor=0.1,
        max_retries=20,
        success_display=0.0,
    )
    values.update(overrides)
    return HumanmarkSettings(**values)


def make_client(
    recorder: Recorder,
    clock: FakeClock,
    *,
    is_online: Callable[[], bool] = lambda: True,
    max_attempts: Optional[int] = None,
    **settings_overrides,
) -> ApiClient:
    settings = make_settings(**settings_overrides)
    policy = RetryPolicy.from_settings(settings)
    # no jitter: delays are exactly initial_delay * backoff_factor ** n
    policy.random_fn = lambda: 0.5
    if max_attempts is not None:
        policy.max_attempts = max_attempts
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return ApiClient(
        settings=settings,
        policy=policy,
        transport=HTTPTransport(http_client),
        clock=clock,
        sleep=clock.sleep,
        is_online=is_online,
    )


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token() -> str:
    return make_token()
