from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import httpx

from humanmark.protocol.challenge_token import (
    construct_shard_url,
    decode_challenge_token,
    endpoint_url,
)
from humanmark.protocol.enums import ErrorCode, NetworkErrorCategory, RetryDecision
from humanmark.protocol.errors import (
    HumanmarkError,
    HumanmarkNetworkError,
    api_error_from_status,
    network_error_from,
    timeout_error,
)
from humanmark.protocol.models import (
    API_KEY_HEADER,
    API_SECRET_HEADER,
    CREATE_CHALLENGE_PATH,
    WAIT_CHALLENGE_PATH,
    CreateChallengeRequest,
    CreateChallengeResponse,
    RetryState,
    WaitResponse,
)
from humanmark.transport.http import HTTPTransport, parse_json_body
from humanmark.utils.timestamps import monotonic

from .cancellation import CancellationToken, cancellable_sleep
from .retry import RetryPolicy, categorize_network_error
from .settings import HumanmarkSettings, get_settings

logger = logging.getLogger("humanmark.client")

SleepFn = Callable[[float, Optional[CancellationToken]], Awaitable[None]]

# returned by a response handler when the long-poll should be re-issued at once
_REPOLL = object()


class ApiClient:
    """
    Request engine for the Humanmark API.

    Two operations share one retry skeleton:

      - create_challenge: POST {base}/api/v1/challenge/create
      - wait_for_receipt: GET  {region}.{base}/api/v1/challenge/wait/{challenge}

    Each operation runs under a total budget; each attempt under
    min(remaining budget, per-attempt ceiling). Transient failures are
    retried with jittered exponential backoff. Only terminal conditions
    reach the caller, always as a HumanmarkError.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        settings: Optional[HumanmarkSettings] = None,
        policy: Optional[RetryPolicy] = None,
        transport: Optional[HTTPTransport] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = monotonic,
        sleep: SleepFn = cancellable_sleep,
        is_online: Callable[[], bool] = lambda: True,
    ) -> None:
        self._settings = settings or get_settings()
        self._base_url = (base_url or self._settings.base_url).rstrip("/")
        self._policy = policy or RetryPolicy.from_settings(self._settings)
        self._transport = transport or HTTPTransport(http_client)
        self._clock = clock
        self._sleep = sleep
        self._is_online = is_online
        self._active: Set[CancellationToken] = set()

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self.cancel_pending_requests()
        await self._transport.aclose()

    def cancel_pending_requests(self) -> None:
        """Abort every operation currently in flight on this client."""
        active, self._active = self._active, set()
        for token in active:
            token.cancel()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def create_challenge(
        self,
        request: CreateChallengeRequest,
        headers: Dict[str, str],
        *,
        cancel: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Create a challenge and return its token."""
        url = endpoint_url(self._base_url, CREATE_CHALLENGE_PATH)
        send_headers = {
            "Content-Type": "application/json",
            API_KEY_HEADER: headers[API_KEY_HEADER],
            API_SECRET_HEADER: headers[API_SECRET_HEADER],
        }

        def handle(response: httpx.Response) -> Any:
            if response.is_success:
                created = CreateChallengeResponse.from_dict(parse_json_body(response))
                if not created.token:
                    raise HumanmarkNetworkError(
                        "Create response carried no token",
                        ErrorCode.INVALID_RESPONSE,
                        category=NetworkErrorCategory.PERMANENT,
                        status_code=response.status_code,
                    )
                return created.token
            raise api_error_from_status(response.status_code, response.reason_phrase)

        return await self._run(
            "create_challenge",
            "POST",
            url,
            send_headers,
            request.to_dict(),
            handle,
            total_timeout=timeout or self._settings.create_timeout,
            cancel=cancel,
        )

    async def wait_for_receipt(
        self,
        token: str,
        headers: Dict[str, str],
        *,
        cancel: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> WaitResponse:
        """
        Long-poll until the challenge is completed.

        408 is the server's normal "nothing yet" answer: the poll is re-issued
        immediately and the retry streak resets. 410 means the challenge
        expired server-side and is terminal.
        """
        claims = decode_challenge_token(token)
        shard_url = construct_shard_url(self._base_url, claims.region)
        url = endpoint_url(shard_url, f"{WAIT_CHALLENGE_PATH}/{claims.challenge_id}")
        send_headers = {API_KEY_HEADER: headers[API_KEY_HEADER]}

        def handle(response: httpx.Response) -> Any:
            if response.status_code == 408:
                return _REPOLL
            if response.is_success:
                return WaitResponse.from_dict(parse_json_body(response))
            raise api_error_from_status(response.status_code, response.reason_phrase)

        logger.debug(
            "Waiting on challenge %s in region %s", claims.challenge_id, claims.region
        )
        return await self._run(
            "wait_for_receipt",
            "GET",
            url,
            send_headers,
            None,
            handle,
            total_timeout=timeout or self._settings.wait_timeout,
            cancel=cancel,
        )

    # ------------------------------------------------------------------
    # Retry skeleton
    # ------------------------------------------------------------------
    async def _run(
        self,
        operation: str,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[Dict[str, Any]],
        handle: Callable[[httpx.Response], Any],
        *,
        total_timeout: float,
        cancel: Optional[CancellationToken],
    ) -> Any:
        token = CancellationToken.linked(cancel)
        self._active.add(token)
        state = RetryState(started_at=self._clock(), total_budget=total_timeout)
        calls = 0

        try:
            while True:
                if state.attempt_index > 0:
                    await self._wait_for_retry(state, token)

                token.raise_if_cancelled()
                remaining = state.remaining(self._clock())
                if remaining <= 0:
                    raise timeout_error("Client request")

                try:
                    if not self._is_online():
                        raise HumanmarkNetworkError(
                            "No internet connection",
                            category=NetworkErrorCategory.TEMPORARY,
                        )
                    calls += 1
                    logger.debug(
                        "%s attempt %d (streak %d, %.3fs left)",
                        operation,
                        calls,
                        state.attempt_index,
                        remaining,
                    )
                    response = await self._transport.send(
                        method,
                        url,
                        headers=headers,
                        body=body,
                        timeout=min(remaining, self._settings.request_timeout),
                        cancel=token,
                    )
                    result = handle(response)
                except Exception as ex:
                    state.attempt_index += 1
                    if self._should_retry(ex, state):
                        logger.debug("%s attempt failed, retrying: %s", operation, ex)
                        continue
                    terminal = self._terminal_error(ex, state)
                    logger.warning(
                        "%s failed after %d call(s): %s", operation, calls, terminal.code.value
                    )
                    if terminal is ex:
                        raise
                    raise terminal from ex

                if result is _REPOLL:
                    logger.debug("%s long-poll returned 408, re-polling", operation)
                    state.attempt_index = 0
                    continue
                return result
        finally:
            self._active.discard(token)
            token.detach()

    async def _wait_for_retry(self, state: RetryState, token: CancellationToken) -> None:
        delay = self._policy.delay_for(state.attempt_index - 1)
        elapsed = state.elapsed(self._clock())
        if delay > 0 and elapsed + delay > state.total_budget:
            # sleeping would only run out the budget
            raise timeout_error("Client request")
        if delay > 0:
            logger.debug("Backing off %.3fs before retry %d", delay, state.attempt_index)
            await self._sleep(delay, token)

    def _should_retry(self, error: BaseException, state: RetryState) -> bool:
        if self._policy.classify(error) != RetryDecision.RETRY:
            return False
        return self._policy.should_continue(
            state.attempt_index,
            state.started_at,
            state.total_budget,
            now=self._clock(),
        )

    def _terminal_error(self, error: Exception, state: RetryState) -> HumanmarkError:
        retryable = self._policy.classify(error) == RetryDecision.RETRY
        if retryable and state.remaining(self._clock()) <= 0:
            return timeout_error("Client request")
        if isinstance(error, HumanmarkError):
            return error
        return network_error_from(error, categorize_network_error(error))
