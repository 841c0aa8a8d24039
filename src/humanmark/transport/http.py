"""
HTTP transport for the Humanmark client.

- Sends exactly one request per call (no retries here)
- Enforces the per-attempt timeout by aborting the in-flight request
- Aborts the request as soon as the linked CancellationToken fires
- Used by ApiClient, which owns the retry loop
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from humanmark.core.cancellation import CancellationToken, error_for
from humanmark.protocol.enums import CancelReason, ErrorCode, NetworkErrorCategory
from humanmark.protocol.errors import HumanmarkNetworkError
from humanmark.utils.json import json_dumps

logger = logging.getLogger("humanmark.transport")


class HTTPTransport:
    """
    Thin async wrapper around httpx.AsyncClient.

        transport = HTTPTransport()
        resp = await transport.send("GET", url, headers={...}, timeout=25.0, cancel=token)

    A request that outlives `timeout` or whose token is cancelled is
    cancelled outright, so the connection is released rather than
    left to finish unobserved.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Main API called by ApiClient
    # ------------------------------------------------------------------
    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: Dict[str, str],
        body: Optional[Dict[str, Any]] = None,
        timeout: float,
        cancel: Optional[CancellationToken] = None,
    ) -> httpx.Response:
        if cancel is not None:
            cancel.raise_if_cancelled()

        # the attempt follows the caller's token and is itself cancelled with
        # CancelReason.TIMEOUT when the per-attempt ceiling is reached
        attempt = CancellationToken.linked(cancel)
        content = json_dumps(body).encode("utf-8") if body is not None else None
        request_task = asyncio.ensure_future(
            self._client.request(
                method,
                url,
                headers=headers,
                content=content,
                timeout=httpx.Timeout(timeout),
            )
        )
        cancel_task = asyncio.ensure_future(attempt.wait())

        try:
            done, _ = await asyncio.wait(
                {request_task, cancel_task}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except BaseException:
            await self._abort(request_task)
            raise
        finally:
            if not cancel_task.done():
                cancel_task.cancel()
            attempt.detach()

        if request_task in done:
            return request_task.result()

        attempt.cancel(CancelReason.TIMEOUT)
        await self._abort(request_task)
        if attempt.reason == CancelReason.TIMEOUT:
            logger.debug("%s %s aborted after %.3fs attempt timeout", method, url, timeout)
        else:
            logger.debug("%s %s aborted by cancellation", method, url)
        raise error_for(attempt.reason)  # type: ignore[arg-type]

    async def _abort(self, task: "asyncio.Future[httpx.Response]") -> None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except httpx.HTTPError as ex:
            logger.debug("Aborted request raised %s", type(ex).__name__)


def parse_json_body(response: httpx.Response) -> Dict[str, Any]:
    """Decode a 2xx body; anything but a JSON object is an invalid response."""
    try:
        data = response.json()
    except ValueError as ex:
        raise HumanmarkNetworkError(
            "Invalid JSON response from server",
            ErrorCode.INVALID_RESPONSE,
            category=NetworkErrorCategory.PERMANENT,
            status_code=response.status_code,
        ) from ex
    if not isinstance(data, dict):
        raise HumanmarkNetworkError(
            "Unexpected JSON shape from server",
            ErrorCode.INVALID_RESPONSE,
            category=NetworkErrorCategory.PERMANENT,
            status_code=response.status_code,
        )
    return data
