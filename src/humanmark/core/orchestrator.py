# humanmark/core/orchestrator.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from humanmark.protocol.enums import CancelReason, ExpiryReason, VerificationState
from humanmark.protocol.errors import (
    HumanmarkCancelledError,
    challenge_expired_error,
    no_active_challenge_error,
    no_receipt_error,
)
from humanmark.protocol.models import (
    API_KEY_HEADER,
    API_SECRET_HEADER,
    CreateChallengeRequest,
)

from .cancellation import CancellationToken, race
from .challenge_manager import ChallengeManager
from .client import ApiClient
from .config import CreateAndVerifyConfig, VerifyOnlyConfig
from .presentation import Presenter

logger = logging.getLogger("humanmark.orchestrator")

VerificationConfig = Union[CreateAndVerifyConfig, VerifyOnlyConfig]


@dataclass
class _Operation:
    """The single in-flight verification shared by every concurrent caller."""

    cancel: CancellationToken = field(default_factory=CancellationToken)
    resolved: bool = False
    task: Optional["asyncio.Task[str]"] = None


class VerificationOrchestrator:
    """
    Public entry point: runs one verification at a time.

        idle -> initializing -> presenting -> polling -> completed | cancelled | failed

    - Concurrent start() calls share one operation and one outcome
    - The poll is raced against the user closing the presenter
    - Once a receipt is obtained the result is final; a late close is ignored
    - Cleanup (abort requests, clear token, hide presenter) runs on every exit
      before the caller sees the outcome
    """

    def __init__(
        self,
        config: VerificationConfig,
        *,
        api_client: Optional[ApiClient] = None,
        challenge_manager: Optional[ChallengeManager] = None,
        presenter: Optional[Presenter] = None,
        presenter_factory: Optional[Callable[[], Presenter]] = None,
    ) -> None:
        self._config = config
        self._api = api_client or ApiClient()
        self._challenges = challenge_manager or ChallengeManager()
        self._presenter = presenter
        self._presenter_factory = presenter_factory
        self._presented = False
        self._state = VerificationState.IDLE
        self._in_flight: Optional[_Operation] = None
        self._log = logger

    # ===========================================================
    # Public API
    # ===========================================================
    @property
    def state(self) -> VerificationState:
        return self._state

    @property
    def in_progress(self) -> bool:
        return self._in_flight is not None

    @property
    def challenge_manager(self) -> ChallengeManager:
        return self._challenges

    async def start(self) -> str:
        """
        Run a verification and return the receipt.

        If a verification is already running, wait for that one instead of
        starting another; every caller observes the same receipt or error.
        """
        op = self._in_flight
        if op is None:
            op = _Operation()
            op.task = asyncio.ensure_future(self._perform(op))
            self._in_flight = op
            op.task.add_done_callback(lambda _t, _op=op: self._settle(_op))
        else:
            self._log.debug("Verification already in flight, joining it")

        assert op.task is not None
        # one caller being cancelled must not cancel the shared operation
        return await asyncio.shield(op.task)

    verify = start

    def cancel(self) -> None:
        """Cancel the in-flight verification as if the user closed the UI."""
        op = self._in_flight
        if op is not None:
            self._handle_closed(op)

    def cleanup(self, immediate: bool = False) -> None:
        """
        Abort pending requests, forget the token and hide the presenter.

        Safe to call any number of times, before, during or after a run.
        """
        self._api.cancel_pending_requests()
        self._challenges.clear()
        if self._presented and self._presenter is not None:
            self._presented = False
            self._presenter.hide(immediate)

    async def aclose(self) -> None:
        op = self._in_flight
        if op is not None:
            self._handle_closed(op)
        self.cleanup(immediate=True)
        if op is not None and op.task is not None:
            await asyncio.gather(op.task, return_exceptions=True)
        await self._api.aclose()

    async def __aenter__(self) -> "VerificationOrchestrator":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ===========================================================
    # One verification
    # ===========================================================
    async def _perform(self, op: _Operation) -> str:
        try:
            self._transition(VerificationState.INITIALIZING)
            token = await self._acquire_token(op)

            self._transition(VerificationState.PRESENTING)
            presenter = self._get_presenter()
            if presenter is not None:
                await presenter.present(token)
                self._presented = True
                presenter.on_closed_by_user(lambda: self._handle_closed(op))

            self._transition(VerificationState.POLLING)
            receipt = await self._wait_for_receipt(op)

            # from here on the verification has succeeded
            op.resolved = True
            self._transition(VerificationState.COMPLETED)

            if presenter is not None:
                await self._show_success(presenter)
            return receipt

        except HumanmarkCancelledError:
            op.resolved = True
            self._transition(VerificationState.CANCELLED)
            raise
        except BaseException as ex:
            op.resolved = True
            self._transition(VerificationState.FAILED)
            self._log.warning("Verification failed: %s", ex)
            raise
        finally:
            self.cleanup()

    async def _acquire_token(self, op: _Operation) -> str:
        config = self._config
        if isinstance(config, CreateAndVerifyConfig):
            token = await self._api.create_challenge(
                CreateChallengeRequest(domain=config.domain),
                {API_KEY_HEADER: config.api_key, API_SECRET_HEADER: config.api_secret},
                cancel=op.cancel,
            )
        else:
            token = config.challenge_token

        self._challenges.set_token(token)
        return self._current_token()

    def _current_token(self) -> str:
        """Pre-flight: the held token must still be live before it is used."""
        if not self._challenges.has_token():
            raise no_active_challenge_error()
        token = self._challenges.current_token()
        if token is None:
            raise challenge_expired_error(ExpiryReason.DETECTED_LOCALLY)
        return token

    async def _wait_for_receipt(self, op: _Operation) -> str:
        token = self._current_token()
        op.cancel.raise_if_cancelled()

        result = await race(
            self._api.wait_for_receipt(
                token,
                {API_KEY_HEADER: self._config.api_key},
                cancel=op.cancel,
            ),
            op.cancel,
        )
        if not result.receipt:
            raise no_receipt_error()
        return result.receipt

    async def _show_success(self, presenter: Presenter) -> None:
        loop = asyncio.get_running_loop()
        finished: asyncio.Future[None] = loop.create_future()

        def _done() -> None:
            if not finished.done():
                finished.set_result(None)

        presenter.on_success_display_finished(_done)
        presenter.show_success()

        # not cancellable: the verification already succeeded
        while not finished.done():
            try:
                await asyncio.shield(finished)
            except asyncio.CancelledError:
                self._log.debug("Ignoring cancellation while success is displayed")

    # ===========================================================
    # Helpers
    # ===========================================================
    def _handle_closed(self, op: _Operation) -> None:
        if op.resolved:
            self._log.debug("Close after the verification settled; ignored")
            return
        self._log.info("Verification closed by user")
        op.cancel.cancel(CancelReason.USER)
        self._api.cancel_pending_requests()

    def _get_presenter(self) -> Optional[Presenter]:
        if self._presenter is None and self._presenter_factory is not None:
            self._presenter = self._presenter_factory()
        return self._presenter

    def _settle(self, op: _Operation) -> None:
        if self._in_flight is op:
            self._in_flight = None
        task = op.task
        if task is not None and not task.cancelled():
            # mark the outcome as retrieved even if every caller went away
            task.exception()

    def _transition(self, state: VerificationState) -> None:
        self._log.debug("Verification state %s -> %s", self._state.value, state.value)
        self._state = state
