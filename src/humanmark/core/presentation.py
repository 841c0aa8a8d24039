from __future__ import annotations

import asyncio
import logging
import sys
from typing import Callable, Optional, Protocol, TextIO

from humanmark.protocol.challenge_token import decode_challenge_token
from humanmark.utils.timestamps import now_ms

logger = logging.getLogger("humanmark.presentation")

Callback = Callable[[], None]


class Presenter(Protocol):
    """
    What the orchestrator needs from a UI.

    Registering a callback replaces any previously registered one.
    hide() must never fire the closed-by-user callback.
    """

    async def present(self, token: str) -> None:
        ...

    def on_closed_by_user(self, callback: Callback) -> None:
        ...

    def on_success_display_finished(self, callback: Callback) -> None:
        ...

    def show_success(self) -> None:
        ...

    def hide(self, immediate: bool = False) -> None:
        ...


class ConsolePresenter:
    """
    Minimal terminal presenter used by the CLI.

    Prints the challenge to `stream`; close() stands in for the user dismissing
    the prompt; the success message is held for `success_display` seconds
    before completion is reported.
    """

    def __init__(self, *, success_display: float = 1.5, stream: Optional[TextIO] = None) -> None:
        self._success_display = success_display
        self._stream = stream or sys.stdout
        self._on_closed: Optional[Callback] = None
        self._on_success: Optional[Callback] = None
        self._visible = False
        self._success_handle: Optional[asyncio.TimerHandle] = None

    @property
    def visible(self) -> bool:
        return self._visible

    async def present(self, token: str) -> None:
        claims = decode_challenge_token(token)
        remaining_s = max(0, claims.expires_at_ms - now_ms()) // 1000
        self._write(
            f"Verify you're human: challenge {claims.challenge_id} "
            f"(region {claims.region}, expires in {remaining_s}s)"
        )
        self._write("Complete the verification in the Humanmark app. Press Ctrl-C to cancel.")
        self._visible = True

    def on_closed_by_user(self, callback: Callback) -> None:
        self._on_closed = callback

    def on_success_display_finished(self, callback: Callback) -> None:
        self._on_success = callback

    def show_success(self) -> None:
        self._write("Verified!")
        loop = asyncio.get_running_loop()
        self._success_handle = loop.call_later(self._success_display, self._success_finished)

    def hide(self, immediate: bool = False) -> None:
        if not self._visible:
            return
        logger.debug("Hiding presenter (immediate=%s)", immediate)
        self._visible = False
        if immediate and self._success_handle is not None:
            self._success_handle.cancel()
            self._success_handle = None
            self._success_finished()

    def close(self) -> None:
        """The user dismissed the prompt."""
        if not self._visible:
            return
        self._write("Verification closed")
        self._visible = False
        callback = self._on_closed
        if callback is not None:
            callback()

    # ------------------------------------------------------------------
    def _success_finished(self) -> None:
        self._success_handle = None
        callback, self._on_success = self._on_success, None
        if callback is not None:
            callback()

    def _write(self, line: str) -> None:
        print(line, file=self._stream)
        self._stream.flush()
