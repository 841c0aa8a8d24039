"""
Tests for CancellationToken, cancellable_sleep and race.
"""

import asyncio

import pytest

from humanmark.core.cancellation import CancellationToken, cancellable_sleep, race
from humanmark.protocol.enums import CancelReason, ErrorCode
from humanmark.protocol.errors import HumanmarkCancelledError, HumanmarkNetworkError


class TestCancellationToken:
    """Tests for the one-shot token."""

    def test_one_shot(self):
        token = CancellationToken()
        token.cancel(CancelReason.TIMEOUT)
        token.cancel(CancelReason.USER)

        assert token.cancelled
        assert token.reason == CancelReason.TIMEOUT

    def test_callbacks_fire_once(self):
        token = CancellationToken()
        seen = []
        token.add_callback(seen.append)

        token.cancel()
        token.cancel()

        assert seen == [CancelReason.USER]

    def test_late_callback_fires_immediately(self):
        token = CancellationToken()
        token.cancel()
        seen = []

        token.add_callback(seen.append)

        assert seen == [CancelReason.USER]

    def test_linked_follows_parent(self):
        parent = CancellationToken()
        child = CancellationToken.linked(parent, None)

        parent.cancel(CancelReason.TIMEOUT)

        assert child.cancelled
        assert child.reason == CancelReason.TIMEOUT

    def test_linked_child_does_not_cancel_parent(self):
        parent = CancellationToken()
        child = CancellationToken.linked(parent)

        child.cancel()

        assert not parent.cancelled

    def test_raise_if_cancelled_maps_reason(self):
        user = CancellationToken()
        user.cancel(CancelReason.USER)
        timeout = CancellationToken()
        timeout.cancel(CancelReason.TIMEOUT)

        with pytest.raises(HumanmarkCancelledError):
            user.raise_if_cancelled()
        with pytest.raises(HumanmarkNetworkError) as exc:
            timeout.raise_if_cancelled()
        assert exc.value.code == ErrorCode.TIMEOUT

    def test_wait_after_cancel_returns(self):
        async def scenario():
            token = CancellationToken()
            token.cancel()
            return await asyncio.wait_for(token.wait(), timeout=1)

        assert asyncio.run(scenario()) == CancelReason.USER


class TestCancellableSleep:
    """Tests for cancellable_sleep."""

    def test_sleeps_without_token(self):
        asyncio.run(cancellable_sleep(0.001, None))

    def test_interrupted_by_cancel(self):
        async def scenario():
            token = CancellationToken()
            loop = asyncio.get_running_loop()
            loop.call_later(0.01, token.cancel)
            started = loop.time()
            with pytest.raises(HumanmarkCancelledError):
                await cancellable_sleep(30, token)
            return loop.time() - started

        assert asyncio.run(scenario()) < 5

    def test_already_cancelled_raises_at_once(self):
        async def scenario():
            token = CancellationToken()
            token.cancel()
            await cancellable_sleep(30, token)

        with pytest.raises(HumanmarkCancelledError):
            asyncio.run(scenario())


class TestRace:
    """Tests for race."""

    def test_work_wins(self):
        async def work():
            await asyncio.sleep(0)
            return "receipt"

        async def scenario():
            return await race(work(), CancellationToken())

        assert asyncio.run(scenario()) == "receipt"

    def test_work_error_propagates(self):
        async def work():
            raise HumanmarkNetworkError("boom")

        async def scenario():
            await race(work(), CancellationToken())

        with pytest.raises(HumanmarkNetworkError):
            asyncio.run(scenario())

    def test_cancel_wins_and_loser_is_aborted(self):
        aborted = []

        async def work():
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                aborted.append(True)
                raise

        async def scenario():
            token = CancellationToken()
            asyncio.get_running_loop().call_later(0.01, token.cancel)
            await race(work(), token)

        with pytest.raises(HumanmarkCancelledError):
            asyncio.run(scenario())
        assert aborted == [True]

    def test_success_in_same_turn_beats_cancel(self):
        async def scenario():
            token = CancellationToken()
            fut = asyncio.get_running_loop().create_future()
            fut.set_result("receipt")
            token.cancel()
            return await race(fut, token)

        assert asyncio.run(scenario()) == "receipt"


class TestDetach:
    """Tests for unlinking a child token from its parents."""

    def test_detach_removes_parent_callback(self):
        parent = CancellationToken()
        children = [CancellationToken.linked(parent) for _ in range(10)]

        for child in children:
            child.detach()
            child.detach()

        assert parent._callbacks == []
        parent.cancel()
        assert not any(child.cancelled for child in children)

    def test_detach_keeps_other_links(self):
        parent = CancellationToken()
        kept = CancellationToken.linked(parent)
        dropped = CancellationToken.linked(parent)

        dropped.detach()
        parent.cancel()

        assert kept.cancelled
        assert not dropped.cancelled
