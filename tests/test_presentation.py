"""
Tests for ConsolePresenter.
"""

import asyncio
import io

from conftest import CHALLENGE_ID, REGION, make_token
from humanmark.core.presentation import ConsolePresenter


def _presenter(success_display=0.0):
    stream = io.StringIO()
    return ConsolePresenter(success_display=success_display, stream=stream), stream


class TestConsolePresenter:
    """Tests for the terminal presenter used by the CLI."""

    def test_present_prints_challenge(self):
        presenter, stream = _presenter()

        asyncio.run(presenter.present(make_token()))

        output = stream.getvalue()
        assert CHALLENGE_ID in output
        assert REGION in output
        assert presenter.visible

    def test_close_notifies_once(self):
        presenter, _ = _presenter()
        calls = []
        presenter.on_closed_by_user(lambda: calls.append("closed"))

        asyncio.run(presenter.present(make_token()))
        presenter.close()
        presenter.close()

        assert calls == ["closed"]
        assert not presenter.visible

    def test_registration_replaces_callback(self):
        presenter, _ = _presenter()
        calls = []
        presenter.on_closed_by_user(lambda: calls.append("first"))
        presenter.on_closed_by_user(lambda: calls.append("second"))

        asyncio.run(presenter.present(make_token()))
        presenter.close()

        assert calls == ["second"]

    def test_hide_never_notifies_close(self):
        presenter, _ = _presenter()
        calls = []
        presenter.on_closed_by_user(lambda: calls.append("closed"))

        asyncio.run(presenter.present(make_token()))
        presenter.hide()
        presenter.hide(immediate=True)
        presenter.close()

        assert calls == []

    def test_success_display_finishes(self):
        presenter, stream = _presenter(success_display=0.01)
        finished = []

        async def scenario():
            await presenter.present(make_token())
            done = asyncio.get_running_loop().create_future()
            presenter.on_success_display_finished(lambda: done.set_result(True))
            presenter.show_success()
            await asyncio.wait_for(done, timeout=2)
            finished.append(True)

        asyncio.run(scenario())

        assert finished == [True]
        assert "Verified!" in stream.getvalue()

    def test_immediate_hide_ends_success_display(self):
        presenter, _ = _presenter(success_display=60)
        finished = []

        async def scenario():
            await presenter.present(make_token())
            presenter.on_success_display_finished(lambda: finished.append(True))
            presenter.show_success()
            presenter.hide(immediate=True)

        asyncio.run(scenario())

        assert finished == [True]
