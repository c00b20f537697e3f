import asyncio

import pytest

from barkada.popup_bridge import (
    AUTH_ERROR,
    AUTH_SUCCESS,
    PopupAuthBridge,
    PopupOutcome,
    parse_message,
)


class FakePopup:
    def __init__(self):
        self.closed = False
        self.close_calls = 0

    def close(self):
        self.closed = True
        self.close_calls += 1


def bridge_for(popup, **kwargs):
    kwargs.setdefault("poll_interval", 0.01)
    kwargs.setdefault("timeout", 1.0)
    return PopupAuthBridge(popup, **kwargs)


@pytest.mark.parametrize("message,outcome", [
    ({"type": AUTH_SUCCESS, "code": "C1", "state": "s"}, PopupOutcome.SUCCESS),
    ({"type": AUTH_ERROR, "error": "access_denied"}, PopupOutcome.ERROR),
])
def test_parse_message(message, outcome):
    assert parse_message(message).outcome is outcome


@pytest.mark.parametrize("message", [
    None,
    "AUTH_SUCCESS",
    {"type": "webpackOk"},
    {"type": AUTH_SUCCESS},
])
def test_parse_message_ignores_foreign_payloads(message):
    assert parse_message(message) is None


async def test_success_message_resolves():
    bridge = bridge_for(FakePopup())
    bridge.post_message({"type": AUTH_SUCCESS, "code": "C1", "state": "xyz"})

    result = await bridge.wait()

    assert result.outcome is PopupOutcome.SUCCESS
    assert (result.code, result.state) == ("C1", "xyz")
    assert not result.cancelled


async def test_error_message_resolves():
    bridge = bridge_for(FakePopup())
    bridge.post_message({"type": AUTH_ERROR, "error": "access_denied"})

    result = await bridge.wait()

    assert result.outcome is PopupOutcome.ERROR
    assert result.error == "access_denied"


async def test_message_posted_while_waiting():
    bridge = bridge_for(FakePopup())

    async def later():
        await asyncio.sleep(0.03)
        bridge.post_message({"type": AUTH_SUCCESS, "code": "C9"})

    result, _ = await asyncio.gather(bridge.wait(), later())
    assert result.code == "C9"


async def test_user_closed_popup():
    popup = FakePopup()
    popup.closed = True

    result = await bridge_for(popup).wait()

    assert result.outcome is PopupOutcome.USER_CLOSED
    assert result.cancelled


async def test_timeout_closes_popup():
    popup = FakePopup()

    result = await bridge_for(popup, timeout=0.05).wait()

    assert result.outcome is PopupOutcome.TIMEOUT
    assert result.cancelled
    assert popup.close_calls == 1


async def test_blocked_popup():
    result = await PopupAuthBridge(None).wait()

    assert result.outcome is PopupOutcome.ERROR
    assert "blocked" in result.error


async def test_first_message_wins():
    bridge = bridge_for(FakePopup())
    bridge.post_message({"type": AUTH_SUCCESS, "code": "first"})
    bridge.post_message({"type": AUTH_ERROR, "error": "late"})

    result = await bridge.wait()

    assert result.code == "first"
    assert bridge.post_message({"type": AUTH_SUCCESS, "code": "again"}) is False
    assert await bridge.wait() is result


async def test_unrelated_messages_are_skipped():
    bridge = bridge_for(FakePopup())
    bridge.post_message({"source": "react-devtools"})
    bridge.post_message({"type": AUTH_SUCCESS, "code": "C1"})

    result = await bridge.wait()
    assert result.code == "C1"


async def test_mailbox_is_bounded():
    bridge = bridge_for(FakePopup(), mailbox_size=1)

    assert bridge.post_message({"type": "noise"}) is True
    assert bridge.post_message({"type": "noise"}) is False
