"""Popup login bridge.

A login popup completes the Spotify redirect and posts one message back to
the window that opened it:

    {"type": "AUTH_SUCCESS", "code": ..., "state": ...}
    {"type": "AUTH_ERROR", "error": ...}

`PopupAuthBridge` is the opener's side: a small actor with a bounded mailbox
that waits for the first valid message while polling whether the popup is
still open, and gives up after a hard timeout.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)

AUTH_SUCCESS = "AUTH_SUCCESS"
AUTH_ERROR = "AUTH_ERROR"

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_TIMEOUT = 300.0
DEFAULT_MAILBOX_SIZE = 8


class PopupWindow(Protocol):
    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...


class PopupOutcome(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"
    USER_CLOSED = "user_closed"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class PopupResult:
    outcome: PopupOutcome
    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        """Closed by the user or timed out; not an error to report."""
        return self.outcome in (PopupOutcome.USER_CLOSED, PopupOutcome.TIMEOUT)


def parse_message(message: Any) -> Optional[PopupResult]:
    """Turn a posted payload into a result, or None if it is not ours."""
    if not isinstance(message, dict):
        return None

    kind = message.get("type")
    if kind == AUTH_SUCCESS and message.get("code"):
        return PopupResult(PopupOutcome.SUCCESS, code=message["code"], state=message.get("state"))
    if kind == AUTH_ERROR:
        return PopupResult(PopupOutcome.ERROR, error=str(message.get("error") or "Authentication failed"))
    return None


class PopupAuthBridge:
    """Waits for the outcome of one popup login attempt."""

    def __init__(
            self,
            popup: Optional[PopupWindow] = None,
            *,
            poll_interval: float = DEFAULT_POLL_INTERVAL,
            timeout: float = DEFAULT_TIMEOUT,
            mailbox_size: int = DEFAULT_MAILBOX_SIZE,
    ):
        self.popup = popup
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._mailbox: asyncio.Queue = asyncio.Queue(maxsize=mailbox_size)
        self._result: Optional[PopupResult] = None

    @property
    def done(self) -> bool:
        return self._result is not None

    @property
    def result(self) -> Optional[PopupResult]:
        return self._result

    def attach(self, popup: PopupWindow) -> None:
        self.popup = popup

    def post_message(self, message: Any) -> bool:
        """Deliver a cross-window message. Returns False once resolved or full."""
        if self._result is not None:
            return False
        try:
            self._mailbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Popup mailbox full, dropping message")
            return False
        return True

    async def wait(self) -> PopupResult:
        if self._result is not None:
            return self._result

        if self.popup is None:
            return self._resolve(PopupResult(
                PopupOutcome.ERROR,
                error="Popup was blocked. Please allow popups for this site.",
            ))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                if not self.popup.closed:
                    self.popup.close()
                logger.info("Popup login timed out after %.0fs", self.timeout)
                return self._resolve(PopupResult(PopupOutcome.TIMEOUT))

            try:
                message = await asyncio.wait_for(
                    self._mailbox.get(), timeout=min(self.poll_interval, remaining)
                )
            except asyncio.TimeoutError:
                if self.popup.closed and self._mailbox.empty():
                    logger.info("Popup closed before login completed")
                    return self._resolve(PopupResult(PopupOutcome.USER_CLOSED))
                continue

            result = parse_message(message)
            if result is None:
                logger.debug("Ignoring unrelated popup message: %r", message)
                continue
            return self._resolve(result)

    def _resolve(self, result: PopupResult) -> PopupResult:
        if self._result is None:
            self._result = result
            # drain anything that arrived late; only the first message counts
            while not self._mailbox.empty():
                self._mailbox.get_nowait()
        return self._result
