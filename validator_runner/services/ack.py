"""One-shot acknowledgment channel between the faucet thread and the runner."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class FaucetAck:
    ok: bool
    error: Optional[str] = None

    @classmethod
    def bound(cls) -> "FaucetAck":
        return cls(ok=True)

    @classmethod
    def failed(cls, reason: str) -> "FaucetAck":
        return cls(ok=False, error=reason)


class ChannelClosed(Exception):
    """The sender closed the channel without sending a message."""


class AckChannel:
    """Carries exactly one `FaucetAck` from a worker thread to a waiter.

    `send` may be called once. `close` marks the sender as gone; a waiter
    blocked in `recv` then gets the message if one was sent, or
    `ChannelClosed` otherwise.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._message: Optional[FaucetAck] = None
        self._closed = False

    @property
    def sent(self) -> bool:
        with self._cond:
            return self._message is not None

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def send(self, message: FaucetAck) -> None:
        with self._cond:
            if self._message is not None:
                raise RuntimeError("acknowledgment already sent")
            if self._closed:
                raise RuntimeError("acknowledgment channel is closed")
            self._message = message
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def recv(self, timeout: Optional[float] = None) -> FaucetAck:
        """Block until the message arrives or the sender closes.

        Raises:
            ChannelClosed: closed without a message.
            TimeoutError: `timeout` seconds passed with neither.
        """
        with self._cond:
            done = self._cond.wait_for(
                lambda: self._message is not None or self._closed,
                timeout=timeout,
            )
            if not done:
                raise TimeoutError(f"no acknowledgment within {timeout}s")
            if self._message is None:
                raise ChannelClosed("sender closed the channel without acknowledging")
            return self._message


__all__ = ["AckChannel", "ChannelClosed", "FaucetAck"]
