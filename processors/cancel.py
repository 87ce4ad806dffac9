"""
cancel.py

Cancellation token shared by every long-running step.

The CLI creates one token, hooks SIGINT/SIGTERM to it, and passes it down.
Formatters call raise_if_cancelled() between rows; the coordinator calls it
before every write.
"""

from __future__ import annotations

import logging
import queue
import signal
import threading
from typing import Callable, Optional

from .errors import canceled

logger = logging.getLogger(__name__)


class CancelToken:
    """A one-shot "done" signal. Safe to check from anywhere, any number of times."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str = "operation canceled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise canceled(self.reason or "operation canceled")


def check(token: Optional[CancelToken]) -> None:
    # Components accept token=None for "never cancelled".
    if token is not None:
        token.raise_if_cancelled()


def install_signal_handlers(token: CancelToken) -> None:
    """Cancel the token on SIGINT / SIGTERM instead of raising KeyboardInterrupt."""

    def _handler(signum, frame):
        logger.debug("received signal %s", signum)
        token.cancel(f"interrupted by signal {signum}")

    signal.signal(signal.SIGINT, _handler)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handler)


def read_line_cancellable(
    token: CancelToken,
    readline: Callable[[], str],
    poll_interval: float = 0.1,
) -> str:
    """
    Run a blocking readline() in a daemon thread and race it against the token.

    Whichever finishes first wins. If the token wins, the reader thread is left
    behind and whatever it reads later is never consumed.
    Raises Canceled on cancellation and on end of input.
    """
    results: "queue.Queue[tuple]" = queue.Queue(maxsize=1)

    def _reader() -> None:
        try:
            results.put(("ok", readline()))
        except Exception as exc:  # handed to the waiting thread below
            results.put(("err", exc))

    threading.Thread(target=_reader, daemon=True).start()

    while True:
        token.raise_if_cancelled()
        try:
            status, value = results.get(timeout=poll_interval)
        except queue.Empty:
            continue
        if status == "err":
            raise value
        if value == "":
            raise canceled("end of input")
        return value.strip()
