"""Single-shot cancellation for the interactive login wait.

The redirect listener blocks until a browser request arrives. Two
independent triggers must be able to end that wait early: a deadline timer
and the login window being closed by the user. Both feed one
:class:`CancelToken`; whichever fires first decides the reason, and every
later trigger is a silent no-op.

The token owns a connected socket pair. Cancelling writes one byte to it,
which makes the read end selectable, so the listener can wait on its own
server socket and the token in a single ``select`` call instead of polling.
"""

from __future__ import annotations

import contextlib
import enum
import logging
import socket
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class CancelReason(str, enum.Enum):
    """Why an interactive login attempt was cancelled."""

    TIMEOUT = "timeout"
    WINDOW_CLOSED = "window_closed"


class CancelToken:
    """Thread-safe, single-shot cancellation signal with a selectable handle.

    Example::

        token = CancelToken()
        token.cancel(CancelReason.WINDOW_CLOSED)   # True
        token.cancel(CancelReason.TIMEOUT)         # False, first reason wins
        assert token.reason is CancelReason.WINDOW_CLOSED
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._reason: Optional[CancelReason] = None
        self._closed = False
        self._reader, self._writer = socket.socketpair()
        self._reader.setblocking(False)

    def fileno(self) -> int:
        """File descriptor that becomes readable once the token is cancelled."""
        return self._reader.fileno()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[CancelReason]:
        return self._reason

    def cancel(self, reason: CancelReason) -> bool:
        """Cancel the token.

        Args:
            reason: The trigger that fired.

        Returns:
            ``True`` if this call cancelled the token, ``False`` if it was
            already cancelled or closed.
        """
        with self._lock:
            if self._event.is_set() or self._closed:
                return False
            self._reason = reason
            self._event.set()
            with contextlib.suppress(OSError):
                self._writer.send(b"\0")
        logger.debug("Login attempt cancelled: %s", reason.value)
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or *timeout* elapses; return whether cancelled."""
        return self._event.wait(timeout)

    def close(self) -> None:
        """Release the socket pair. Later :meth:`cancel` calls are no-ops."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._reader.close()
            self._writer.close()


class CancellationCoordinator:
    """Race a one-shot deadline and a window-closed signal against the listener.

    Use as a context manager: entering arms the deadline timer, leaving
    cancels the timer and closes the token, so no stray trigger can fire
    into a finished attempt.

    Args:
        timeout: Seconds before the attempt is cancelled with
            :attr:`CancelReason.TIMEOUT`. The deadline is never renewed.
        token: Token to drive; a new one is created when omitted.
    """

    def __init__(self, timeout: float, token: Optional[CancelToken] = None) -> None:
        self.timeout = timeout
        self.token = token or CancelToken()
        self._timer: Optional[threading.Timer] = None

    def arm(self) -> None:
        """Start the deadline timer. Arming twice has no effect."""
        if self._timer is not None:
            return
        self._timer = threading.Timer(self.timeout, self._on_deadline)
        self._timer.daemon = True
        self._timer.start()

    def window_closed(self) -> None:
        """Callback for the login window facility when the user dismisses it."""
        self.token.cancel(CancelReason.WINDOW_CLOSED)

    def disarm(self) -> None:
        """Stop the deadline timer and close the token."""
        if self._timer is not None:
            self._timer.cancel()
        self.token.close()

    def _on_deadline(self) -> None:
        if self.token.cancel(CancelReason.TIMEOUT):
            logger.info("Login window deadline of %.0fs elapsed", self.timeout)

    def __enter__(self) -> CancellationCoordinator:
        self.arm()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.disarm()
