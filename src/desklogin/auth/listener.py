"""Transient loopback HTTP listener that receives the OAuth redirect.

The listener binds the fixed redirect address registered with the provider,
waits for the browser to be redirected back, and extracts ``code``,
``state`` and ``error`` from the request target. Only the request line
matters; a request carrying neither ``code`` nor ``error`` (a favicon fetch,
a preflight, garbage) is answered and ignored, and listening continues.

State machine::

    IDLE --bind()--> LISTENING --wait()--> {callback | error | cancelled} --> CLOSED

Every terminal transition closes the server socket so repeated login
attempts never leak the port.
"""

from __future__ import annotations

import enum
import html
import logging
import selectors
import socketserver
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from desklogin.auth.cancellation import CancelReason, CancelToken
from desklogin.exceptions import ListenerBindError

logger = logging.getLogger(__name__)

_CONNECTION_TIMEOUT = 2.0


class OutcomeKind(str, enum.Enum):
    """Terminal events of a listener wait."""

    CALLBACK = "callback"
    ERROR = "error"
    CANCELLED = "cancelled"


class ListenerState(str, enum.Enum):
    IDLE = "idle"
    LISTENING = "listening"
    CLOSED = "closed"


@dataclass(frozen=True)
class ListenerOutcome:
    """The terminal event that ended a :meth:`RedirectListener.wait`."""

    kind: OutcomeKind
    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None
    cancel_reason: Optional[CancelReason] = None

    @classmethod
    def cancelled(cls, reason: CancelReason) -> ListenerOutcome:
        return cls(kind=OutcomeKind.CANCELLED, cancel_reason=reason)


def parse_callback_target(target: str) -> Optional[ListenerOutcome]:
    """Extract a terminal outcome from a request target such as ``/?code=..&state=..``.

    Args:
        target: The path-and-query part of the HTTP request line.

    Returns:
        A :class:`ListenerOutcome` of kind ``ERROR`` when an ``error``
        parameter is present, of kind ``CALLBACK`` when a non-empty ``code``
        is present, or ``None`` when the request is not a redirect callback.
    """
    params = parse_qs(urlsplit(target).query)

    error = params.get("error", [""])[0]
    if error:
        return ListenerOutcome(
            kind=OutcomeKind.ERROR,
            error=error,
            error_description=params.get("error_description", [None])[0],
            state=params.get("state", [None])[0],
        )

    code = params.get("code", [""])[0]
    if code:
        return ListenerOutcome(
            kind=OutcomeKind.CALLBACK,
            code=code,
            state=params.get("state", [None])[0],
        )
    return None


_PAGE = (
    "<!doctype html><html><head><meta charset=\"utf-8\"><title>{title}</title></head>"
    "<body><h2>{title}</h2><p>{message}</p></body></html>"
)


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackServer
    timeout = _CONNECTION_TIMEOUT

    def do_GET(self) -> None:
        outcome = parse_callback_target(self.path)

        if outcome is None:
            self._respond(404, "Waiting for sign-in", "This page is not part of the login flow.")
            return

        if outcome.kind is OutcomeKind.ERROR:
            reason = outcome.error_description or outcome.error or ""
            self._respond(
                200,
                "Sign-in failed",
                f"The provider reported: {html.escape(reason)}. You can close this window.",
            )
        else:
            self._respond(
                200,
                "Sign-in complete",
                "You can close this window and return to the application.",
            )
        self.server.outcome = outcome

    def _respond(self, status: int, title: str, message: str) -> None:
        body = _PAGE.format(title=title, message=message).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("redirect listener: " + format, *args)


class _CallbackServer(HTTPServer):
    # Rebinding over TIME_WAIT leftovers is fine; sharing a live listener is not.
    allow_reuse_address = True
    allow_reuse_port = False

    def __init__(self, address: tuple[str, int]) -> None:
        self.outcome: Optional[ListenerOutcome] = None
        super().__init__(address, _CallbackHandler)

    def server_bind(self) -> None:
        # Skip HTTPServer's reverse DNS lookup of the loopback host.
        socketserver.TCPServer.server_bind(self)
        host, port = self.server_address[:2]
        self.server_name = str(host)
        self.server_port = port

    def handle_error(self, request: Any, client_address: Any) -> None:
        logger.warning(
            "Error while handling a redirect request from %s",
            client_address[0] if client_address else "?",
            exc_info=True,
        )


def _handle_connection(server: _CallbackServer, conn: Any, address: Any) -> None:
    try:
        server.process_request(conn, address)
    except Exception:
        server.handle_error(conn, address)
        server.shutdown_request(conn)


def _drop_pending(
    server: _CallbackServer, selector: selectors.BaseSelector, token: CancelToken
) -> None:
    """Close accepted connections that never sent a request."""
    for key in list(selector.get_map().values()):
        if key.fileobj is not server and key.fileobj is not token:
            selector.unregister(key.fileobj)
            server.shutdown_request(key.fileobj)


class RedirectListener:
    """Single-use loopback server for one interactive login attempt.

    Args:
        host: Loopback host to bind (e.g. ``127.0.0.1``).
        port: Fixed port registered with the provider. ``0`` picks a free
            port, which is only useful in tests.

    Example::

        with RedirectListener("127.0.0.1", 8765) as listener:
            outcome = listener.wait(token)
    """

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self._requested_port = port
        self._server: Optional[_CallbackServer] = None
        self._state = ListenerState.IDLE
        self.outcome: Optional[ListenerOutcome] = None

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def port(self) -> int:
        """The bound port (the requested one until bound)."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._requested_port

    def bind(self) -> None:
        """Bind and start listening on the redirect address.

        Raises:
            ListenerBindError: If the address is in use or cannot be bound.
                Never retried: an occupied port means another attempt is
                still listening.
            RuntimeError: If the listener was already bound or closed.
        """
        if self._state is not ListenerState.IDLE:
            raise RuntimeError(f"Listener cannot be bound from state {self._state.value}")
        try:
            self._server = _CallbackServer((self.host, self._requested_port))
        except OSError as exc:
            self._state = ListenerState.CLOSED
            raise ListenerBindError(
                f"Cannot listen on {self.host}:{self._requested_port}: {exc}"
            ) from exc
        self._server.timeout = None
        self._state = ListenerState.LISTENING
        logger.debug("Redirect listener bound to %s:%d", self.host, self.port)

    def wait(self, token: CancelToken) -> ListenerOutcome:
        """Block until a redirect callback arrives or *token* is cancelled.

        Non-callback requests are answered and skipped. The listener is
        closed before this method returns, whatever the outcome.

        Args:
            token: Cancellation signal raced against incoming connections.

        Returns:
            The terminal :class:`ListenerOutcome`.

        Raises:
            RuntimeError: If the listener is not bound.
        """
        if self._server is None or self._state is not ListenerState.LISTENING:
            raise RuntimeError("Listener is not bound")

        server = self._server
        try:
            with selectors.DefaultSelector() as selector:
                selector.register(server, selectors.EVENT_READ)
                selector.register(token, selectors.EVENT_READ)
                try:
                    self.outcome = self._serve_until_done(server, selector, token)
                    return self.outcome
                finally:
                    _drop_pending(server, selector, token)
        finally:
            self.close()

    def _serve_until_done(
        self,
        server: _CallbackServer,
        selector: selectors.BaseSelector,
        token: CancelToken,
    ) -> ListenerOutcome:
        # Accepted connections are only read once they have data, so an idle
        # browser preconnect never holds up cancellation.
        while True:
            reason = token.reason
            if reason is not None:
                return ListenerOutcome.cancelled(reason)

            for key, _ in selector.select():
                if token.cancelled:
                    break
                if key.fileobj is server:
                    try:
                        conn, address = server.get_request()
                    except OSError:
                        continue
                    selector.register(conn, selectors.EVENT_READ, address)
                elif key.fileobj is not token:
                    selector.unregister(key.fileobj)
                    _handle_connection(server, key.fileobj, key.data)
                    if server.outcome is not None:
                        return server.outcome
                    logger.debug("Ignored a request without code or error")

    def close(self) -> None:
        """Close the server socket and release the port. Idempotent."""
        if self._server is not None:
            self._server.server_close()
            self._server = None
            logger.debug("Redirect listener on %s closed", self.host)
        self._state = ListenerState.CLOSED

    def __enter__(self) -> RedirectListener:
        if self._state is ListenerState.IDLE:
            self.bind()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
