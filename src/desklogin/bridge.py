"""JSON command surface between a UI process and the login core.

A UI process sends one JSON object per request::

    {"tag": "get_user", "id": 7}

and receives the profile back, with the request's ``tag`` and ``id``
echoed::

    {"tag": "get_user", "id": 7, "user": {"id": "...", "email": "...", ...}}

The ``user`` object always has every profile field; they are empty when
nobody is signed in. Unknown tags and malformed messages get an ``error``
string next to an empty ``user``.

:func:`serve` speaks this protocol as JSON lines over a pair of text
streams. Requests are dispatched concurrently, since a ``get_user`` that is
waiting on an interactive login must not hold up a ``get_user`` that can be
answered from the cached session.
"""

from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import IO, Any, Callable

from desklogin.auth.orchestrator import LoginOrchestrator
from desklogin.models import UserProfile

logger = logging.getLogger(__name__)

GET_USER = "get_user"
LOGOUT = "logout"


class CommandBridge:
    """Dispatch tagged JSON requests to a :class:`LoginOrchestrator`.

    Args:
        orchestrator: The login orchestrator backing the commands.
    """

    def __init__(self, orchestrator: LoginOrchestrator) -> None:
        self._orchestrator = orchestrator
        self._commands: dict[str, Callable[[], UserProfile]] = {
            GET_USER: orchestrator.get_user,
            LOGOUT: orchestrator.logout,
        }

    @property
    def tags(self) -> list[str]:
        """Command tags this bridge answers."""
        return sorted(self._commands)

    def handle(self, request: dict[str, Any]) -> dict[str, Any]:
        """Answer one decoded request.

        Args:
            request: A dict with a ``tag`` and an optional ``id``.

        Returns:
            The reply dict (see module docstring).
        """
        tag = request.get("tag")
        reply: dict[str, Any] = {"tag": tag}
        if "id" in request:
            reply["id"] = request["id"]

        command = self._commands.get(tag) if isinstance(tag, str) else None
        if command is None:
            reply["user"] = UserProfile().to_wire()
            reply["error"] = f"Unknown command tag: {tag!r}"
            return reply

        reply["user"] = command().to_wire()
        return reply

    def handle_json(self, message: str) -> str:
        """Decode *message*, answer it, and encode the reply."""
        try:
            request = json.loads(message)
        except json.JSONDecodeError as exc:
            return _encode(_error_reply(f"Malformed request: {exc}"))

        if not isinstance(request, dict):
            return _encode(_error_reply("Request must be a JSON object"))
        return _encode(self.handle(request))


def _error_reply(message: str) -> dict[str, Any]:
    return {"tag": None, "user": UserProfile().to_wire(), "error": message}


def _encode(reply: dict[str, Any]) -> str:
    return json.dumps(reply, ensure_ascii=False, separators=(",", ":"))


def serve(
    bridge: CommandBridge,
    reader: IO[str],
    writer: IO[str],
    max_workers: int = 4,
) -> None:
    """Serve JSON-lines requests from *reader* until end of input.

    Each non-blank line is one request; each reply is written as one line
    to *writer*. Replies may come back out of request order, so UI clients
    should correlate them by ``id``.

    Args:
        bridge: The command bridge answering requests.
        reader: Text stream of requests (typically ``sys.stdin``).
        writer: Text stream for replies (typically ``sys.stdout``).
        max_workers: Upper bound on concurrently handled requests.
    """
    write_lock = threading.Lock()

    def answer(line: str) -> None:
        reply = bridge.handle_json(line)
        with write_lock:
            writer.write(reply + "\n")
            writer.flush()

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="desklogin-cmd") as pool:
        for line in reader:
            line = line.strip()
            if line:
                pool.submit(answer, line).add_done_callback(_log_failure)
    logger.debug("Command stream closed")


def _log_failure(future: Any) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("Command handler crashed: %s", exc, exc_info=exc)
