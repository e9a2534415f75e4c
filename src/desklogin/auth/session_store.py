"""Persistent, lock-guarded store for the login :class:`~desklogin.models.Session`.

The session lives in one JSON file (by default
``~/.local/share/desklogin/session.json``). Writes are atomic via
:func:`~desklogin.config.atomic_write` with ``0o600`` permissions so the
refresh token is never world-readable, even momentarily.

Reading is forgiving: a missing, unreadable, or corrupt file yields a fresh
empty session instead of an error, and the next login simply starts from
scratch.

The in-memory session is shared between concurrent command handlers, so
every read and write goes through one re-entrant lock::

    store = SessionStore(path)
    with store.locked() as session:
        if session.is_authenticated:
            ...
    store.replace(Session(profile=profile, refresh_token=token))
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from desklogin.config import atomic_write
from desklogin.exceptions import StorageError
from desklogin.models import Session

logger = logging.getLogger(__name__)


class SessionStore:
    """Load-or-initialize, replace-in-full storage for the login session.

    Args:
        path: Location of the session file.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()
        self._session: Optional[Session] = None

    @property
    def path(self) -> Path:
        """The filesystem path to the session file."""
        return self._path

    def load(self) -> Session:
        """Read the session from disk.

        Returns:
            The stored :class:`~desklogin.models.Session`, or an empty one
            if the file is missing, unreadable, or does not parse.
        """
        if not self._path.is_file():
            return Session()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return Session.model_validate(data)
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", self._path, exc)
            return Session()

    def save(self, session: Session) -> None:
        """Overwrite the session file with *session*.

        Raises:
            StorageError: If the file cannot be written.
        """
        text = json.dumps(session.to_storage(), indent=2) + "\n"
        try:
            atomic_write(self._path, text, mode=0o600)
        except OSError as exc:
            raise StorageError(f"Cannot write session file {self._path}: {exc}") from exc

    @contextmanager
    def locked(self) -> Iterator[Session]:
        """Hold the store lock and yield the live in-memory session.

        The session is loaded from disk on first access. Callers must not
        keep the yielded object beyond the ``with`` block.
        """
        with self._lock:
            if self._session is None:
                self._session = self.load()
            yield self._session

    def replace(self, session: Session, strict: bool = True) -> None:
        """Persist *session*, then make it the live session.

        With ``strict`` (the default) the live session only changes once
        the write succeeded, so memory and disk never disagree. Clearing a
        session passes ``strict=False``: a failed write is logged and the
        in-memory session is cleared anyway.

        Raises:
            StorageError: If the file cannot be written and ``strict`` is
                set. The live session is left untouched.
        """
        with self._lock:
            try:
                self.save(session)
            except StorageError as exc:
                if strict:
                    raise
                logger.error("%s; keeping the change in memory only", exc)
            self._session = session.model_copy(deep=True)

    def snapshot(self) -> Session:
        """Return a deep copy of the live session."""
        with self.locked() as session:
            return session.model_copy(deep=True)
