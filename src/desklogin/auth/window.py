"""Login window facility.

The orchestrator needs something that can show the provider's consent page
and, ideally, report when the user dismisses it. Embedding applications
implement :class:`LoginWindow` on top of their own webview toolkit;
:class:`BrowserWindow` is the default that hands the URL to the system
browser through :mod:`webbrowser`.

See Also:
    :class:`desklogin.auth.cancellation.CancellationCoordinator`, which
    supplies the ``on_closed`` callback.
"""

from __future__ import annotations

import logging
import threading
import webbrowser
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)


class LoginWindow(ABC):
    """A window that displays the authorization URL.

    Implementations call ``on_closed`` (from any thread) when the user
    closes the window before the flow completes. Calling it after the
    attempt has ended is harmless.
    """

    @abstractmethod
    def open(self, url: str, on_closed: Callable[[], None]) -> None:
        """Show *url* to the user.

        Args:
            url: The provider authorization URL.
            on_closed: Callback to invoke if the user dismisses the window.

        Raises:
            OSError: If the window cannot be shown at all.
        """
        ...

    def close(self) -> None:
        """Dismiss the window once the attempt is over. Default: no-op."""


class BrowserWindow(LoginWindow):
    """Open the authorization URL in the user's default browser.

    A browser tab cannot report being closed, so only the deadline can
    cancel an attempt started through this window.
    """

    def open(self, url: str, on_closed: Callable[[], None]) -> None:
        def open_browser() -> None:
            if not webbrowser.open(url):
                logger.warning("No browser available; open this URL to sign in: %s", url)

        # webbrowser.open can block on some platforms
        threading.Thread(target=open_browser, daemon=True).start()
