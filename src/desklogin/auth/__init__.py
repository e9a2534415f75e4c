"""OAuth2 Authorization Code + PKCE login for a single desktop user.

This package holds the login core:

- :mod:`~desklogin.auth.pkce` -- PKCE verifier/challenge and CSRF state.
- :mod:`~desklogin.auth.authorize` -- authorization URL construction.
- :mod:`~desklogin.auth.listener` -- loopback redirect listener.
- :mod:`~desklogin.auth.cancellation` -- deadline / window-closed cancellation.
- :mod:`~desklogin.auth.token_exchange` -- token and user-info endpoints.
- :mod:`~desklogin.auth.window` -- login window interface and browser default.
- :mod:`~desklogin.auth.session_store` -- persisted, lock-guarded session.
- :mod:`~desklogin.auth.orchestrator` -- the login / logout sequences.

Typical usage::

    from desklogin.auth import create_orchestrator
    from desklogin.config import load_settings

    orchestrator = create_orchestrator(load_settings())
    profile = orchestrator.get_user()
"""

from __future__ import annotations

from typing import Callable, Optional

from desklogin.auth.cancellation import CancelReason, CancelToken, CancellationCoordinator
from desklogin.auth.listener import ListenerOutcome, OutcomeKind, RedirectListener
from desklogin.auth.orchestrator import (
    LoginAttempt,
    LoginOrchestrator,
    LoginOutcome,
    LoginResult,
)
from desklogin.auth.pkce import PKCEPair, generate_pkce_pair, new_state
from desklogin.auth.session_store import SessionStore
from desklogin.auth.token_exchange import TokenExchanger
from desklogin.auth.window import BrowserWindow, LoginWindow
from desklogin.models import LoginSettings


def create_orchestrator(
    settings: LoginSettings,
    window_factory: Optional[Callable[[], LoginWindow]] = None,
) -> LoginOrchestrator:
    """Build a :class:`LoginOrchestrator` wired to the configured session file.

    Args:
        settings: Validated login settings.
        window_factory: Login window provider; defaults to the system browser.

    Returns:
        A ready-to-use orchestrator.
    """
    from desklogin.config import session_path

    return LoginOrchestrator(
        settings,
        SessionStore(session_path(settings)),
        window_factory=window_factory or BrowserWindow,
    )


__all__ = [
    "BrowserWindow",
    "CancelReason",
    "CancelToken",
    "CancellationCoordinator",
    "ListenerOutcome",
    "LoginAttempt",
    "LoginOrchestrator",
    "LoginOutcome",
    "LoginResult",
    "LoginWindow",
    "OutcomeKind",
    "PKCEPair",
    "RedirectListener",
    "SessionStore",
    "TokenExchanger",
    "create_orchestrator",
    "generate_pkce_pair",
    "new_state",
]
