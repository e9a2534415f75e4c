"""Exception hierarchy for desklogin.

All exceptions inherit from :class:`DeskloginError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`desklogin.exit_codes`.
The login orchestrator catches these and turns them into a
:class:`~desklogin.auth.orchestrator.LoginResult`; only
:class:`ConfigError` is expected to reach the CLI entry point, which exits
with the error's code.

Subclass hierarchy::

    DeskloginError (exit 1)
    +-- ConfigError              (exit 78)
    +-- AuthError                (exit 3)
    |   +-- TransportError       (exit 6)
    |   +-- TokenExchangeError   (exit 3)
    |   +-- ProfileFetchError    (exit 3)
    |   +-- StateMismatchError   (exit 3)
    |   +-- LoginNotCompleted    (exit 8)
    +-- ListenerBindError        (exit 9)
    +-- StorageError             (exit 1)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from desklogin.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONFIG_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_LISTENER_UNAVAILABLE,
    EXIT_LOGIN_NOT_COMPLETED,
)

if TYPE_CHECKING:
    from desklogin.auth.cancellation import CancelReason


class DeskloginError(Exception):
    """Base exception for all desklogin errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(DeskloginError):
    """Raised for missing or invalid configuration (client id, secret, endpoint URLs)."""

    exit_code = EXIT_CONFIG_ERROR


class AuthError(DeskloginError):
    """Raised when authenticating against the identity provider fails."""

    exit_code = EXIT_AUTH_FAILURE


class TransportError(AuthError):
    """Raised on network-level failures (DNS, connect, TLS, timeout) talking to the provider."""

    exit_code = EXIT_CONNECTION_ERROR


class TokenExchangeError(AuthError):
    """Raised when the token endpoint rejects a grant or returns an unusable payload.

    Args:
        message: Human-readable error description.
        provider_error: The OAuth ``error`` code returned by the provider,
            when there was one (e.g. ``"invalid_grant"``).
    """

    def __init__(self, message: str, provider_error: str | None = None):
        super().__init__(message)
        self.provider_error = provider_error


class ProfileFetchError(AuthError):
    """Raised when the user-info endpoint cannot be read with a fresh access token."""


class StateMismatchError(AuthError):
    """Raised when the callback ``state`` does not match the attempt's CSRF token."""


class LoginNotCompleted(AuthError):
    """Raised when an interactive login ends without a provider response.

    This is a cancellation, not a failure: the deadline elapsed or the user
    closed the login window.

    Args:
        reason: Which trigger cancelled the attempt.
    """

    exit_code = EXIT_LOGIN_NOT_COMPLETED

    def __init__(self, reason: CancelReason):
        super().__init__(f"Login not completed: {reason.value}")
        self.reason = reason


class ListenerBindError(DeskloginError):
    """Raised when the loopback redirect port cannot be bound.

    An occupied port usually means a previous attempt is still listening,
    so binding is never retried.
    """

    exit_code = EXIT_LISTENER_UNAVAILABLE


class StorageError(DeskloginError):
    """Raised when the session file cannot be written."""
