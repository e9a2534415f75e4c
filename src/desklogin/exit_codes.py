"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific outcome and is referenced by the
corresponding :class:`~desklogin.exceptions.DeskloginError` subclass or by
the CLI when it reports a login result. Wrapper scripts can inspect the exit
code instead of parsing stderr.

Example::

    $ desklogin get-user
    $ echo $?
    8   # EXIT_LOGIN_NOT_COMPLETED -- the login window was closed
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed (provider error, rejected token, CSRF mismatch)."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred talking to the identity provider."""

EXIT_LOGIN_NOT_COMPLETED = 8
"""The interactive login timed out or the user closed the login window."""

EXIT_LISTENER_UNAVAILABLE = 9
"""The loopback redirect port is already bound by another process."""

EXIT_CONFIG_ERROR = 78
"""Required configuration (client id, secret, endpoints) is missing or invalid."""
