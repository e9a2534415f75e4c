"""Session commands -- sign in, sign out, inspect, and serve a UI process.

``get-user`` and ``logout`` run the same sequences a UI process reaches
through ``serve``, and report the outcome through the exit code:

* ``0`` -- a profile is available (freshly signed in or cached).
* ``8`` -- the login was not completed (timeout or window closed).
* ``3`` -- the login failed.

The profile JSON is always printed to stdout, empty when nobody is signed
in, so scripts can parse the output regardless of the exit code.
"""

from __future__ import annotations

import sys

import typer

from desklogin.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_LOGIN_NOT_COMPLETED,
    EXIT_SUCCESS,
)
from desklogin.output import error, format_response, info, success, suggest, warning


def _build_orchestrator():
    """Load settings and build the orchestrator, exiting on bad configuration."""
    from desklogin.auth import create_orchestrator
    from desklogin.config import config_file_path, load_settings
    from desklogin.exceptions import ConfigError

    try:
        settings = load_settings()
    except ConfigError as exc:
        error(str(exc))
        suggest(f"Edit {config_file_path()} or run 'desklogin config set client_id ...'")
        raise typer.Exit(code=exc.exit_code) from None
    return create_orchestrator(settings)


def _report(result) -> None:
    """Print the profile and exit with the code matching *result*."""
    from desklogin.auth.orchestrator import LoginOutcome

    format_response(result.profile.to_wire())

    if result.outcome is LoginOutcome.AUTHENTICATED:
        success(f"Signed in as {result.profile.email or result.profile.id}")
        code = EXIT_SUCCESS
    elif result.outcome is LoginOutcome.CACHED:
        info(f"Already signed in as {result.profile.email or result.profile.id}")
        code = EXIT_SUCCESS
    elif result.outcome is LoginOutcome.NOT_COMPLETED:
        warning(result.reason or "Login not completed")
        code = EXIT_LOGIN_NOT_COMPLETED
    else:
        error(f"Authentication failed: {result.reason}")
        code = EXIT_AUTH_FAILURE
    raise typer.Exit(code=code)


def get_user_command() -> None:
    """Print the signed-in user's profile, signing in first if needed.

    Reuses the cached session when there is one, then tries the stored
    refresh token, and only then opens the browser for an interactive
    login.

    Example::

        desklogin get-user
        desklogin --json get-user
    """
    orchestrator = _build_orchestrator()
    _report(orchestrator.get_user_result())


def logout_command() -> None:
    """Sign out and immediately sign in again.

    The cleared session is saved before the new login starts, so nobody is
    signed in on disk if that login fails.

    Example::

        desklogin logout
    """
    orchestrator = _build_orchestrator()
    _report(orchestrator.logout_result())


def status_command() -> None:
    """Show the stored session without contacting the provider.

    The refresh token itself is never printed, only whether one is stored.

    Example::

        desklogin status
        desklogin --json status
    """
    from desklogin.auth.session_store import SessionStore
    from desklogin.config import configured_session_path

    store = SessionStore(configured_session_path())
    session = store.load()
    format_response(
        {
            "authenticated": session.is_authenticated,
            "user": session.profile.to_wire(),
            "refresh_token_stored": bool(session.refresh_token),
            "session_file": str(store.path),
        }
    )


def serve_command(
    workers: int = typer.Option(
        4, "--workers", min=1, help="Maximum number of requests handled at once."
    ),
) -> None:
    """Answer JSON-lines commands on stdin until end of input.

    Each input line is a request such as ``{"tag": "get_user", "id": 1}``;
    each reply is one JSON line on stdout. Diagnostics go to stderr.

    Example::

        echo '{"tag": "get_user", "id": 1}' | desklogin serve
    """
    from desklogin.bridge import CommandBridge, serve

    bridge = CommandBridge(_build_orchestrator())
    info(f"Serving commands: {', '.join(bridge.tags)}")
    serve(bridge, sys.stdin, sys.stdout, max_workers=workers)
