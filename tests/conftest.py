"""Shared test fixtures for desklogin.

Provides isolated config environments, ready-made login settings, a
session store in a temporary directory, and output state management.
These fixtures are automatically discovered by pytest and available to all
test modules without explicit imports.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from desklogin.auth.session_store import SessionStore
from desklogin.models import LoginSettings, Session, UserProfile
from desklogin.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use. The ``desklogin`` logger configured by
    ``setup_logging`` is restored so later tests can use ``caplog``.
    """
    yield
    reset_output()
    logger = logging.getLogger("desklogin")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path so
    that tests never touch real user config or sessions, and clears all
    DESKLOGIN_* environment variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("desklogin.config._is_xdg_platform", lambda: True)

    for var in [
        "DESKLOGIN_CLIENT_ID",
        "DESKLOGIN_CLIENT_SECRET",
        "DESKLOGIN_LOGIN_HINT",
        "DESKLOGIN_SESSION_FILE",
        "DESKLOGIN_CONFIG",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Settings and session fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> LoginSettings:
    """Login settings pointing at a fake provider and a temp session file."""
    return LoginSettings(
        client_id="test-client-id",
        client_secret="test-client-secret",
        authorization_url="https://auth.example.com/authorize",
        token_url="https://auth.example.com/token",
        userinfo_url="https://api.example.com/userinfo",
        login_timeout=5.0,
        request_timeout=5.0,
        session_file=str(tmp_path / "session.json"),
    )


@pytest.fixture
def session_store(tmp_path: Path) -> SessionStore:
    """An empty session store backed by a temp file."""
    return SessionStore(tmp_path / "session.json")


@pytest.fixture
def ada() -> UserProfile:
    """A fully populated user profile."""
    return UserProfile(
        id="1089",
        email="ada@example.com",
        verified_email=True,
        display_name="Ada Lovelace",
        given_name="Ada",
        family_name="Lovelace",
        picture_url="https://example.com/ada.png",
        locale="en",
    )


@pytest.fixture
def signed_in_store(session_store: SessionStore, ada: UserProfile) -> SessionStore:
    """A session store that already holds Ada's session and a refresh token."""
    session_store.replace(Session(profile=ada, refresh_token="stored-refresh-token"))
    return session_store


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Set up a quiet output manager for tests that don't care about output.

    Installs a PLAIN-format, quiet OutputManager as the global output
    and resets it after the test completes.
    """
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Set up JSON output for tests that check JSON-formatted output.

    Installs a JSON-format OutputManager as the global output
    and resets it after the test completes.
    """
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner.

    Returns a CliRunner instance that captures stdout/stderr and
    provides a consistent interface for invoking Typer apps in tests.
    """
    from typer.testing import CliRunner

    return CliRunner()
