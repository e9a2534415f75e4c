"""CLI tests for the root app and its built-in commands.

The orchestrator is replaced with a mock wherever a command would start a
real login; ``status`` and ``config`` run against an isolated config
directory. ``--quiet`` keeps diagnostics out of the captured stdout so the
JSON data can be parsed directly.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from desklogin import __version__
from desklogin.app import app
from desklogin.auth.orchestrator import LoginOrchestrator, LoginOutcome, LoginResult
from desklogin.auth.session_store import SessionStore
from desklogin.config import load_config_file
from desklogin.models import Session, UserProfile


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def credentials(isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("DESKLOGIN_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("DESKLOGIN_CLIENT_SECRET", "test-client-secret")
    return isolated_config


@pytest.fixture()
def fake_orchestrator(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    mock = MagicMock(spec=LoginOrchestrator)
    monkeypatch.setattr("desklogin.auth.create_orchestrator", lambda settings: mock)
    return mock


class TestRoot:
    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_help_lists_commands(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for name in ("get-user", "logout", "status", "serve", "config"):
            assert name in result.stdout


class TestGetUser:
    def test_authenticated(
        self,
        runner: CliRunner,
        credentials: Path,
        fake_orchestrator: MagicMock,
        ada: UserProfile,
    ) -> None:
        fake_orchestrator.get_user_result.return_value = LoginResult(
            LoginOutcome.AUTHENTICATED, ada
        )

        result = runner.invoke(app, ["--quiet", "get-user"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["email"] == "ada@example.com"

    def test_cached(
        self,
        runner: CliRunner,
        credentials: Path,
        fake_orchestrator: MagicMock,
        ada: UserProfile,
    ) -> None:
        fake_orchestrator.get_user_result.return_value = LoginResult(LoginOutcome.CACHED, ada)

        result = runner.invoke(app, ["--quiet", "get-user"])

        assert result.exit_code == 0

    def test_not_completed(
        self, runner: CliRunner, credentials: Path, fake_orchestrator: MagicMock
    ) -> None:
        fake_orchestrator.get_user_result.return_value = LoginResult(
            LoginOutcome.NOT_COMPLETED, reason="Login not completed: timeout"
        )

        result = runner.invoke(app, ["get-user"])

        assert result.exit_code == 8
        assert "Login not completed: timeout" in result.output

    def test_failed(
        self, runner: CliRunner, credentials: Path, fake_orchestrator: MagicMock
    ) -> None:
        fake_orchestrator.get_user_result.return_value = LoginResult(
            LoginOutcome.FAILED, reason="Provider refused the login: access_denied"
        )

        result = runner.invoke(app, ["get-user"])

        assert result.exit_code == 3
        assert "access_denied" in result.output

    def test_missing_configuration(self, runner: CliRunner, isolated_config: Path) -> None:
        result = runner.invoke(app, ["get-user"])

        assert result.exit_code == 78
        assert "client id" in result.output


class TestLogout:
    def test_logout_reports_relogin(
        self,
        runner: CliRunner,
        credentials: Path,
        fake_orchestrator: MagicMock,
        ada: UserProfile,
    ) -> None:
        fake_orchestrator.logout_result.return_value = LoginResult(
            LoginOutcome.AUTHENTICATED, ada
        )

        result = runner.invoke(app, ["--quiet", "logout"])

        assert result.exit_code == 0
        fake_orchestrator.logout_result.assert_called_once_with()
        fake_orchestrator.get_user_result.assert_not_called()


class TestStatus:
    def test_signed_out(self, runner: CliRunner, isolated_config: Path) -> None:
        result = runner.invoke(app, ["--quiet", "status"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["authenticated"] is False
        assert data["refresh_token_stored"] is False

    def test_signed_in_never_prints_refresh_token(
        self,
        runner: CliRunner,
        isolated_config: Path,
        monkeypatch: pytest.MonkeyPatch,
        ada: UserProfile,
    ) -> None:
        session_file = isolated_config / "session.json"
        SessionStore(session_file).save(Session(profile=ada, refresh_token="super-secret-rt"))
        monkeypatch.setenv("DESKLOGIN_SESSION_FILE", str(session_file))

        result = runner.invoke(app, ["--quiet", "status"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["authenticated"] is True
        assert data["user"]["email"] == "ada@example.com"
        assert data["refresh_token_stored"] is True
        assert data["session_file"] == str(session_file)
        assert "super-secret-rt" not in result.output


class TestServe:
    def test_answers_json_lines(
        self,
        runner: CliRunner,
        credentials: Path,
        fake_orchestrator: MagicMock,
        ada: UserProfile,
    ) -> None:
        fake_orchestrator.get_user.return_value = ada

        result = runner.invoke(
            app, ["--quiet", "serve"], input='{"tag": "get_user", "id": 42}\n'
        )

        assert result.exit_code == 0, result.output
        reply = json.loads(result.stdout.strip())
        assert reply["id"] == 42
        assert reply["user"]["email"] == "ada@example.com"


class TestConfigCommands:
    def test_path(self, runner: CliRunner, isolated_config: Path) -> None:
        result = runner.invoke(app, ["config", "path"])
        assert result.exit_code == 0
        assert result.stdout.strip() == str(
            isolated_config / "config" / "desklogin" / "config.json"
        )

    def test_set_and_show_masks_secret(self, runner: CliRunner, isolated_config: Path) -> None:
        assert runner.invoke(app, ["config", "set", "client_id", "my-client"]).exit_code == 0
        assert (
            runner.invoke(app, ["config", "set", "client_secret", "GOCSPX-abcdefgh1234"]).exit_code
            == 0
        )

        result = runner.invoke(app, ["--quiet", "config", "show"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["client_id"] == "my-client"
        assert data["client_secret"] == "****1234"
        assert "GOCSPX" not in result.output
        assert load_config_file()["client_secret"] == "GOCSPX-abcdefgh1234"

    def test_set_coerces_types(self, runner: CliRunner, isolated_config: Path) -> None:
        runner.invoke(app, ["config", "set", "redirect_port", "9004"])
        runner.invoke(app, ["config", "set", "scopes", "openid, email profile"])
        runner.invoke(app, ["config", "set", "login_timeout", "40"])

        data = load_config_file()
        assert data["redirect_port"] == 9004
        assert data["scopes"] == ["openid", "email", "profile"]
        assert data["login_timeout"] == 40.0

    def test_set_rejects_invalid_value(self, runner: CliRunner, isolated_config: Path) -> None:
        result = runner.invoke(app, ["config", "set", "redirect_port", "not-a-port"])

        assert result.exit_code == 2
        assert "redirect_port" not in load_config_file()

    def test_set_rejects_unknown_key(self, runner: CliRunner, isolated_config: Path) -> None:
        result = runner.invoke(app, ["config", "set", "colour", "blue"])

        assert result.exit_code == 2
        assert "Unknown config key" in result.output

    def test_set_credential_source(self, runner: CliRunner, isolated_config: Path) -> None:
        result = runner.invoke(
            app, ["config", "set", "client_secret_source", "env:GOOGLE_CLIENT_SECRET"]
        )

        assert result.exit_code == 0
        assert load_config_file()["client_secret_source"] == "env:GOOGLE_CLIENT_SECRET"
