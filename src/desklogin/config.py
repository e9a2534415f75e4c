"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for desklogin:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.desklogin/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Config file** -- a single JSON file (``config.json``) with the raw
  settings. Managed via :func:`load_config_file` / :func:`save_config_file`.
* **Precedence resolution** -- :func:`load_settings` merges environment
  variables, the config file, and defaults into a validated
  :class:`~desklogin.models.LoginSettings`.
* **Credential resolution** -- :func:`resolve_credential` reads the client
  id or secret from env vars or files.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from desklogin.exceptions import ConfigError
from desklogin.models import LoginSettings

_APP_NAME = "desklogin"
_CONFIG_FILENAME = "config.json"
_SESSION_FILENAME = "session.json"

ENV_CLIENT_ID = "DESKLOGIN_CLIENT_ID"
ENV_CLIENT_SECRET = "DESKLOGIN_CLIENT_SECRET"
ENV_LOGIN_HINT = "DESKLOGIN_LOGIN_HINT"
ENV_SESSION_FILE = "DESKLOGIN_SESSION_FILE"
ENV_CONFIG_FILE = "DESKLOGIN_CONFIG"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/desklogin/`` (default ``~/.config/desklogin/``).
    On macOS/Windows: ``~/.desklogin/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (session file, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/desklogin/`` (default ``~/.local/share/desklogin/``).
    On macOS/Windows: ``~/.desklogin/data/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def config_file_path() -> Path:
    """Path to the config file, honouring ``$DESKLOGIN_CONFIG``."""
    override = os.environ.get(ENV_CONFIG_FILE)
    if override:
        return Path(override).expanduser()
    return get_config_dir() / _CONFIG_FILENAME


def default_session_path() -> Path:
    """Default location of the persisted session file."""
    return get_data_dir() / _SESSION_FILENAME


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    When *mode* is given, permissions are applied before any content is
    written so that secrets are never exposed, even momentarily.

    Raises:
        OSError: If the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Config file ---


def load_config_file() -> dict[str, Any]:
    """Load the raw config file.

    Returns:
        The parsed JSON object, or an empty dict if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a valid JSON object.
    """
    path = config_file_path()
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError, OSError) as exc:
        raise ConfigError(f"Invalid config file at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config file at {path}: expected a JSON object")
    return data


def save_config_file(data: dict[str, Any]) -> None:
    """Persist the raw config atomically with ``0o600`` permissions.

    The file may hold the client secret, so it is never world-readable.
    """
    atomic_write(config_file_path(), json.dumps(data, indent=2) + "\n", mode=0o600)


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace

    Args:
        source: The source descriptor string.

    Returns:
        The resolved credential string.

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    raise ConfigError(f"Unknown credential source format: {source}")


# --- Precedence resolution ---


def _resolve_secret(
    data: dict[str, Any], key: str, env_var: str
) -> Optional[str]:
    """Pick a credential: env var > ``<key>_source`` descriptor > literal value."""
    env_value = os.environ.get(env_var)
    if env_value:
        return env_value
    source = data.pop(f"{key}_source", None)
    if source:
        return resolve_credential(source)
    return data.get(key)


def load_settings() -> LoginSettings:
    """Resolve and validate the login settings.

    Precedence (high to low):
        1. Environment variables (``DESKLOGIN_CLIENT_ID``,
           ``DESKLOGIN_CLIENT_SECRET``, ``DESKLOGIN_LOGIN_HINT``,
           ``DESKLOGIN_SESSION_FILE``)
        2. Config file (``~/.config/desklogin/config.json``), where the
           client id and secret may be given literally or through
           ``client_id_source`` / ``client_secret_source`` descriptors
        3. Defaults

    Returns:
        The validated :class:`~desklogin.models.LoginSettings`.

    Raises:
        ConfigError: If the client id or secret is missing, a credential
            source cannot be resolved, or any value fails validation. This
            is fatal: no network operation may run without valid settings.
    """
    data = load_config_file()

    client_id = _resolve_secret(data, "client_id", ENV_CLIENT_ID)
    client_secret = _resolve_secret(data, "client_secret", ENV_CLIENT_SECRET)
    if not client_id:
        raise ConfigError(
            f"No OAuth client id configured (set {ENV_CLIENT_ID} or "
            "'client_id' in the config file)"
        )
    if not client_secret:
        raise ConfigError(
            f"No OAuth client secret configured (set {ENV_CLIENT_SECRET} or "
            "'client_secret' in the config file)"
        )
    data["client_id"] = client_id
    data["client_secret"] = client_secret

    env_hint = os.environ.get(ENV_LOGIN_HINT)
    if env_hint:
        data["login_hint"] = env_hint
    env_session = os.environ.get(ENV_SESSION_FILE)
    if env_session:
        data["session_file"] = env_session

    try:
        return LoginSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid login settings: {exc}") from exc


def session_path(settings: LoginSettings) -> Path:
    """Return the session file location for *settings*."""
    if settings.session_file:
        return Path(settings.session_file).expanduser()
    return default_session_path()


def configured_session_path() -> Path:
    """Resolve the session file location without requiring client credentials.

    Used by commands that only read local state (``desklogin status``), so
    they keep working before the OAuth client is configured.
    """
    env_session = os.environ.get(ENV_SESSION_FILE)
    if env_session:
        return Path(env_session).expanduser()
    configured = load_config_file().get("session_file")
    if configured:
        return Path(configured).expanduser()
    return default_session_path()
