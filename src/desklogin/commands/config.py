"""Config commands -- view and modify the login configuration.

Provides the ``desklogin config`` sub-command group for reading and
updating the config file (see :func:`~desklogin.config.config_file_path`).
Values are validated against :class:`~desklogin.models.LoginSettings`
before they are saved.
"""

from __future__ import annotations

from typing import Any

import typer

from desklogin.output import error, format_response, info, print_data, success


config_app = typer.Typer(no_args_is_help=True)

_SECRET_KEYS = ("client_secret",)
_SOURCE_KEYS = ("client_id_source", "client_secret_source")
_PLACEHOLDER_CREDENTIALS = {"client_id": "placeholder", "client_secret": "placeholder"}


def _mask(value: Any) -> Any:
    if not isinstance(value, str) or not value:
        return value
    return "****" + value[-4:] if len(value) > 8 else "****"


@config_app.command("show")
def config_show() -> None:
    """Show the config file contents.

    The client secret is masked. Credentials given as ``env:`` or
    ``file:`` sources are shown as the descriptor, never resolved.

    Example::

        desklogin config show
        desklogin --json config show
    """
    from desklogin.config import config_file_path, load_config_file

    data = load_config_file()
    for key in _SECRET_KEYS:
        if key in data:
            data[key] = _mask(data[key])
    info(f"Config file: {config_file_path()}")
    format_response(data)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Setting name (e.g. 'client_id', 'redirect_port', 'scopes')."
    ),
    value: str = typer.Argument(
        help="Value to set. Separate multiple scopes with spaces or commas."
    ),
) -> None:
    """Set a configuration value.

    The value is coerced to the setting's type and the resulting
    configuration is validated before it is written.

    Args:
        key: A :class:`~desklogin.models.LoginSettings` field name, or
            ``client_id_source`` / ``client_secret_source``.
        value: String value to set.

    Raises:
        typer.Exit: With code 2 if the key is unknown or the value fails
            validation.

    Example::

        desklogin config set client_id 1234.apps.googleusercontent.com
        desklogin config set client_secret_source env:GOOGLE_CLIENT_SECRET
        desklogin config set redirect_port 8765
        desklogin config set scopes "openid profile email"
    """
    from pydantic import ValidationError

    from desklogin.config import load_config_file, save_config_file
    from desklogin.models import LoginSettings

    fields = LoginSettings.model_fields
    if key not in fields and key not in _SOURCE_KEYS:
        error(f"Unknown config key: {key}")
        info(f"Valid keys: {', '.join(sorted([*fields, *_SOURCE_KEYS]))}")
        raise typer.Exit(code=2)

    data = load_config_file()
    if key == "scopes":
        data[key] = value.replace(",", " ").split()
    else:
        data[key] = value

    if key in _SOURCE_KEYS:
        coerced: Any = value
    else:
        candidate = {**_PLACEHOLDER_CREDENTIALS, **data}
        try:
            settings = LoginSettings.model_validate(candidate)
        except ValidationError as exc:
            error(f"Validation error: {exc}")
            raise typer.Exit(code=2) from None
        coerced = settings.model_dump(mode="json")[key]
        data[key] = coerced

    save_config_file(data)
    shown = _mask(coerced) if key in _SECRET_KEYS else coerced
    success(f"Set {key} = {shown}")


@config_app.command("path")
def config_path() -> None:
    """Print the config file location.

    Example::

        desklogin config path
    """
    from desklogin.config import config_file_path

    print_data(str(config_file_path()))
