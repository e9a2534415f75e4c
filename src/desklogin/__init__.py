"""desklogin -- OAuth2 Authorization Code + PKCE login core for desktop apps.

This package signs a single local user in against an OAuth2 identity
provider. The interactive flow opens the provider's consent page in a login
window, completes on a transient loopback redirect listener, and persists the
resulting profile and refresh token so that later starts can re-login
silently.

Typical usage::

    from desklogin.auth import create_orchestrator
    from desklogin.config import load_settings

    orchestrator = create_orchestrator(load_settings())
    profile = orchestrator.get_user()

Modules:
    app: Typer application factory and CLI entry point.
    bridge: JSON command surface (``get_user`` / ``logout``) for a UI process.
    models: Pydantic models shared across the package.
    config: XDG-aware settings loading and credential source resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric process exit codes.
    output: stdout/stderr formatting and logging setup with Rich.
"""

__version__ = "0.1.0"
