"""Authorization endpoint URL construction."""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode

from desklogin.models import LoginSettings


def build_authorization_url(
    settings: LoginSettings,
    *,
    challenge: str,
    state: str,
    login_hint: Optional[str] = None,
) -> str:
    """Build the provider authorization URL for one login attempt.

    ``access_type=offline`` is always requested so that the code exchange
    also yields a refresh token. Every value is URL-encoded; an
    authorization endpoint that already carries a query string is extended
    rather than replaced.

    Args:
        settings: Client id, endpoint, redirect URI and scopes.
        challenge: PKCE ``S256`` code challenge.
        state: CSRF token echoed back on the callback.
        login_hint: Optional known email used to pre-fill the provider's
            sign-in form.

    Returns:
        The absolute authorization URL.
    """
    params: dict[str, str] = {
        "response_type": "code",
        "client_id": settings.client_id,
        "redirect_uri": settings.redirect_uri,
        "scope": " ".join(settings.scopes),
        "state": state,
        "code_challenge": challenge,
        "code_challenge_method": "S256",
        "access_type": "offline",
    }
    if login_hint:
        params["login_hint"] = login_hint

    separator = "&" if "?" in settings.authorization_url else "?"
    return f"{settings.authorization_url}{separator}{urlencode(params)}"
