"""Token endpoint and user-info calls against the identity provider.

:class:`TokenExchanger` wraps the three provider calls the login sequence
needs:

1. :meth:`~TokenExchanger.exchange_code` -- authorization code + PKCE
   verifier for a token pair.
2. :meth:`~TokenExchanger.exchange_refresh_token` -- stored refresh token
   for a fresh access token (no PKCE material).
3. :meth:`~TokenExchanger.fetch_user_profile` -- access token for the
   user's profile.

Every call fails closed: any transport error, non-2xx status, provider
``error`` payload, or missing ``access_token`` raises, and nothing is
retried. Provider-side errors such as a denied consent or a revoked grant
are not transient.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from desklogin.exceptions import ProfileFetchError, TokenExchangeError, TransportError
from desklogin.models import LoginSettings, TokenPair, UserProfile

logger = logging.getLogger(__name__)


class TokenExchanger:
    """Synchronous client for the provider's token and user-info endpoints.

    Args:
        settings: Validated login settings (endpoints, client credentials,
            redirect URI, request timeout).
    """

    def __init__(self, settings: LoginSettings) -> None:
        self._settings = settings

    def exchange_code(self, code: str, code_verifier: str) -> TokenPair:
        """Exchange an authorization code for access and refresh tokens.

        Args:
            code: The authorization code received on the redirect.
            code_verifier: The PKCE verifier generated for this attempt.

        Returns:
            The parsed :class:`~desklogin.models.TokenPair`.

        Raises:
            TransportError: If the token endpoint cannot be reached.
            TokenExchangeError: On a non-2xx response, an OAuth error
                payload, or a response without ``access_token``.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "code_verifier": code_verifier,
            "redirect_uri": self._settings.redirect_uri,
        }
        return self._post_token_request(data, "Token exchange")

    def exchange_refresh_token(self, refresh_token: str) -> TokenPair:
        """Exchange a stored refresh token for a new access token.

        Providers usually do not rotate the refresh token on this grant; the
        returned pair then has ``refresh_token=None`` and the caller keeps the
        one it already has.

        Args:
            refresh_token: The persisted refresh token.

        Returns:
            The parsed :class:`~desklogin.models.TokenPair`.

        Raises:
            TransportError: If the token endpoint cannot be reached.
            TokenExchangeError: If the token was rejected (expired, revoked)
                or the response is unusable. The refresh token must then be
                treated as dead.
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        return self._post_token_request(data, "Token refresh")

    def fetch_user_profile(self, access_token: str) -> UserProfile:
        """Read the signed-in user's profile from the user-info endpoint.

        Args:
            access_token: A bearer token from a successful exchange.

        Returns:
            The user's :class:`~desklogin.models.UserProfile`.

        Raises:
            TransportError: If the endpoint cannot be reached.
            ProfileFetchError: On a non-2xx response or a payload that does
                not identify a user.
        """
        try:
            response = httpx.get(
                self._settings.userinfo_url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
                timeout=self._settings.request_timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise ProfileFetchError(
                f"User-info request failed with status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"User-info request failed: {exc}") from exc
        except ValueError as exc:
            raise ProfileFetchError(f"User-info response is not JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise ProfileFetchError("User-info response is not a JSON object")

        try:
            profile = UserProfile.model_validate(payload)
        except ValueError as exc:
            raise ProfileFetchError(f"User-info response is malformed: {exc}") from exc
        if profile.is_empty:
            raise ProfileFetchError("User-info response has neither 'id' nor 'email'")
        logger.debug("Fetched user profile for %s", profile.email or profile.id)
        return profile

    def _post_token_request(self, data: dict[str, str], label: str) -> TokenPair:
        """POST a grant to the token endpoint and parse the answer.

        Client credentials are added to the form body.
        """
        data = {
            **data,
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
        }

        try:
            response = httpx.post(
                self._settings.token_url,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self._settings.request_timeout,
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"{label} failed: {exc}") from exc

        token_data = _json_or_none(response)
        if not response.is_success:
            provider_error = token_data.get("error") if token_data else None
            detail = provider_error or f"HTTP {response.status_code}"
            if token_data and token_data.get("error_description"):
                detail = f"{detail}: {token_data['error_description']}"
            raise TokenExchangeError(
                f"{label} failed with status {response.status_code} ({detail})",
                provider_error=provider_error,
            )

        if token_data is None:
            raise TokenExchangeError(f"{label} response is not a JSON object")
        if token_data.get("error"):
            raise TokenExchangeError(
                f"{label} failed: {token_data['error']}",
                provider_error=token_data["error"],
            )
        if not token_data.get("access_token"):
            raise TokenExchangeError(f"{label} response missing 'access_token' field")

        try:
            return TokenPair.from_response(token_data)
        except (TypeError, ValueError) as exc:
            raise TokenExchangeError(f"{label} response is malformed: {exc}") from exc


def _json_or_none(response: httpx.Response) -> dict[str, Any] | None:
    """Return the response body as a dict, or ``None`` if it is not a JSON object."""
    try:
        payload = response.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None
