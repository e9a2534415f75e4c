"""Tests for authorization URL construction."""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

from desklogin.auth.authorize import build_authorization_url
from desklogin.models import LoginSettings


def _query(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


class TestBuildAuthorizationUrl:
    def test_required_parameters(self, settings: LoginSettings) -> None:
        url = build_authorization_url(settings, challenge="chal", state="st")
        params = _query(url)

        assert url.startswith("https://auth.example.com/authorize?")
        assert params == {
            "response_type": "code",
            "client_id": "test-client-id",
            "redirect_uri": "http://127.0.0.1:8765/",
            "scope": "profile email",
            "state": "st",
            "code_challenge": "chal",
            "code_challenge_method": "S256",
            "access_type": "offline",
        }

    def test_login_hint_included_when_given(self, settings: LoginSettings) -> None:
        url = build_authorization_url(
            settings, challenge="c", state="s", login_hint="ada@example.com"
        )
        assert _query(url)["login_hint"] == "ada@example.com"

    def test_login_hint_omitted_when_empty(self, settings: LoginSettings) -> None:
        url = build_authorization_url(settings, challenge="c", state="s", login_hint="")
        assert "login_hint" not in _query(url)

    def test_values_are_url_encoded(self, settings: LoginSettings) -> None:
        url = build_authorization_url(
            settings, challenge="c", state="a b&c=d", login_hint="ada+x@example.com"
        )
        assert "a+b%26c%3Dd" in url
        params = _query(url)
        assert params["state"] == "a b&c=d"
        assert params["login_hint"] == "ada+x@example.com"

    def test_redirect_uri_is_encoded(self, settings: LoginSettings) -> None:
        url = build_authorization_url(settings, challenge="c", state="s")
        assert "redirect_uri=http%3A%2F%2F127.0.0.1%3A8765%2F" in url

    def test_existing_query_string_is_extended(self, settings: LoginSettings) -> None:
        custom = settings.model_copy(
            update={"authorization_url": "https://auth.example.com/authorize?prompt=consent"}
        )
        url = build_authorization_url(custom, challenge="c", state="s")
        params = _query(url)
        assert params["prompt"] == "consent"
        assert params["state"] == "s"
        assert url.count("?") == 1

    def test_custom_scopes(self, settings: LoginSettings) -> None:
        custom = settings.model_copy(update={"scopes": ["openid", "email"]})
        url = build_authorization_url(custom, challenge="c", state="s")
        assert _query(url)["scope"] == "openid email"
