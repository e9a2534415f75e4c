"""Canonical Pydantic models shared across all desklogin modules.

The models fall into two groups:

**Persisted / wire models** -- serialised as JSON, either into the session
file or onto the command surface consumed by the UI process:
    :class:`UserProfile` and :class:`Session`.

**Runtime models** -- never persisted:
    :class:`TokenPair` (the token endpoint's answer) and
    :class:`LoginSettings` (validated configuration).

All models use Pydantic v2. JSON forms use the identity provider's
field names (``name``, ``picture``) so that a profile can be handed to the
UI unchanged; Python attribute names stay descriptive.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
)


GOOGLE_AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

DEFAULT_REDIRECT_HOST = "127.0.0.1"
DEFAULT_REDIRECT_PORT = 8765
DEFAULT_LOGIN_TIMEOUT = 25.0


# --- Profile and session ---


class UserProfile(BaseModel):
    """The signed-in user's display data, sourced from the user-info endpoint.

    There is no ``None`` variant: an unauthenticated state is an instance
    whose string fields are all empty and whose ``verified_email`` is
    ``False``, which keeps UI bindings trivial.

    Validation accepts both the OAuth2 v2 user-info names (``id``,
    ``verified_email``) and their OpenID Connect equivalents (``sub``,
    ``email_verified``). JSON ``null`` values fall back to the field default.

    Example::

        profile = UserProfile.model_validate(
            {"id": "1089", "email": "ada@example.com", "name": "Ada"}
        )
        assert profile.display_name == "Ada"
        assert profile.to_wire()["name"] == "Ada"
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default="", validation_alias=AliasChoices("id", "sub"))
    email: str = ""
    verified_email: bool = Field(
        default=False,
        validation_alias=AliasChoices("verified_email", "email_verified"),
    )
    display_name: str = Field(
        default="",
        validation_alias=AliasChoices("display_name", "name"),
        serialization_alias="name",
    )
    given_name: str = ""
    family_name: str = ""
    picture_url: str = Field(
        default="",
        validation_alias=AliasChoices("picture_url", "picture"),
        serialization_alias="picture",
    )
    locale: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _null_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].default
        return value

    @property
    def is_empty(self) -> bool:
        """Whether this profile represents "nobody is signed in"."""
        return not self.id and not self.email

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready dict handed to the UI layer."""
        return self.model_dump(mode="json", by_alias=True)


class Session(BaseModel):
    """The persisted login state: who is signed in, and how to re-login silently.

    Owned by :class:`~desklogin.auth.session_store.SessionStore`. The
    refresh token is only ever stored together with the profile fetched
    using the same token exchange.
    """

    profile: UserProfile = Field(default_factory=UserProfile)
    refresh_token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        """``True`` when a non-empty profile is present."""
        return not self.profile.is_empty

    def to_storage(self) -> dict[str, Any]:
        """Return the dict written to the session file."""
        return {
            "profile": self.profile.to_wire(),
            "refresh_token": self.refresh_token,
        }


# --- Token endpoint ---


class TokenPair(BaseModel):
    """Tokens returned by a successful token-endpoint call.

    Transient: only :attr:`refresh_token` ever reaches the session file.
    """

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scopes: frozenset[str] = Field(default_factory=frozenset)
    token_type: str = "Bearer"

    @classmethod
    def from_response(
        cls, data: dict[str, Any], now: Optional[datetime] = None
    ) -> TokenPair:
        """Build a token pair from a token endpoint JSON payload.

        Args:
            data: Parsed JSON body. Must contain ``access_token``.
            now: Reference time for ``expires_in`` (defaults to UTC now).

        Returns:
            The parsed :class:`TokenPair`.

        Raises:
            ValueError: If a field has the wrong type (pydantic's
                ``ValidationError`` included) or ``expires_in`` is not a
                usable number of seconds.
        """
        expires_at = None
        expires_in = data.get("expires_in")
        if expires_in is not None:
            now = now or datetime.now(timezone.utc)
            try:
                expires_at = now + timedelta(seconds=float(expires_in))
            except (TypeError, OverflowError) as exc:
                raise ValueError(f"invalid expires_in {expires_in!r}") from exc

        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or None,
            expires_at=expires_at,
            scopes=_parse_scope(data.get("scope")),
            token_type=data.get("token_type") or "Bearer",
        )


def _parse_scope(value: Any) -> frozenset[str]:
    """Granted scopes from a ``scope`` value: space-delimited, or a list of names."""
    if not value:
        return frozenset()
    if isinstance(value, str):
        return frozenset(value.split())
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return frozenset(value)
    raise ValueError(f"invalid scope {value!r}")


# --- Configuration ---


def _require_http_url(value: str, field_name: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"{field_name} must be an absolute http(s) URL, got {value!r}")
    return value


class LoginSettings(BaseModel):
    """Validated configuration for the login core.

    ``client_id`` and ``client_secret`` are mandatory: constructing
    settings without them fails, and :func:`~desklogin.config.load_settings`
    turns that failure into a startup-fatal
    :class:`~desklogin.exceptions.ConfigError`.

    The redirect address is fixed (not an ephemeral port) because it must
    match the redirect URI registered with the provider exactly.
    """

    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    authorization_url: str = GOOGLE_AUTHORIZATION_URL
    token_url: str = GOOGLE_TOKEN_URL
    userinfo_url: str = GOOGLE_USERINFO_URL
    redirect_host: str = DEFAULT_REDIRECT_HOST
    redirect_port: int = Field(default=DEFAULT_REDIRECT_PORT, ge=1, le=65535)
    redirect_path: str = "/"
    scopes: list[str] = Field(default_factory=lambda: ["profile", "email"], min_length=1)
    login_hint: Optional[str] = None
    login_timeout: float = Field(default=DEFAULT_LOGIN_TIMEOUT, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)
    session_file: Optional[str] = None

    @field_validator("client_id", "client_secret")
    @classmethod
    def _strip_credential(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("authorization_url", "token_url", "userinfo_url")
    @classmethod
    def _check_url(cls, value: str, info: ValidationInfo) -> str:
        return _require_http_url(value, info.field_name)

    @field_validator("redirect_path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"

    @property
    def redirect_uri(self) -> str:
        """The loopback redirect URI sent to the provider."""
        return f"http://{self.redirect_host}:{self.redirect_port}{self.redirect_path}"
