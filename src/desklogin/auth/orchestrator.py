"""Login orchestration: silent refresh first, interactive PKCE flow as fallback.

:class:`LoginOrchestrator` is the only component that mutates the
:class:`~desklogin.models.Session`. Its two public operations back the
external command surface:

- :meth:`~LoginOrchestrator.get_user` -- return the cached profile, or
  sign in and return the resulting profile.
- :meth:`~LoginOrchestrator.logout` -- clear and persist the session, then
  sign in again straight away.

Login sequence:

1. With a stored refresh token, try the refresh grant. On success skip to
   the profile fetch; on any failure discard the token and fall through,
   exactly once.
2. Interactive flow: bind the redirect listener, generate PKCE and CSRF
   state, open the login window with the authorization URL, and race the
   listener against the deadline and the window-closed signal.
3. Verify the callback ``state``. A mismatch aborts before any token call.
4. Exchange the code (with the PKCE verifier).
5. Fetch the user profile with the new access token.
6. Persist profile and refresh token together, only if 4 and 5 succeeded.

No step raises to the caller: failures come back as a
:class:`LoginResult` with an empty profile.
"""

from __future__ import annotations

import enum
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from desklogin.auth.authorize import build_authorization_url
from desklogin.auth.cancellation import CancelReason, CancelToken, CancellationCoordinator
from desklogin.auth.listener import ListenerOutcome, OutcomeKind, RedirectListener
from desklogin.auth.pkce import PKCEPair, generate_pkce_pair, new_state
from desklogin.auth.session_store import SessionStore
from desklogin.auth.token_exchange import TokenExchanger
from desklogin.auth.window import BrowserWindow, LoginWindow
from desklogin.exceptions import (
    AuthError,
    DeskloginError,
    LoginNotCompleted,
    StateMismatchError,
    StorageError,
)
from desklogin.models import LoginSettings, Session, TokenPair, UserProfile

logger = logging.getLogger(__name__)


class LoginOutcome(str, enum.Enum):
    """How a :meth:`LoginOrchestrator.get_user` or ``logout`` call ended."""

    AUTHENTICATED = "authenticated"
    CACHED = "cached"
    NOT_COMPLETED = "not_completed"
    FAILED = "failed"


@dataclass(frozen=True)
class LoginResult:
    """Outcome and profile of one orchestrator call.

    ``profile`` is empty unless ``outcome`` is ``AUTHENTICATED`` or
    ``CACHED``. ``reason`` is a human-readable explanation for the other
    outcomes.
    """

    outcome: LoginOutcome
    profile: UserProfile = field(default_factory=UserProfile)
    reason: str = ""

    @property
    def authenticated(self) -> bool:
        return self.outcome in (LoginOutcome.AUTHENTICATED, LoginOutcome.CACHED)


@dataclass
class LoginAttempt:
    """Ephemeral state of one interactive flow. Never persisted."""

    csrf_state: str
    pkce: PKCEPair
    redirect_port: int
    deadline: float
    cancel_token: CancelToken

    @classmethod
    def start(cls, redirect_port: int, timeout: float) -> LoginAttempt:
        return cls(
            csrf_state=new_state(),
            pkce=generate_pkce_pair(),
            redirect_port=redirect_port,
            deadline=time.monotonic() + timeout,
            cancel_token=CancelToken(),
        )

    def remaining(self) -> float:
        """Seconds left until :attr:`deadline`, never negative."""
        return max(0.0, self.deadline - time.monotonic())

    def matches_state(self, state: Optional[str]) -> bool:
        """Constant-time comparison of a callback ``state`` with this attempt's token."""
        if not state:
            return False
        return secrets.compare_digest(state.encode("utf-8"), self.csrf_state.encode("utf-8"))


class LoginOrchestrator:
    """Sequence refresh, interactive login, and profile fetch.

    Only one login or logout sequence runs at a time. A ``get_user`` call
    made while already authenticated only takes the session store's lock,
    so it returns the cached profile even while another caller is inside a
    sequence.

    Args:
        settings: Validated login settings.
        store: Session store holding the live session.
        exchanger: Provider client; built from *settings* when omitted.
        window_factory: Creates the :class:`~desklogin.auth.window.LoginWindow`
            for each interactive attempt.
        listener_factory: Creates the redirect listener from
            ``(host, port)``.
    """

    def __init__(
        self,
        settings: LoginSettings,
        store: SessionStore,
        exchanger: Optional[TokenExchanger] = None,
        window_factory: Callable[[], LoginWindow] = BrowserWindow,
        listener_factory: Callable[[str, int], RedirectListener] = RedirectListener,
    ) -> None:
        self._settings = settings
        self._store = store
        self._exchanger = exchanger or TokenExchanger(settings)
        self._window_factory = window_factory
        self._listener_factory = listener_factory
        self._login_lock = threading.Lock()
        self.last_result: Optional[LoginResult] = None

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def get_user(self) -> UserProfile:
        """Return the signed-in user's profile, signing in first if needed.

        Returns:
            The profile, or an empty profile if the login did not succeed.
        """
        return self.get_user_result().profile

    def get_user_result(self) -> LoginResult:
        """Like :meth:`get_user`, but return the full :class:`LoginResult`."""
        cached = self._cached_result()
        if cached is not None:
            return self._record(cached)

        with self._login_lock:
            # Another caller may have signed in while we waited.
            cached = self._cached_result()
            if cached is not None:
                return self._record(cached)
            return self._record(self._login(self._settings.login_hint))

    def logout(self) -> UserProfile:
        """Sign out, then immediately start a fresh login.

        The cleared session is persisted before the new login starts, so an
        empty profile is on disk even if that login fails. The provider's
        own browser cookies usually let the new login finish without any
        prompt.

        Returns:
            The profile from the new login, or an empty profile.
        """
        return self.logout_result().profile

    def logout_result(self) -> LoginResult:
        """Like :meth:`logout`, but return the full :class:`LoginResult`."""
        with self._login_lock:
            with self._store.locked() as session:
                hint = session.profile.email or self._settings.login_hint
            self._store.replace(Session(), strict=False)
            logger.info("Signed out")
            return self._record(self._login(hint))

    # ------------------------------------------------------------------
    # Login sequence
    # ------------------------------------------------------------------

    def _cached_result(self) -> Optional[LoginResult]:
        with self._store.locked() as session:
            if session.is_authenticated:
                return LoginResult(
                    LoginOutcome.CACHED, session.profile.model_copy(deep=True)
                )
        return None

    def _record(self, result: LoginResult) -> LoginResult:
        self.last_result = result
        return result

    def _login(self, login_hint: Optional[str]) -> LoginResult:
        with self._store.locked() as session:
            refresh_token = session.refresh_token

        if refresh_token:
            try:
                tokens = self._exchanger.exchange_refresh_token(refresh_token)
            except AuthError as exc:
                logger.warning("Silent re-login failed, refresh token discarded: %s", exc)
                self._clear_session()
            else:
                logger.info("Signed in silently with the stored refresh token")
                return self._complete(tokens, current_refresh_token=refresh_token)

        try:
            tokens = self._run_interactive(login_hint)
        except LoginNotCompleted as exc:
            logger.info("%s", exc)
            return LoginResult(LoginOutcome.NOT_COMPLETED, reason=str(exc))
        except DeskloginError as exc:
            logger.error("Interactive login failed: %s", exc)
            return self._failed(str(exc))
        return self._complete(tokens)

    def _run_interactive(self, login_hint: Optional[str]) -> TokenPair:
        """Run one interactive attempt and return the exchanged tokens.

        Raises:
            ListenerBindError: If the redirect port is taken.
            LoginNotCompleted: On timeout or window close.
            StateMismatchError: If the callback state is not ours.
            AuthError: On a provider error or a failed code exchange.
        """
        settings = self._settings
        listener = self._listener_factory(settings.redirect_host, settings.redirect_port)
        listener.bind()

        attempt = LoginAttempt.start(listener.port, settings.login_timeout)
        coordinator = CancellationCoordinator(
            attempt.remaining(), token=attempt.cancel_token
        )

        with listener, coordinator:
            url = build_authorization_url(
                settings,
                challenge=attempt.pkce.challenge,
                state=attempt.csrf_state,
                login_hint=login_hint,
            )
            window = self._window_factory()
            try:
                window.open(url, coordinator.window_closed)
            except Exception as exc:
                raise AuthError(f"Cannot open the login window: {exc}") from exc

            logger.info(
                "Waiting up to %.0fs for sign-in on %s:%d",
                attempt.remaining(),
                settings.redirect_host,
                attempt.redirect_port,
            )
            try:
                outcome = listener.wait(coordinator.token)
            finally:
                _close_window(window)

        return self._redeem(attempt, outcome)

    def _redeem(self, attempt: LoginAttempt, outcome: ListenerOutcome) -> TokenPair:
        if outcome.kind is OutcomeKind.CANCELLED:
            raise LoginNotCompleted(outcome.cancel_reason or CancelReason.TIMEOUT)

        if outcome.kind is OutcomeKind.ERROR:
            detail = outcome.error_description or outcome.error
            raise AuthError(f"Provider refused the login: {detail}")

        if not attempt.matches_state(outcome.state):
            raise StateMismatchError(
                "Callback state does not match this login attempt (possible CSRF)"
            )

        if not outcome.code:
            raise AuthError("Redirect callback carried no authorization code")
        return self._exchanger.exchange_code(outcome.code, attempt.pkce.verifier)

    def _complete(
        self, tokens: TokenPair, current_refresh_token: Optional[str] = None
    ) -> LoginResult:
        """Fetch the profile and persist it with the refresh token."""
        try:
            profile = self._exchanger.fetch_user_profile(tokens.access_token)
        except AuthError as exc:
            logger.error("Could not fetch the user profile: %s", exc)
            return self._failed(str(exc))

        session = Session(
            profile=profile,
            refresh_token=tokens.refresh_token or current_refresh_token,
        )
        try:
            self._store.replace(session)
        except StorageError as exc:
            logger.error("Could not persist the session: %s", exc)
            return self._failed(str(exc))

        logger.info("Signed in as %s", profile.email or profile.id)
        return LoginResult(LoginOutcome.AUTHENTICATED, profile.model_copy(deep=True))

    def _failed(self, reason: str) -> LoginResult:
        self._clear_session()
        return LoginResult(LoginOutcome.FAILED, reason=reason)

    def _clear_session(self) -> None:
        """Drop any profile or refresh token; untouched if already empty."""
        with self._store.locked() as session:
            if session.is_authenticated or session.refresh_token:
                self._store.replace(Session(), strict=False)


def _close_window(window: LoginWindow) -> None:
    try:
        window.close()
    except Exception:
        logger.debug("Login window did not close cleanly", exc_info=True)
