from __future__ import annotations

import logging
import os
import webbrowser
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from ..errors import PopupBlockedError
from ..models import User

logger = logging.getLogger(__name__)

UserListener = Callable[[Optional[User]], None]


# PUBLIC_INTERFACE
class IdentityProvider(ABC):
    """Contract for the external identity provider."""

    @abstractmethod
    def sign_in_interactive(self) -> User:
        """Run the interactive sign-in flow. Raises PopupBlockedError if it cannot be shown."""

    @abstractmethod
    def begin_redirect(self) -> None:
        """Start the redirect-based flow. Its result is collected on the next load."""

    @abstractmethod
    def collect_redirect_result(self) -> Optional[User]:
        """Return the user from a completed redirect flow, or None if there is none."""

    @abstractmethod
    def sign_out(self) -> None:
        """Drop the provider-side session."""


class StaticIdentityProvider(IdentityProvider):
    """
    In-process provider for tests and local runs.

    popup_blocked makes the interactive flow fail so the redirect path is taken;
    the redirected user then becomes available from collect_redirect_result().
    """

    def __init__(self, user: User, popup_blocked: bool = False) -> None:
        self.user = user
        self.popup_blocked = popup_blocked
        self.redirect_started = False
        self.signed_out = False

    def sign_in_interactive(self) -> User:
        if self.popup_blocked:
            raise PopupBlockedError("popup blocked")
        return self.user

    def begin_redirect(self) -> None:
        self.redirect_started = True

    def collect_redirect_result(self) -> Optional[User]:
        if not self.redirect_started:
            return None
        self.redirect_started = False
        return self.user

    def sign_out(self) -> None:
        self.signed_out = True


class FirebaseIdentityProvider(IdentityProvider):
    """
    Provider that accepts Firebase ID tokens and verifies them with firebase_admin.

    - Interactive flow: `token_source` is asked for an ID token (e.g. from a local
      sign-in helper). It raises PopupBlockedError when no interactive channel exists.
    - Redirect flow: the hosted sign-in page is opened in the browser; its landing
      page writes the ID token to `redirect_token_path`, which is read and removed on
      the next load.
    """

    def __init__(
        self,
        token_source: Callable[[], str],
        sign_in_url: str,
        redirect_token_path: str,
        verifier: Optional[Callable[[str], User]] = None,
    ) -> None:
        self._token_source = token_source
        self._sign_in_url = sign_in_url
        self._redirect_token_path = redirect_token_path
        if verifier is None:
            from ..auth import verify_id_token

            verifier = verify_id_token
        self._verify = verifier

    def sign_in_interactive(self) -> User:
        return self._verify(self._token_source())

    def begin_redirect(self) -> None:
        logger.info("Opening hosted sign-in page %s", self._sign_in_url)
        webbrowser.open(self._sign_in_url)

    def collect_redirect_result(self) -> Optional[User]:
        if not os.path.exists(self._redirect_token_path):
            return None
        with open(self._redirect_token_path, "r", encoding="utf-8") as f:
            token = f.read().strip()
        os.remove(self._redirect_token_path)
        return self._verify(token) if token else None

    def sign_out(self) -> None:
        # ID tokens are bearer credentials; dropping the local copy ends the session
        if os.path.exists(self._redirect_token_path):
            os.remove(self._redirect_token_path)


# PUBLIC_INTERFACE
class IdentitySession:
    """
    Current-user state on top of an IdentityProvider.

    Listeners registered with on_change() are called whenever the user changes
    (none -> user, user -> none, or a different user).
    """

    def __init__(self, provider: IdentityProvider) -> None:
        self._provider = provider
        self._user: Optional[User] = None
        self._listeners: List[UserListener] = []

    @property
    def current_user(self) -> Optional[User]:
        return self._user

    def on_change(self, listener: UserListener) -> Callable[[], None]:
        """Register a listener; the returned callable removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def sign_in(self) -> Optional[User]:
        """
        Try the interactive flow; if it is blocked, fall back to the redirect flow
        and return None (the user arrives through restore() on the next load).
        Other provider errors propagate.
        """
        try:
            user = self._provider.sign_in_interactive()
        except PopupBlockedError:
            logger.info("Interactive sign-in blocked, falling back to redirect")
            self._provider.begin_redirect()
            return None
        self._set_user(user)
        return user

    def restore(self) -> Optional[User]:
        """Collect a pending redirect sign-in, if any."""
        user = self._provider.collect_redirect_result()
        if user is not None:
            self._set_user(user)
        return self._user

    def sign_out(self) -> None:
        self._provider.sign_out()
        self._set_user(None)

    def _set_user(self, user: Optional[User]) -> None:
        previous = self._user
        self._user = user
        if (previous is None) != (user is None) or (previous and user and previous.uid != user.uid):
            for listener in list(self._listeners):
                listener(user)
