"""Session state and credential resolution.

SessionState holds the single authenticated session for the process. It
performs no validation and no I/O; TokenManager is its only writer.

CredentialResolver keeps the two credential sources apart:
- the interactive slot, filled by the most recent successful `login` tool call
- the default slot, filled from AMPLIFY_USERNAME / AMPLIFY_PASSWORD at startup

The interactive slot always wins when both are present.
"""
from typing import Optional

from .models import Credentials, Identity, Session, utc_now


class SessionState:
    """In-memory holder of the current Session."""

    def __init__(self):
        self._session = Session()

    def set(
        self,
        identity: Optional[Identity],
        token: Optional[str],
        credentials: Optional[Credentials],
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
    ) -> None:
        """Replace the session after a sign-in."""
        self._session = Session(
            identity=identity,
            token=token,
            access_token=access_token,
            refresh_token=refresh_token,
            credentials=credentials,
        )

    def relogin(
        self,
        identity: Identity,
        token: str,
        credentials: Credentials,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
    ) -> None:
        """Replace the session after a re-authentication, counting it as a refresh."""
        refresh_count = self._session.refresh_count
        self.set(identity, token, credentials, access_token=access_token, refresh_token=refresh_token)
        self._session.last_refreshed_at = utc_now()
        self._session.refresh_count = refresh_count + 1

    def renew(
        self,
        token: str,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
    ) -> None:
        """Swap in renewed tokens, keeping identity and credentials."""
        session = self._session
        session.token = token
        if access_token is not None:
            session.access_token = access_token
        if refresh_token is not None:
            session.refresh_token = refresh_token
        session.last_refreshed_at = utc_now()
        session.refresh_count += 1

    def clear_token(self) -> None:
        """Drop all tokens but keep identity and credentials."""
        session = self._session
        session.token = None
        session.access_token = None
        session.refresh_token = None

    def clear(self) -> None:
        self._session = Session()

    def current(self) -> Session:
        """Return a snapshot of the session."""
        return self._session.model_copy(deep=True)

    @property
    def token(self) -> Optional[str]:
        return self._session.token

    @property
    def is_authenticated(self) -> bool:
        return self._session.identity is not None and self._session.token is not None


class CredentialResolver:
    """Two-slot credential store: interactive login first, then defaults."""

    def __init__(self, defaults: Optional[Credentials] = None):
        self._defaults = defaults
        self._interactive: Optional[Credentials] = None

    def remember(self, credentials: Credentials) -> None:
        """Record credentials from a successful interactive login."""
        self._interactive = credentials

    def forget(self) -> None:
        """Forget interactive credentials; defaults are kept."""
        self._interactive = None

    def resolve(self) -> Optional[Credentials]:
        return self._interactive or self._defaults

    @property
    def defaults(self) -> Optional[Credentials]:
        return self._defaults
