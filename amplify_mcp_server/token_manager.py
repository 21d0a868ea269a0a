"""Token Manager for the Amplify Data MCP Server.

This module handles:
- Signing in with Cognito and storing the resulting session
- Renewing the session token when the upstream API rejects it
- Falling back to re-authentication with cached credentials
- Guarding every session mutation so only one refresh runs at a time
"""
import asyncio
import logging
from typing import Any, Optional

from .config import LOG_AUTH_EVENTS
from .identity import CognitoIdentityProvider, IdentityProviderError
from .models import Credentials, Identity
from .session import CredentialResolver, SessionState

logger = logging.getLogger(__name__)

# Marks a refresh() call that did not report the token it failed with
_NO_STALE_TOKEN = object()


class AuthUnavailableError(Exception):
    """Raised when no usable path to a valid token exists."""
    pass


class TokenManager:
    """Owns the authentication lifecycle for the process.

    Refresh strategy (one attempt each, no loop):
    1. Renew the current session with its refresh token.
    2. If renewal fails or is impossible, sign in again with the resolved
       credentials (interactive login first, then environment defaults).
    3. If that fails, clear the token and give up with AuthUnavailableError.
    """

    def __init__(
        self,
        session: SessionState,
        resolver: CredentialResolver,
        provider: Optional[CognitoIdentityProvider] = None,
    ):
        self.session = session
        self.resolver = resolver
        self.provider = provider
        self._lock = asyncio.Lock()

    @property
    def current_token(self) -> Optional[str]:
        return self.session.token

    def _require_provider(self) -> CognitoIdentityProvider:
        if self.provider is None:
            raise AuthUnavailableError("Authentication system not initialized")
        return self.provider

    # ==========================================================================
    # Login / Logout
    # ==========================================================================

    async def login(self, credentials: Credentials, remember: bool = True) -> Identity:
        """Sign in and replace the current session.

        Args:
            credentials: Username and password
            remember: Store the credentials as the interactive slot (manual
                login); startup auto-login passes False

        Returns:
            The authenticated identity

        Raises:
            AuthUnavailableError: If Cognito is not configured
            IdentityProviderError: If Cognito rejects the credentials
        """
        provider = self._require_provider()
        async with self._lock:
            result = await provider.sign_in(credentials)
            self.session.set(
                identity=result.identity,
                token=result.id_token,
                credentials=credentials,
                access_token=result.access_token,
                refresh_token=result.refresh_token,
            )
            if remember:
                self.resolver.remember(credentials)

        if LOG_AUTH_EVENTS:
            logger.info(f"[TokenManager] Logged in as {result.identity.username}")
        return result.identity

    async def logout(self) -> bool:
        """Clear the session and forget interactive credentials."""
        async with self._lock:
            was_logged_in = self.session.is_authenticated
            self.session.clear()
            self.resolver.forget()

        if LOG_AUTH_EVENTS and was_logged_in:
            logger.info("[TokenManager] Logged out")
        return was_logged_in

    # ==========================================================================
    # Refresh
    # ==========================================================================

    async def refresh(self, stale_token: Any = _NO_STALE_TOKEN) -> str:
        """Obtain a new session token after the upstream API rejected one.

        Args:
            stale_token: The token the failed request was sent with. If the
                session already holds a different token by the time the lock
                is acquired, another caller refreshed it and that token is
                returned as-is. When omitted, the session is always renewed.

        Returns:
            The new session token

        Raises:
            AuthUnavailableError: If neither renewal nor re-authentication
                produced a token
        """
        provider = self._require_provider()

        async with self._lock:
            current = self.session.current()
            if (
                stale_token is not _NO_STALE_TOKEN
                and current.token is not None
                and current.token != stale_token
            ):
                logger.debug("[TokenManager] Token already refreshed by another request")
                return current.token

            if current.refresh_token and current.identity is not None:
                try:
                    result = await provider.renew(current.refresh_token, current.identity)
                except IdentityProviderError as e:
                    if LOG_AUTH_EVENTS:
                        logger.warning(f"[TokenManager] Session renewal failed: {e}")
                else:
                    self.session.renew(
                        token=result.id_token,
                        access_token=result.access_token,
                        refresh_token=result.refresh_token,
                    )
                    if LOG_AUTH_EVENTS:
                        logger.info(
                            f"[TokenManager] Session renewed for {current.identity.username} "
                            f"(refresh #{current.refresh_count + 1})"
                        )
                    return result.id_token

            credentials = self.resolver.resolve()
            if credentials is None:
                if LOG_AUTH_EVENTS:
                    logger.error("[TokenManager] No credentials available for re-authentication")
                raise AuthUnavailableError(
                    "Authentication expired and no credentials available for re-authentication"
                )

            if LOG_AUTH_EVENTS:
                logger.info(f"[TokenManager] Attempting re-login for user: {credentials.username}")
            try:
                result = await provider.sign_in(credentials)
            except IdentityProviderError as e:
                self.session.clear_token()
                if LOG_AUTH_EVENTS:
                    logger.error(f"[TokenManager] Re-login failed: {e}")
                raise AuthUnavailableError(
                    f"Authentication expired and automatic re-login failed: credentials rejected ({e})"
                )

            self.session.relogin(
                identity=result.identity,
                token=result.id_token,
                credentials=credentials,
                access_token=result.access_token,
                refresh_token=result.refresh_token,
            )
            if LOG_AUTH_EVENTS:
                logger.info(f"[TokenManager] Re-login successful for {credentials.username}")
            return result.id_token

    # ==========================================================================
    # Identity Lookup
    # ==========================================================================

    async def current_user(self) -> dict:
        """Look up the signed-in user, refreshing once on an expired token.

        Raises:
            AuthUnavailableError: If nobody is logged in or refresh fails
            IdentityProviderError: If the lookup fails for another reason
        """
        provider = self._require_provider()
        session = self.session.current()
        if session.identity is None or not session.access_token:
            raise AuthUnavailableError("Not logged in")

        try:
            return await provider.get_user(session.access_token)
        except IdentityProviderError as e:
            if e.code != "NotAuthorizedException":
                raise
            if LOG_AUTH_EVENTS:
                logger.info("[TokenManager] Access token rejected during user lookup, refreshing")

        await self.refresh(stale_token=session.token)
        return await provider.get_user(self.session.current().access_token)
