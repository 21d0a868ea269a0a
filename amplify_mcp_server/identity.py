"""Cognito user pool client used as the identity provider.

boto3 is synchronous, so every call is pushed to the default executor to
keep the event loop free while Cognito answers.
"""
import asyncio
import logging
from functools import partial
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .models import AuthConfig, AuthResult, Credentials, Identity

logger = logging.getLogger(__name__)


class IdentityProviderError(Exception):
    """Raised when Cognito rejects or fails a request."""
    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class CognitoIdentityProvider:
    """Sign-in, session renewal and user lookup against a Cognito user pool."""

    def __init__(self, region: str, user_pool_id: str, client_id: str, client: Any = None):
        self.region = region
        self.user_pool_id = user_pool_id
        self.client_id = client_id
        self._client = client

    @classmethod
    def from_auth_config(cls, auth: AuthConfig, default_region: str) -> "CognitoIdentityProvider":
        return cls(
            region=auth.aws_region or default_region,
            user_pool_id=auth.user_pool_id,
            client_id=auth.user_pool_client_id,
        )

    @property
    def client(self):
        """Get or create the cognito-idp client."""
        if self._client is None:
            self._client = boto3.client("cognito-idp", region_name=self.region)
        return self._client

    async def _call(self, operation: str, **kwargs) -> dict:
        method = getattr(self.client, operation)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(method, **kwargs))
        except ClientError as e:
            error = e.response.get("Error", {})
            code = error.get("Code")
            message = error.get("Message") or str(e)
            logger.debug(f"[Cognito] {operation} failed: {code} - {message}")
            raise IdentityProviderError(message, code=code)
        except BotoCoreError as e:
            logger.debug(f"[Cognito] {operation} failed: {e}")
            raise IdentityProviderError(str(e))

    async def sign_in(self, credentials: Credentials) -> AuthResult:
        """Authenticate with username and password (USER_PASSWORD_AUTH).

        Raises:
            IdentityProviderError: If Cognito rejects the credentials or
                answers with a challenge (e.g. NEW_PASSWORD_REQUIRED)
        """
        response = await self._call(
            "initiate_auth",
            ClientId=self.client_id,
            AuthFlow="USER_PASSWORD_AUTH",
            AuthParameters={
                "USERNAME": credentials.username,
                "PASSWORD": credentials.password,
            },
        )
        challenge = response.get("ChallengeName")
        if challenge:
            raise IdentityProviderError(
                f"Sign-in requires an unsupported challenge: {challenge}",
                code=challenge,
            )
        return self._to_auth_result(response, Identity(username=credentials.username))

    async def renew(self, refresh_token: str, identity: Identity) -> AuthResult:
        """Exchange a refresh token for fresh ID and access tokens."""
        response = await self._call(
            "initiate_auth",
            ClientId=self.client_id,
            AuthFlow="REFRESH_TOKEN_AUTH",
            AuthParameters={"REFRESH_TOKEN": refresh_token},
        )
        result = self._to_auth_result(response, identity)
        # Cognito does not rotate refresh tokens by default
        if result.refresh_token is None:
            result.refresh_token = refresh_token
        return result

    async def get_user(self, access_token: str) -> dict:
        """Look up the user that owns an access token."""
        response = await self._call("get_user", AccessToken=access_token)
        return {
            "username": response.get("Username"),
            "attributes": {
                attr["Name"]: attr["Value"]
                for attr in response.get("UserAttributes", [])
            },
        }

    @staticmethod
    def _to_auth_result(response: dict, identity: Identity) -> AuthResult:
        tokens = response.get("AuthenticationResult")
        if not tokens or "IdToken" not in tokens:
            raise IdentityProviderError("Cognito returned no authentication result")
        return AuthResult(
            identity=identity,
            id_token=tokens["IdToken"],
            access_token=tokens.get("AccessToken", ""),
            refresh_token=tokens.get("RefreshToken"),
        )
