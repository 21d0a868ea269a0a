"""Per-process wiring of session, token manager, GraphQL client and introspector."""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .api_client import GraphQLClient
from .config import LOG_AUTH_EVENTS, default_credentials
from .identity import CognitoIdentityProvider, IdentityProviderError
from .introspection import SchemaIntrospector
from .models import AmplifyOutputs, Credentials
from .session import CredentialResolver, SessionState
from .token_manager import TokenManager

logger = logging.getLogger(__name__)


@dataclass
class ServerContext:
    """Everything a tool call needs. Build one per process (or per test)."""
    outputs: AmplifyOutputs
    session: SessionState
    resolver: CredentialResolver
    token_manager: TokenManager
    client: GraphQLClient
    introspector: SchemaIntrospector

    @property
    def auth_configured(self) -> bool:
        return self.token_manager.provider is not None

    def api_info(self) -> dict:
        data = self.outputs.data
        session = self.session.current()
        return {
            "apiUrl": data.url,
            "region": data.aws_region,
            "defaultAuthorizationType": data.default_authorization_type,
            "authorizationTypes": data.authorization_types,
            "hasApiKey": bool(data.api_key),
            "authConfigured": self.auth_configured,
            "loggedIn": self.session.is_authenticated,
            "currentUser": session.identity.username if session.identity else None,
            "refreshCount": session.refresh_count,
            "lastRefreshedAt": session.last_refreshed_at.isoformat() if session.last_refreshed_at else None,
            "modelCount": len(self.introspector.models),
            "enumCount": len(self.introspector.enums),
        }

    async def startup(self) -> None:
        """Log in with the ambient default credentials, if any.

        A failed login is logged and tolerated; the login tool can still
        be used afterwards.
        """
        defaults = self.resolver.defaults
        if not self.auth_configured or defaults is None:
            return
        try:
            logger.info(f"[Server] Attempting automatic login for user: {defaults.username}")
            await self.token_manager.login(defaults, remember=False)
            logger.info("[Server] Automatic login successful")
        except IdentityProviderError as e:
            logger.error(f"[Server] Automatic login failed: {e}")
            logger.error("[Server] You can still use the login tool to authenticate manually")

    async def shutdown(self) -> None:
        await self.client.close()


def build_context(
    outputs: AmplifyOutputs,
    defaults: Optional[Credentials] = None,
    provider: Optional[CognitoIdentityProvider] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ServerContext:
    """Assemble a ServerContext from a loaded outputs document.

    Args:
        outputs: Parsed amplify_outputs.json
        defaults: Ambient credentials; read from the environment when omitted
        provider: Identity provider; built from `outputs.auth` when omitted
        transport: httpx transport for the GraphQL client (tests use MockTransport)
    """
    data = outputs.data
    if provider is None and outputs.auth is not None and outputs.auth.is_configured:
        provider = CognitoIdentityProvider.from_auth_config(outputs.auth, data.aws_region)
        if LOG_AUTH_EVENTS:
            logger.info("[Server] Cognito authentication configured successfully")

    session = SessionState()
    resolver = CredentialResolver(defaults if defaults is not None else default_credentials())
    token_manager = TokenManager(session, resolver, provider)

    client = GraphQLClient(
        endpoint=data.url,
        token_manager=token_manager,
        auth_mode=data.default_authorization_type,
        api_key=data.api_key,
        transport=transport,
    )

    introspector = SchemaIntrospector(
        models=data.model_introspection.models,
        enums=data.model_introspection.enums,
    )

    return ServerContext(
        outputs=outputs,
        session=session,
        resolver=resolver,
        token_manager=token_manager,
        client=client,
        introspector=introspector,
    )
