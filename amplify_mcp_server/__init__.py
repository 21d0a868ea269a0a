"""Amplify Data API MCP Server.

An MCP server that lets agents explore and query an Amplify data backend
with automatic Cognito session refresh.

Architecture:
- SessionState / CredentialResolver hold the single process-wide session
- TokenManager renews or re-establishes the session when the API rejects it
- GraphQLClient sends queries and retries once after a refresh
- SchemaIntrospector summarizes amplify_outputs.json model introspection
- Tools turn all of the above into text results for the agent

Run with:
    amplify-mcp-server --amplify-outputs ./amplify_outputs.json
"""
from .api_client import GraphQLClient, UpstreamError
from .config import ConfigurationError, load_amplify_outputs
from .context import ServerContext, build_context
from .identity import CognitoIdentityProvider, IdentityProviderError
from .introspection import SchemaIntrospector, ModelNotFoundError
from .session import SessionState, CredentialResolver
from .token_manager import TokenManager, AuthUnavailableError
from .tools import InvalidInputError
from .models import (
    AmplifyOutputs,
    Credentials,
    Identity,
    Session,
    ModelDescriptor,
    FieldDescriptor,
    EnumDescriptor,
    ScalarType,
    ModelRef,
    EnumRef,
)

__all__ = [
    # Configuration
    "ConfigurationError",
    "load_amplify_outputs",
    "ServerContext",
    "build_context",
    # Authentication
    "CognitoIdentityProvider",
    "IdentityProviderError",
    "SessionState",
    "CredentialResolver",
    "TokenManager",
    "AuthUnavailableError",
    # GraphQL
    "GraphQLClient",
    "UpstreamError",
    # Introspection
    "SchemaIntrospector",
    "ModelNotFoundError",
    "InvalidInputError",
    # Models
    "AmplifyOutputs",
    "Credentials",
    "Identity",
    "Session",
    "ModelDescriptor",
    "FieldDescriptor",
    "EnumDescriptor",
    "ScalarType",
    "ModelRef",
    "EnumRef",
]
