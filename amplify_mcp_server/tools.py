"""MCP Tools for the Amplify Data API.

This module defines the tools that the agent can use to explore the data
models and query the API. Each tool:
- Takes a validated Pydantic input model and the ServerContext
- Calls the introspector, the token manager or the GraphQL client
- Formats the response as text or JSON
- Converts every error into a message instead of raising
"""
import json
import logging
from typing import Optional

from .api_client import UpstreamError
from .context import ServerContext
from .identity import IdentityProviderError
from .introspection import ModelNotFoundError
from .models import (
    Credentials,
    EnumDescriptor,
    GenerateMutationInput,
    ListInput,
    LoginInput,
    ModelDetail,
    ModelNameInput,
    ModelSummary,
    RelationshipInfo,
    ResponseFormat,
    RunQueryInput,
)
from .token_manager import AuthUnavailableError

logger = logging.getLogger(__name__)


class InvalidInputError(Exception):
    """Raised when tool input cannot be interpreted."""
    pass


# ==============================================================================
# Response Formatting Helpers
# ==============================================================================

def format_models_text(models: list[ModelSummary]) -> str:
    """Format model summaries as text."""
    if not models:
        return "No data models found in the Amplify outputs file"

    blocks = []
    for model in models:
        fields = "\n".join(
            f"  - {field.name}: {field.type}"
            f"{' (required)' if field.is_required else ''}"
            f"{' (array)' if field.is_array else ''}"
            for field in model.fields
        )
        blocks.append(f"Model: {model.name}\nFields:\n{fields}")
    return "Data Models:\n\n" + "\n\n".join(blocks)


def format_enums_text(enums: list[EnumDescriptor]) -> str:
    """Format enum types as text."""
    if not enums:
        return "No enum types found in the Amplify outputs file"

    blocks = []
    for enum in enums:
        values = "\n".join(f"  - {value}" for value in enum.values)
        blocks.append(f"Enum: {enum.name}\nValues:\n{values}")
    return "Enum Types:\n\n" + "\n\n".join(blocks)


def format_model_detail_text(detail: ModelDetail) -> str:
    """Format a model's fields and authorization rules as text."""
    field_blocks = []
    for field in detail.fields:
        lines = [f"  - {field.name}:", f"    Type: {field.type}"]
        if field.is_required:
            lines.append("    Required: Yes")
        if field.is_array:
            lines.append("    Array: Yes")
        if field.association:
            lines.append(f"    Association: {field.association}")
            if field.target_names:
                lines.append(f"    Target fields: {', '.join(field.target_names)}")
        field_blocks.append("\n".join(lines))

    rule_blocks = [
        f"  - Provider: {rule.provider or 'N/A'}\n"
        f"    Allow: {rule.allow}\n"
        f"    Operations: {', '.join(rule.operations)}"
        for rule in detail.authorization_rules
    ]

    fields = "\n\n".join(field_blocks)
    rules = "\n\n".join(rule_blocks)
    return f"Model: {detail.name}\n\nFields:\n{fields}\n\nAuthorization Rules:\n{rules}"


def format_relationships_text(model_name: str, relationships: list[RelationshipInfo]) -> str:
    """Format a model's relationships as text."""
    if not relationships:
        return f"No relationships found for model: {model_name}"

    blocks = [
        f"Field: {rel.field}\n"
        f"Type: {rel.related_model or 'N/A'}\n"
        f"Relationship: {rel.relationship_kind}\n"
        f"Associated With: {', '.join(rel.associated_with) or 'N/A'}\n"
        f"Target Names: {', '.join(rel.target_names) or 'N/A'}"
        for rel in relationships
    ]
    return f"Relationships for {model_name}:\n\n" + "\n\n".join(blocks)


def parse_variables(variables: Optional[str]) -> dict:
    """Decode the JSON variables string of run-query.

    Raises:
        InvalidInputError: If the string is not JSON or not a JSON object
    """
    if not variables:
        return {}
    try:
        parsed = json.loads(variables)
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"Invalid JSON variables: {e}")
    if not isinstance(parsed, dict):
        raise InvalidInputError("Invalid JSON variables: expected a JSON object")
    return parsed


def handle_error(e: Exception) -> str:
    """Format an error as a helpful message."""
    if isinstance(e, ModelNotFoundError):
        return f"Model '{e.model_name}' not found. Use list-models to see available models."
    elif isinstance(e, InvalidInputError):
        return str(e)
    elif isinstance(e, AuthUnavailableError):
        return f"Authentication Error: {e}\n\nUse the login tool to authenticate again."
    elif isinstance(e, IdentityProviderError):
        return f"Authentication Error: {e}"
    elif isinstance(e, UpstreamError):
        return f"Error executing GraphQL query: {e}"
    else:
        return f"Unexpected Error: {type(e).__name__}: {e}"


# ==============================================================================
# Authentication Tools
# ==============================================================================

async def login_tool(params: LoginInput, ctx: ServerContext) -> str:
    """Log in with a Cognito username and password."""
    if not ctx.auth_configured:
        return "Error: Cognito authentication is not configured"

    try:
        identity = await ctx.token_manager.login(
            Credentials(username=params.username, password=params.password)
        )
        return f"Successfully logged in as {identity.username}"
    except Exception as e:
        logger.error(f"[Tools] login failed: {e}")
        return f"Login failed: {e}"


async def logout_tool(ctx: ServerContext) -> str:
    """Forget the current session and interactive credentials."""
    try:
        if await ctx.token_manager.logout():
            return "Logged out"
        return "Not logged in"
    except Exception as e:
        logger.error(f"[Tools] logout failed: {e}")
        return handle_error(e)


async def get_current_user_tool(ctx: ServerContext) -> str:
    """Describe the logged-in user."""
    if not ctx.session.is_authenticated:
        return "Not logged in. Use the login tool to authenticate first."

    try:
        user_info = await ctx.token_manager.current_user()
        return f"Current User:\n{json.dumps(user_info, indent=2)}"
    except Exception as e:
        logger.error(f"[Tools] get_current_user failed: {e}")
        return f"Error getting user info: {e}"


# ==============================================================================
# Introspection Tools
# ==============================================================================

async def list_models_tool(params: ListInput, ctx: ServerContext) -> str:
    """List all data models with their fields."""
    try:
        models = ctx.introspector.list_models()
        if models and params.response_format == ResponseFormat.JSON:
            return json.dumps([m.model_dump() for m in models], indent=2)
        return format_models_text(models)
    except Exception as e:
        logger.error(f"[Tools] list_models failed: {e}")
        return handle_error(e)


async def list_enums_tool(params: ListInput, ctx: ServerContext) -> str:
    """List all enum types with their values."""
    try:
        enums = ctx.introspector.list_enums()
        if enums and params.response_format == ResponseFormat.JSON:
            return json.dumps([e.model_dump() for e in enums], indent=2)
        return format_enums_text(enums)
    except Exception as e:
        logger.error(f"[Tools] list_enums failed: {e}")
        return handle_error(e)


async def get_model_details_tool(params: ModelNameInput, ctx: ServerContext) -> str:
    """Describe one model's fields, associations and authorization rules."""
    try:
        detail = ctx.introspector.describe_model(params.model_name)
        if params.response_format == ResponseFormat.JSON:
            return json.dumps(detail.model_dump(), indent=2)
        return format_model_detail_text(detail)
    except Exception as e:
        logger.error(f"[Tools] get_model_details failed: {e}")
        return handle_error(e)


async def get_relationships_tool(params: ModelNameInput, ctx: ServerContext) -> str:
    """List the relationship fields of one model."""
    try:
        relationships = ctx.introspector.describe_relationships(params.model_name)
        if params.response_format == ResponseFormat.JSON:
            return json.dumps([r.model_dump() for r in relationships], indent=2)
        return format_relationships_text(params.model_name, relationships)
    except Exception as e:
        logger.error(f"[Tools] get_relationships failed: {e}")
        return handle_error(e)


async def generate_mutation_tool(params: GenerateMutationInput, ctx: ServerContext) -> str:
    """Compose a mutation document for a model."""
    try:
        return ctx.introspector.generate_mutation(params.model_name, params.operation.value)
    except Exception as e:
        logger.error(f"[Tools] generate_mutation failed: {e}")
        return handle_error(e)


async def get_api_info_tool(ctx: ServerContext) -> str:
    """Describe the configured API endpoint and authentication."""
    return json.dumps(ctx.api_info(), indent=2)


# ==============================================================================
# Query Tools
# ==============================================================================

async def run_query_tool(params: RunQueryInput, ctx: ServerContext) -> str:
    """Execute a GraphQL query or mutation.

    Authentication failures are refreshed and retried once by the client
    before they reach this function.
    """
    try:
        variables = parse_variables(params.variables)
        result = await ctx.client.execute(params.query, variables)
        return f"Query Result:\n\n{json.dumps(result, indent=2)}"
    except Exception as e:
        logger.error(f"[Tools] run_query failed: {e}")
        return handle_error(e)
