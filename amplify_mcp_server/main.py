"""Amplify Data API MCP Server.

An MCP server that exposes an Amplify Gen 2 data backend (AppSync GraphQL
with Cognito user pools) to agents:
- Model and enum exploration from amplify_outputs.json
- Cognito login with transparent token refresh
- GraphQL execution with one automatic retry after re-authentication

Transports:
- stdio (default), for desktop MCP clients
- streamable HTTP at /mcp, served by FastAPI alongside /health

Run with:
    amplify-mcp-server --amplify-outputs ./amplify_outputs.json

Or:
    AMPLIFY_OUTPUTS_PATH=./amplify_outputs.json uvicorn amplify_mcp_server.main:app --port 8002
"""
import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mcp.server.fastmcp import FastMCP
from starlette.routing import Mount

from . import config
from .config import ConfigurationError, load_amplify_outputs
from .context import ServerContext, build_context
from .models import (
    GenerateMutationInput,
    ListInput,
    LoginInput,
    ModelNameInput,
    RunQueryInput,
)
from .tools import (
    login_tool,
    logout_tool,
    get_current_user_tool,
    list_models_tool,
    list_enums_tool,
    get_model_details_tool,
    get_relationships_tool,
    generate_mutation_tool,
    get_api_info_tool,
    run_query_tool,
)


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,  # stdout carries the stdio transport
)
logger = logging.getLogger(__name__)


# ==============================================================================
# Server Context
# ==============================================================================

_context: Optional[ServerContext] = None


def configure(context: ServerContext) -> None:
    """Install the context used by every tool call."""
    global _context
    _context = context


def get_context() -> ServerContext:
    """Get the active context, loading AMPLIFY_OUTPUTS_PATH on first use.

    Raises:
        ConfigurationError: If no context was configured and no outputs path is set
    """
    global _context
    if _context is None:
        if not config.AMPLIFY_OUTPUTS_PATH:
            raise ConfigurationError(
                "Amplify outputs path is required (--amplify-outputs <path> or AMPLIFY_OUTPUTS_PATH)"
            )
        _context = build_context(load_amplify_outputs(config.AMPLIFY_OUTPUTS_PATH))
    return _context


# ==============================================================================
# MCP Server
# ==============================================================================

mcp = FastMCP(
    "amplify_data_api",
    stateless_http=True,
    streamable_http_path="/streamable"
)


@mcp.tool(
    name="login",
    annotations={
        "title": "Login",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    }
)
async def login(params: LoginInput) -> str:
    """Login with Cognito username and password.

    On success the session is used for every later run-query call, and the
    credentials are kept in memory so an expired session can be re-established
    automatically.

    Args:
        params: Input parameters
            - username (str): Cognito username (usually email)
            - password (str): Cognito password

    Returns:
        Success or failure message
    """
    return await login_tool(params, get_context())


@mcp.tool(
    name="logout",
    annotations={
        "title": "Logout",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    }
)
async def logout() -> str:
    """Clear the current session and forget credentials from the login tool."""
    return await logout_tool(get_context())


@mcp.tool(
    name="get-current-user",
    annotations={
        "title": "Get Current User",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    }
)
async def get_current_user() -> str:
    """Get information about the currently logged in user."""
    return await get_current_user_tool(get_context())


@mcp.tool(
    name="list-models",
    annotations={
        "title": "List Data Models",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    }
)
async def list_models(params: ListInput) -> str:
    """List all data models in the Amplify app.

    Use this first to discover which models exist and what fields they have
    before writing a query.

    Args:
        params: Input parameters
            - response_format (str): "text" or "json"

    Returns:
        Every model with its fields, types and required/array markers
    """
    return await list_models_tool(params, get_context())


@mcp.tool(
    name="list-enums",
    annotations={
        "title": "List Enum Types",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    }
)
async def list_enums(params: ListInput) -> str:
    """List all enum types in the Amplify app with their allowed values."""
    return await list_enums_tool(params, get_context())


@mcp.tool(
    name="get-model-details",
    annotations={
        "title": "Get Model Details",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    }
)
async def get_model_details(params: ModelNameInput) -> str:
    """Get detailed information about a specific data model.

    Args:
        params: Input parameters
            - modelName (str): Name of the model
            - response_format (str): "text" or "json"

    Returns:
        Fields with types and associations, plus the model's authorization rules
    """
    return await get_model_details_tool(params, get_context())


@mcp.tool(
    name="get-relationships",
    annotations={
        "title": "Get Model Relationships",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    }
)
async def get_relationships(params: ModelNameInput) -> str:
    """Get relationships for a specific model.

    Args:
        params: Input parameters
            - modelName (str): Name of the model
            - response_format (str): "text" or "json"

    Returns:
        Relationship fields with related model, connection type and key fields
    """
    return await get_relationships_tool(params, get_context())


@mcp.tool(
    name="generate-mutation",
    annotations={
        "title": "Generate Mutation",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    }
)
async def generate_mutation(params: GenerateMutationInput) -> str:
    """Generate a create, update or delete mutation for a model.

    The selection set lists writable fields and shallow projections of
    related models. Pass the result to run-query with an `input` variable.

    Args:
        params: Input parameters
            - modelName (str): Name of the model
            - operation (str): "create", "update" or "delete"

    Returns:
        A GraphQL mutation document
    """
    return await generate_mutation_tool(params, get_context())


@mcp.tool(
    name="run-query",
    annotations={
        "title": "Run GraphQL Query",
        "readOnlyHint": False,
        "destructiveHint": True,
        "idempotentHint": False,
        "openWorldHint": True,
    }
)
async def run_query(params: RunQueryInput) -> str:
    """Execute a custom GraphQL query or mutation.

    Expired sessions are refreshed (or re-established with stored
    credentials) and the request retried once before an error is reported.

    Args:
        params: Input parameters
            - query (str): GraphQL query or mutation
            - variables (str, optional): JSON string of variables

    Returns:
        The raw GraphQL response as JSON
    """
    return await run_query_tool(params, get_context())


@mcp.tool(
    name="get-api-info",
    annotations={
        "title": "Get API Information",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    }
)
async def get_api_info() -> str:
    """Get information about the Amplify API configuration."""
    return await get_api_info_tool(get_context())


@mcp.resource(
    "amplify://api-info",
    name="Amplify API Information",
    description="Information about the Amplify Data API configuration",
    mime_type="application/json",
)
def api_info_resource() -> str:
    return json.dumps(get_context().api_info(), indent=2)


# ==============================================================================
# Combined ASGI Application (health + MCP)
# ==============================================================================

@asynccontextmanager
async def app_lifespan(app: FastAPI):
    """Log in with ambient credentials, then run the MCP session manager."""
    context = get_context()
    logger.info("[Server] Starting Amplify Data API MCP Server (HTTP)")
    await context.startup()

    async with mcp.session_manager.run():
        yield

    logger.info("[Server] Shutting down...")
    await context.shutdown()


app = FastAPI(
    title="Amplify Data API MCP Server",
    description="MCP endpoint at `/mcp/streamable` for agent access to an Amplify data backend.",
    version=config.SERVICE_VERSION,
    lifespan=app_lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.routes.append(Mount("/mcp", app=mcp.streamable_http_app()))


@app.get("/health")
async def health():
    """Health check endpoint."""
    context = get_context()
    return {
        "status": "healthy",
        "service": config.SERVICE_NAME,
        "version": config.SERVICE_VERSION,
        "logged_in": context.session.is_authenticated,
        "models": len(context.introspector.models),
    }


# ==============================================================================
# Entry Point
# ==============================================================================

async def serve_stdio(context: ServerContext) -> None:
    """Run the MCP server over stdio until the client disconnects."""
    logger.info("[Server] Amplify Data API MCP Server running on stdio")
    await context.startup()
    try:
        await mcp.run_stdio_async()
    finally:
        await context.shutdown()


def main():
    """Parse arguments, load amplify_outputs.json and serve."""
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Amplify Data API MCP Server")
    parser.add_argument(
        "--amplify-outputs",
        type=str,
        default=config.AMPLIFY_OUTPUTS_PATH,
        help="Path to the amplify_outputs.json file (default: $AMPLIFY_OUTPUTS_PATH)"
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="MCP transport (default: stdio)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=config.MCP_HOST,
        help=f"Host to bind to for the http transport (default: {config.MCP_HOST})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=config.MCP_PORT,
        help=f"Port to bind to for the http transport (default: {config.MCP_PORT})"
    )

    args = parser.parse_args()

    if not args.amplify_outputs:
        logger.error("Amplify outputs path is required (--amplify-outputs <path>)")
        sys.exit(1)

    try:
        outputs = load_amplify_outputs(args.amplify_outputs)
    except ConfigurationError as e:
        logger.error(f"[Server] {e}")
        sys.exit(1)

    logger.info(f"[Server] Loaded Amplify outputs from {args.amplify_outputs}")
    context = build_context(outputs)
    configure(context)

    if args.transport == "stdio":
        asyncio.run(serve_stdio(context))
        return

    logger.info(f"[Server] Starting on {args.host}:{args.port}")
    logger.info(f"[Server] MCP Endpoint: http://{args.host}:{args.port}/mcp/streamable")
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
