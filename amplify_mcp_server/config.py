"""Configuration for the Amplify Data MCP Server"""
import json
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import AmplifyOutputs, Credentials

# Descriptor document (amplify_outputs.json), overridden by --amplify-outputs
AMPLIFY_OUTPUTS_PATH = os.getenv("AMPLIFY_OUTPUTS_PATH")

# Ambient default credentials for automatic login at startup
AMPLIFY_USERNAME = os.getenv("AMPLIFY_USERNAME") or None
AMPLIFY_PASSWORD = os.getenv("AMPLIFY_PASSWORD") or None

# Upstream GraphQL request timeout (in seconds)
GRAPHQL_TIMEOUT_SECONDS = float(os.getenv("GRAPHQL_TIMEOUT_SECONDS", "30"))

# Logging
LOG_AUTH_EVENTS = os.getenv("LOG_AUTH_EVENTS", "true").lower() == "true"

# HTTP transport
MCP_HOST = os.getenv("MCP_HOST", "0.0.0.0")
MCP_PORT = int(os.getenv("MCP_PORT", "8002"))

SERVICE_NAME = "amplify-data-mcp"
SERVICE_VERSION = "1.0.0"


class ConfigurationError(Exception):
    """Raised when the Amplify outputs document cannot be used."""
    pass


def default_credentials() -> Optional[Credentials]:
    """Credentials supplied through AMPLIFY_USERNAME / AMPLIFY_PASSWORD, if both are set."""
    if AMPLIFY_USERNAME and AMPLIFY_PASSWORD:
        return Credentials(username=AMPLIFY_USERNAME, password=AMPLIFY_PASSWORD)
    return None


def load_amplify_outputs(path: str) -> AmplifyOutputs:
    """Load and validate an amplify_outputs.json document.

    Args:
        path: Path to the outputs file, relative to the working directory or absolute

    Returns:
        Parsed AmplifyOutputs with typed model and enum descriptors

    Raises:
        ConfigurationError: If the file is missing, is not valid JSON, or
            does not describe a data API
    """
    absolute_path = Path(path).expanduser().resolve()
    if not absolute_path.exists():
        raise ConfigurationError(f"Amplify outputs file not found at {absolute_path}")

    try:
        raw = json.loads(absolute_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Error reading Amplify outputs file: {e}")

    if not isinstance(raw, dict) or not (raw.get("data") or {}).get("url"):
        raise ConfigurationError("Missing API URL in Amplify outputs file")

    try:
        return AmplifyOutputs.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid Amplify outputs file: {e}")
