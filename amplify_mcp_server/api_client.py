"""GraphQL client for the Amplify Data API.

Each request carries the current session token. When the API answers with
an authentication failure, the client asks the TokenManager for a new token
and re-issues the same request exactly once.
"""
import httpx
import json
from typing import Any, Optional
import logging

from .config import GRAPHQL_TIMEOUT_SECONDS
from .token_manager import TokenManager, AuthUnavailableError

logger = logging.getLogger(__name__)

AUTH_ERROR_TYPES = ("UnauthorizedException",)
AUTH_ERROR_MESSAGES = ("Authentication failed", "token is expired")


class UpstreamError(Exception):
    """Raised when the GraphQL endpoint fails for a reason other than auth."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def is_auth_error_payload(payload: Any) -> bool:
    """Check a GraphQL response body for an authentication failure."""
    if not isinstance(payload, dict):
        return False
    errors = payload.get("errors") or []
    for error in errors:
        if not isinstance(error, dict):
            continue
        if error.get("errorType") in AUTH_ERROR_TYPES:
            return True
        message = error.get("message") or ""
        if any(text in message for text in AUTH_ERROR_MESSAGES):
            return True
    return False


class GraphQLClient:
    """Client for the Amplify AppSync GraphQL endpoint.

    Args:
        endpoint: GraphQL URL from amplify_outputs.json
        token_manager: Source of session tokens and refreshes
        auth_mode: The API's default authorization type
        api_key: API key sent as x-api-key when auth_mode is API_KEY
        timeout: Request timeout in seconds
        transport: Optional httpx transport (used by tests)
    """

    def __init__(
        self,
        endpoint: str,
        token_manager: TokenManager,
        auth_mode: str = "API_KEY",
        api_key: Optional[str] = None,
        timeout: float = GRAPHQL_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.token_manager = token_manager
        self.auth_mode = auth_mode
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self):
        """Close the HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    def _build_headers(self, token: Optional[str]) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if token:
            # AppSync user pool auth takes the raw JWT, without a scheme
            headers["Authorization"] = token
        if self.auth_mode == "API_KEY" and self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def execute(self, query: str, variables: Optional[dict] = None) -> Any:
        """Execute a GraphQL query or mutation.

        Args:
            query: GraphQL document
            variables: Variables for the document

        Returns:
            The parsed response body, unmodified (GraphQL `errors` included)

        Raises:
            AuthUnavailableError: If authentication fails and cannot be refreshed,
                or fails again after a refresh
            UpstreamError: On non-auth HTTP errors, network errors or a non-JSON body
        """
        return await self._execute(query, variables or {}, retried=False)

    async def _execute(self, query: str, variables: dict, retried: bool) -> Any:
        token = self.token_manager.current_token
        client = await self._get_http_client()

        logger.debug(f"[GraphQLClient] POST {self.endpoint} (retry={retried})")

        try:
            response = await client.post(
                self.endpoint,
                content=json.dumps({"query": query, "variables": variables}),
                headers=self._build_headers(token),
            )
        except httpx.RequestError as e:
            logger.error(f"[GraphQLClient] Network error: {e}")
            raise UpstreamError(f"Network error: {e}")

        if response.status_code == 401:
            logger.warning("[GraphQLClient] Received 401 Unauthorized")
            return await self._refresh_and_retry(query, variables, token, retried)

        if response.status_code >= 400:
            raise UpstreamError(
                f"HTTP error! status: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            result = response.json()
        except ValueError as e:
            raise UpstreamError(
                f"Invalid JSON in GraphQL response: {e}",
                status_code=response.status_code,
            )

        if is_auth_error_payload(result):
            logger.warning("[GraphQLClient] Authentication error in GraphQL response")
            return await self._refresh_and_retry(query, variables, token, retried)

        return result

    async def _refresh_and_retry(
        self,
        query: str,
        variables: dict,
        stale_token: Optional[str],
        retried: bool,
    ) -> Any:
        if retried:
            raise AuthUnavailableError("Authentication failed again after refreshing the session")

        await self.token_manager.refresh(stale_token=stale_token)
        return await self._execute(query, variables, retried=True)
