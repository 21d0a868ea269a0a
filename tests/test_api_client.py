"""Tests for the GraphQL client and its refresh-and-retry behavior."""
import json

import httpx
import pytest

from amplify_mcp_server.api_client import GraphQLClient, UpstreamError, is_auth_error_payload
from amplify_mcp_server.config import GRAPHQL_TIMEOUT_SECONDS
from amplify_mcp_server.identity import IdentityProviderError
from amplify_mcp_server.session import CredentialResolver, SessionState
from amplify_mcp_server.token_manager import AuthUnavailableError, TokenManager

from conftest import API_URL, RecordingHandler

QUERY = "query ListStories { listStories { items { id title } } }"
OK_BODY = {"data": {"listStories": {"items": [{"id": "1", "title": "Hello"}]}}}
UNAUTHORIZED_BODY = {
    "errors": [{"errorType": "UnauthorizedException", "message": "Valid authorization header not provided."}]
}


@pytest.fixture
def token_manager(mock_provider):
    return TokenManager(SessionState(), CredentialResolver(), mock_provider)


def make_client(token_manager, *responses, auth_mode="AMAZON_COGNITO_USER_POOLS", api_key=None):
    handler = RecordingHandler(*responses)
    client = GraphQLClient(
        endpoint=API_URL,
        token_manager=token_manager,
        auth_mode=auth_mode,
        api_key=api_key,
        transport=httpx.MockTransport(handler),
    )
    return client, handler


class TestAuthErrorPayload:

    @pytest.mark.unit
    @pytest.mark.parametrize("error", [
        {"errorType": "UnauthorizedException", "message": "Unauthorized"},
        {"message": "Authentication failed for user"},
        {"message": "Token has failed: token is expired"},
    ])
    def test_detects_auth_errors(self, error):
        assert is_auth_error_payload({"errors": [error]})

    @pytest.mark.unit
    @pytest.mark.parametrize("payload", [
        OK_BODY,
        {"errors": [{"errorType": "DynamoDB:ConditionalCheckFailedException", "message": "conflict"}]},
        {"errors": None},
        ["not", "a", "dict"],
    ])
    def test_ignores_other_payloads(self, payload):
        assert not is_auth_error_payload(payload)


class TestExecute:

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_sends_query_with_session_token(self, token_manager, credentials):
        await token_manager.login(credentials)
        client, handler = make_client(token_manager, httpx.Response(200, json=OK_BODY))

        result = await client.execute(QUERY, {"limit": 10})

        assert result == OK_BODY
        request = handler.requests[0]
        assert request.method == "POST"
        assert str(request.url) == API_URL
        assert request.headers["Authorization"] == "id-token-1"
        assert request.headers["Content-Type"] == "application/json"
        assert "x-api-key" not in request.headers
        assert json.loads(request.content) == {"query": QUERY, "variables": {"limit": 10}}

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_api_key_mode_without_session(self, token_manager):
        client, handler = make_client(
            token_manager, httpx.Response(200, json=OK_BODY), auth_mode="API_KEY", api_key="da2-key"
        )

        await client.execute(QUERY)

        request = handler.requests[0]
        assert request.headers["x-api-key"] == "da2-key"
        assert "Authorization" not in request.headers
        assert json.loads(request.content)["variables"] == {}

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_graphql_errors_returned_unmodified(self, token_manager):
        body = {"data": None, "errors": [{"errorType": "ValidationError", "message": "bad field"}]}
        client, handler = make_client(token_manager, httpx.Response(200, json=body))

        assert await client.execute(QUERY) == body
        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_401_refreshes_once_and_retries(self, token_manager, mock_provider, credentials):
        await token_manager.login(credentials)
        client, handler = make_client(
            token_manager,
            httpx.Response(401, json=UNAUTHORIZED_BODY),
            httpx.Response(200, json=OK_BODY),
        )

        result = await client.execute(QUERY)

        assert result == OK_BODY
        assert mock_provider.renew.await_count == 1
        assert len(handler.requests) == 2
        assert handler.requests[0].headers["Authorization"] == "id-token-1"
        assert handler.requests[1].headers["Authorization"] == "id-token-renewed"
        assert handler.requests[1].content == handler.requests[0].content
        assert token_manager.session.current().token == "id-token-renewed"

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_auth_error_in_body_refreshes_and_retries(self, token_manager, mock_provider, credentials):
        await token_manager.login(credentials)
        client, handler = make_client(
            token_manager,
            httpx.Response(200, json={"errors": [{"message": "Token has expired: token is expired"}]}),
            httpx.Response(200, json=OK_BODY),
        )

        assert await client.execute(QUERY) == OK_BODY
        assert mock_provider.renew.await_count == 1
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_second_auth_failure_stops(self, token_manager, mock_provider, credentials):
        await token_manager.login(credentials)
        client, handler = make_client(
            token_manager,
            httpx.Response(401, json=UNAUTHORIZED_BODY),
            httpx.Response(401, json=UNAUTHORIZED_BODY),
        )

        with pytest.raises(AuthUnavailableError):
            await client.execute(QUERY)

        assert mock_provider.renew.await_count == 1
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_refresh_failure_propagates(self, token_manager, mock_provider):
        # No session and no credentials: nothing to refresh with
        client, handler = make_client(token_manager, httpx.Response(401, json=UNAUTHORIZED_BODY))

        with pytest.raises(AuthUnavailableError, match="no credentials"):
            await client.execute(QUERY)

        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_rejected_relogin_propagates(self, token_manager, mock_provider, credentials):
        await token_manager.login(credentials)
        mock_provider.renew.side_effect = IdentityProviderError("Refresh Token has expired")
        mock_provider.sign_in.side_effect = IdentityProviderError("Incorrect username or password.")
        client, handler = make_client(token_manager, httpx.Response(401))

        with pytest.raises(AuthUnavailableError, match="credentials rejected"):
            await client.execute(QUERY)

        assert len(handler.requests) == 1
        assert token_manager.current_token is None

    @pytest.mark.asyncio
    @pytest.mark.unit
    @pytest.mark.parametrize("status", [400, 403, 404, 500, 503])
    async def test_other_http_errors_not_retried(self, token_manager, mock_provider, status):
        client, handler = make_client(token_manager, httpx.Response(status, text="boom"))

        with pytest.raises(UpstreamError) as exc_info:
            await client.execute(QUERY)

        assert exc_info.value.status_code == status
        assert str(status) in str(exc_info.value)
        assert len(handler.requests) == 1
        mock_provider.renew.assert_not_awaited()
        mock_provider.sign_in.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_network_error_not_retried(self, token_manager, mock_provider):
        request = httpx.Request("POST", API_URL)
        client, handler = make_client(token_manager, httpx.ConnectError("connection refused", request=request))

        with pytest.raises(UpstreamError, match="Network error"):
            await client.execute(QUERY)

        assert len(handler.requests) == 1
        mock_provider.sign_in.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_timeout_not_retried(self, token_manager, mock_provider, credentials):
        await token_manager.login(credentials)
        request = httpx.Request("POST", API_URL)
        client, handler = make_client(token_manager, httpx.ReadTimeout("timed out", request=request))

        with pytest.raises(UpstreamError, match="Network error"):
            await client.execute(QUERY)

        assert len(handler.requests) == 1
        mock_provider.renew.assert_not_awaited()
        mock_provider.sign_in.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_timeout_reaches_http_client(self, token_manager):
        client = GraphQLClient(endpoint=API_URL, token_manager=token_manager, timeout=2.5)

        http_client = await client._get_http_client()

        assert http_client.timeout == httpx.Timeout(2.5)
        await client.close()

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_default_timeout_from_config(self, token_manager):
        client = GraphQLClient(endpoint=API_URL, token_manager=token_manager)

        http_client = await client._get_http_client()

        assert http_client.timeout.read == GRAPHQL_TIMEOUT_SECONDS
        await client.close()

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_non_json_body(self, token_manager):
        client, _ = make_client(token_manager, httpx.Response(200, text="<html>gateway</html>"))

        with pytest.raises(UpstreamError, match="Invalid JSON"):
            await client.execute(QUERY)

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_close(self, token_manager):
        client, _ = make_client(token_manager, httpx.Response(200, json=OK_BODY))
        await client.execute(QUERY)

        await client.close()

        assert client._http_client.is_closed
