"""Shared fixtures for the Amplify Data MCP Server tests."""
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from amplify_mcp_server.context import build_context
from amplify_mcp_server.identity import CognitoIdentityProvider
from amplify_mcp_server.models import AmplifyOutputs, AuthResult, Credentials, Identity

API_URL = "https://example.appsync-api.us-east-1.amazonaws.com/graphql"


def _field(name, type_, required=False, array=False, read_only=False, association=None):
    field = {
        "name": name,
        "isArray": array,
        "type": type_,
        "isRequired": required,
        "attributes": [],
    }
    if read_only:
        field["isReadOnly"] = True
    if association:
        field["association"] = association
    return field


def sample_outputs_dict(with_auth: bool = True) -> dict:
    """An amplify_outputs.json document with related, enum and self-referencing models."""
    outputs = {
        "version": "1.3",
        "data": {
            "url": API_URL,
            "aws_region": "us-east-1",
            "default_authorization_type": "AMAZON_COGNITO_USER_POOLS",
            "authorization_types": ["API_KEY"],
            "api_key": "da2-testkey",
            "model_introspection": {
                "version": 1,
                "models": {
                    "Story": {
                        "name": "Story",
                        "fields": {
                            "id": _field("id", "ID", required=True),
                            "title": _field("title", "String", required=True),
                            "status": _field("status", {"enum": "StoryStatus"}),
                            "characterId": _field("characterId", "ID"),
                            "character": _field(
                                "character",
                                {"model": "Character"},
                                association={
                                    "connectionType": "BELONGS_TO",
                                    "targetNames": ["characterId"],
                                },
                            ),
                            "comments": _field(
                                "comments",
                                {"model": "Comment"},
                                array=True,
                                association={
                                    "connectionType": "HAS_MANY",
                                    "associatedWith": ["storyId"],
                                },
                            ),
                            "createdAt": _field("createdAt", "AWSDateTime", read_only=True),
                            "updatedAt": _field("updatedAt", "AWSDateTime", read_only=True),
                        },
                        "syncable": True,
                        "pluralName": "Stories",
                        "attributes": [
                            {"type": "model", "properties": {}},
                            {
                                "type": "auth",
                                "properties": {
                                    "rules": [
                                        {
                                            "provider": "userPools",
                                            "ownerField": "owner",
                                            "allow": "owner",
                                            "identityClaim": "cognito:username",
                                            "operations": ["create", "update", "delete", "read"],
                                        },
                                        {
                                            "allow": "public",
                                            "provider": "apiKey",
                                            "operations": ["read"],
                                        },
                                    ]
                                },
                            },
                        ],
                        "primaryKeyInfo": {
                            "isCustomPrimaryKey": False,
                            "primaryKeyFieldName": "id",
                            "sortKeyFieldNames": [],
                        },
                    },
                    "Character": {
                        "name": "Character",
                        "fields": {
                            "id": _field("id", "ID", required=True),
                            "name": _field("name", "String", required=True),
                        },
                        "attributes": [{"type": "model", "properties": {}}],
                    },
                    "Comment": {
                        "name": "Comment",
                        "fields": {
                            "id": _field("id", "ID", required=True),
                            "body": _field("body", "String"),
                            "storyId": _field("storyId", "ID"),
                            "story": _field(
                                "story",
                                {"model": "Story"},
                                association={
                                    "connectionType": "BELONGS_TO",
                                    "targetNames": ["storyId"],
                                },
                            ),
                        },
                        "attributes": [],
                    },
                    "Person": {
                        "name": "Person",
                        "fields": {
                            "id": _field("id", "ID", required=True),
                            "name": _field("name", "String"),
                            "address": _field("address", {"nonModel": "Address"}),
                            "managerId": _field("managerId", "ID"),
                            "manager": _field(
                                "manager",
                                {"model": "Person"},
                                association={
                                    "connectionType": "BELONGS_TO",
                                    "targetNames": ["managerId"],
                                },
                            ),
                        },
                        "attributes": [],
                    },
                },
                "enums": {
                    "StoryStatus": {"name": "StoryStatus", "values": ["DRAFT", "PUBLISHED"]},
                },
                "nonModels": {},
            },
        },
    }
    if with_auth:
        outputs["auth"] = {
            "user_pool_id": "us-east-1_TEST",
            "aws_region": "us-east-1",
            "user_pool_client_id": "testclient",
            "identity_pool_id": "us-east-1:pool",
        }
    return outputs


def auth_result(username: str = "alice@example.com", suffix: str = "1", refresh_token="refresh-1") -> AuthResult:
    return AuthResult(
        identity=Identity(username=username),
        id_token=f"id-token-{suffix}",
        access_token=f"access-token-{suffix}",
        refresh_token=refresh_token,
    )


@pytest.fixture(autouse=True)
def no_ambient_credentials(monkeypatch):
    """Keep AMPLIFY_USERNAME / AMPLIFY_PASSWORD from the shell out of the tests."""
    monkeypatch.setattr("amplify_mcp_server.config.AMPLIFY_USERNAME", None)
    monkeypatch.setattr("amplify_mcp_server.config.AMPLIFY_PASSWORD", None)


@pytest.fixture
def outputs_dict():
    return sample_outputs_dict()


@pytest.fixture
def outputs(outputs_dict):
    return AmplifyOutputs.model_validate(outputs_dict)


@pytest.fixture
def outputs_file(tmp_path, outputs_dict):
    path = tmp_path / "amplify_outputs.json"
    path.write_text(json.dumps(outputs_dict))
    return path


@pytest.fixture
def credentials():
    return Credentials(username="alice@example.com", password="s3cret!")


@pytest.fixture
def mock_provider():
    """Identity provider double with async methods."""
    provider = MagicMock(spec=CognitoIdentityProvider)
    provider.sign_in = AsyncMock(return_value=auth_result())
    provider.renew = AsyncMock(return_value=auth_result(suffix="renewed", refresh_token="refresh-1"))
    provider.get_user = AsyncMock(
        return_value={"username": "alice@example.com", "attributes": {"email": "alice@example.com"}}
    )
    return provider


class RecordingHandler:
    """httpx.MockTransport handler returning queued responses and recording requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def make_context(outputs, mock_provider):
    """Build a ServerContext whose GraphQL calls go to the given responses."""
    def _make(*responses, provider=mock_provider, defaults=None, outputs_override=None):
        handler = RecordingHandler(*responses)
        context = build_context(
            outputs_override or outputs,
            defaults=defaults,
            provider=provider,
            transport=httpx.MockTransport(handler),
        )
        return context, handler
    return _make
