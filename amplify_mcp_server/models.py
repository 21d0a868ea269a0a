"""Pydantic models for the Amplify Data MCP Server"""
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Annotated, Any, Literal, Optional, Union
from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


# ==============================================================================
# Authentication Models
# ==============================================================================

class Credentials(BaseModel):
    """A principal/secret pair usable for unattended re-authentication."""
    model_config = ConfigDict(frozen=True)

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1, repr=False)


class Identity(BaseModel):
    """The authenticated user as reported by the identity provider."""
    username: str


class AuthResult(BaseModel):
    """Tokens issued by a sign-in or a session renewal."""
    identity: Identity
    id_token: str = Field(..., repr=False)
    access_token: str = Field(..., repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)


class Session(BaseModel):
    """Process-wide authentication state.

    `token` is the bearer credential attached to upstream calls. A present
    token implies a prior successful sign-in; present `credentials` allow
    re-authentication once the token can no longer be renewed.
    """
    identity: Optional[Identity] = None
    token: Optional[str] = Field(default=None, repr=False)
    access_token: Optional[str] = Field(default=None, repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    credentials: Optional[Credentials] = None
    last_refreshed_at: Optional[datetime] = None
    refresh_count: int = 0


# ==============================================================================
# Model Introspection Descriptors
# ==============================================================================

class ScalarType(BaseModel):
    """A built-in GraphQL/AWS scalar such as ID, String or AWSDateTime."""
    kind: Literal["scalar"] = "scalar"
    name: str

    @property
    def label(self) -> str:
        return self.name


class ModelRef(BaseModel):
    """A reference to another data model."""
    kind: Literal["model"] = "model"
    name: str

    @property
    def label(self) -> str:
        return f"{self.name} (model)"


class EnumRef(BaseModel):
    """A reference to an enum type."""
    kind: Literal["enum"] = "enum"
    name: str

    @property
    def label(self) -> str:
        return f"{self.name} (enum)"


FieldType = Annotated[Union[ScalarType, ModelRef, EnumRef], Field(discriminator="kind")]


class Association(BaseModel):
    """Relationship metadata carried by a model-typed field."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    connection_type: str = Field(..., alias="connectionType")
    associated_with: list[str] = Field(default_factory=list, alias="associatedWith")
    target_names: list[str] = Field(default_factory=list, alias="targetNames")


class FieldDescriptor(BaseModel):
    """A single field of a data model."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: FieldType
    is_required: bool = Field(default=False, alias="isRequired")
    is_array: bool = Field(default=False, alias="isArray")
    is_read_only: bool = Field(default=False, alias="isReadOnly")
    association: Optional[Association] = None

    @field_validator("type", mode="before")
    @classmethod
    def _decide_field_type(cls, value: Any) -> Any:
        # Introspection encodes scalars as bare names and references as
        # single-key objects: {"model": ...}, {"enum": ...}, {"nonModel": ...}
        if isinstance(value, str):
            return {"kind": "scalar", "name": value}
        if isinstance(value, dict) and "kind" not in value:
            if "model" in value:
                return {"kind": "model", "name": value["model"]}
            if "enum" in value:
                return {"kind": "enum", "name": value["enum"]}
            if "nonModel" in value:
                return {"kind": "scalar", "name": value["nonModel"]}
        return value


class AuthRule(BaseModel):
    """A flattened authorization rule."""
    provider: Optional[str] = None
    allow: str
    operations: list[str] = Field(default_factory=list)


class ModelAttribute(BaseModel):
    """A model-level attribute (model, key, auth, ...)."""
    model_config = ConfigDict(extra="ignore")

    type: str
    properties: dict[str, Any] = Field(default_factory=dict)


class ModelDescriptor(BaseModel):
    """A data model from the introspection document."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    fields: dict[str, FieldDescriptor] = Field(default_factory=dict)
    attributes: list[ModelAttribute] = Field(default_factory=list)

    @property
    def authorization_rules(self) -> list[AuthRule]:
        """Rules of every `auth` attribute, flattened in declaration order."""
        rules = []
        for attribute in self.attributes:
            if attribute.type != "auth":
                continue
            for rule in attribute.properties.get("rules", []):
                rules.append(AuthRule(
                    provider=rule.get("provider"),
                    allow=rule.get("allow", "N/A"),
                    operations=rule.get("operations", []),
                ))
        return rules


class EnumDescriptor(BaseModel):
    """An enum type from the introspection document."""
    name: str
    values: list[str] = Field(default_factory=list)


class ModelIntrospection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    models: dict[str, ModelDescriptor] = Field(default_factory=dict)
    enums: dict[str, EnumDescriptor] = Field(default_factory=dict)


class DataConfig(BaseModel):
    """The `data` section of amplify_outputs.json."""
    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    url: str
    aws_region: str = "us-east-1"
    default_authorization_type: str = "API_KEY"
    authorization_types: list[str] = Field(default_factory=list)
    api_key: Optional[str] = Field(default=None, repr=False)
    model_introspection: ModelIntrospection = Field(default_factory=ModelIntrospection)


class AuthConfig(BaseModel):
    """The `auth` section of amplify_outputs.json."""
    model_config = ConfigDict(extra="ignore")

    user_pool_id: Optional[str] = None
    user_pool_client_id: Optional[str] = None
    aws_region: Optional[str] = None
    identity_pool_id: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.user_pool_id and self.user_pool_client_id)


class AmplifyOutputs(BaseModel):
    """Root of the amplify_outputs.json descriptor document."""
    model_config = ConfigDict(extra="ignore")

    data: DataConfig
    auth: Optional[AuthConfig] = None


# ==============================================================================
# Introspection Results
# ==============================================================================

class FieldSummary(BaseModel):
    name: str
    type: str
    is_required: bool
    is_array: bool


class ModelSummary(BaseModel):
    name: str
    fields: list[FieldSummary]


class FieldDetail(FieldSummary):
    association: Optional[str] = None
    target_names: list[str] = Field(default_factory=list)


class ModelDetail(BaseModel):
    name: str
    fields: list[FieldDetail]
    authorization_rules: list[AuthRule]


class RelationshipInfo(BaseModel):
    field: str
    related_model: Optional[str]
    relationship_kind: str
    associated_with: list[str] = Field(default_factory=list)
    target_names: list[str] = Field(default_factory=list)


# ==============================================================================
# Tool Input Models
# ==============================================================================

class ResponseFormat(str, Enum):
    """Output format for tool responses."""
    TEXT = "text"
    JSON = "json"


class MutationOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class LoginInput(BaseModel):
    """Input parameters for the login tool."""
    model_config = ConfigDict(extra='forbid')

    username: str = Field(
        ...,
        description="Cognito username (usually email)",
        min_length=1,
    )
    password: str = Field(
        ...,
        description="Cognito password, passed through unchanged",
        min_length=1,
    )

    @field_validator("username", mode="before")
    @classmethod
    def _strip_username(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value


class ListInput(BaseModel):
    """Input parameters for the list-models and list-enums tools."""
    model_config = ConfigDict(extra='forbid')

    response_format: ResponseFormat = Field(
        default=ResponseFormat.TEXT,
        description="Output format: 'text' for human-readable or 'json' for structured data"
    )


class ModelNameInput(BaseModel):
    """Input parameters for tools that operate on a single model."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        protected_namespaces=(),
        extra='forbid'
    )

    model_name: str = Field(
        ...,
        alias="modelName",
        description="Name of the model (e.g., 'Story', 'Character')",
        min_length=1,
        max_length=200
    )
    response_format: ResponseFormat = Field(
        default=ResponseFormat.TEXT,
        description="Output format: 'text' for human-readable or 'json' for structured data"
    )


class RunQueryInput(BaseModel):
    """Input parameters for the run-query tool."""
    model_config = ConfigDict(extra='forbid')

    query: str = Field(
        ...,
        description="GraphQL query or mutation to execute",
        min_length=1
    )
    variables: Optional[str] = Field(
        default=None,
        description="JSON string of variables for the query (e.g., '{\"id\": \"123\"}')"
    )


class GenerateMutationInput(BaseModel):
    """Input parameters for the generate-mutation tool."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        protected_namespaces=(),
        extra='forbid'
    )

    model_name: str = Field(
        ...,
        alias="modelName",
        description="Name of the model to write",
        min_length=1,
        max_length=200
    )
    operation: MutationOperation = Field(
        default=MutationOperation.CREATE,
        description="Mutation to generate: 'create', 'update' or 'delete'"
    )
