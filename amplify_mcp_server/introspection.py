"""Read-only views over the Amplify model introspection document.

Field types are already decided at load time (ScalarType / ModelRef /
EnumRef), so nothing here inspects raw JSON.
"""
from typing import Optional

from .models import (
    EnumDescriptor,
    FieldDescriptor,
    FieldDetail,
    FieldSummary,
    ModelDescriptor,
    ModelDetail,
    ModelRef,
    ModelSummary,
    RelationshipInfo,
)

# Nesting depth past which model references collapse to a bare `id`
MAX_SELECTION_DEPTH = 1


class ModelNotFoundError(Exception):
    """Raised when a model name is not in the introspection document."""
    def __init__(self, model_name: str):
        super().__init__(f"Model '{model_name}' not found")
        self.model_name = model_name


def _summarize_field(field_name: str, field: FieldDescriptor) -> FieldSummary:
    return FieldSummary(
        name=field_name,
        type=field.type.label,
        is_required=field.is_required,
        is_array=field.is_array,
    )


class SchemaIntrospector:
    """Summaries of models, enums and relationships, plus selection sets for mutations."""

    def __init__(
        self,
        models: Optional[dict[str, ModelDescriptor]] = None,
        enums: Optional[dict[str, EnumDescriptor]] = None,
    ):
        self.models = models or {}
        self.enums = enums or {}

    def get_model(self, model_name: str) -> ModelDescriptor:
        model = self.models.get(model_name)
        if model is None:
            raise ModelNotFoundError(model_name)
        return model

    def list_models(self) -> list[ModelSummary]:
        return [
            ModelSummary(
                name=name,
                fields=[_summarize_field(field_name, field) for field_name, field in model.fields.items()],
            )
            for name, model in self.models.items()
        ]

    def list_enums(self) -> list[EnumDescriptor]:
        return [
            EnumDescriptor(name=name, values=list(enum.values))
            for name, enum in self.enums.items()
        ]

    def describe_model(self, model_name: str) -> ModelDetail:
        """Fields with association metadata, plus flattened auth rules.

        Raises:
            ModelNotFoundError: If the model does not exist
        """
        model = self.get_model(model_name)
        fields = []
        for field_name, field in model.fields.items():
            summary = _summarize_field(field_name, field)
            association = field.association
            fields.append(FieldDetail(
                **summary.model_dump(),
                association=association.connection_type if association else None,
                target_names=list(association.target_names) if association else [],
            ))
        return ModelDetail(
            name=model_name,
            fields=fields,
            authorization_rules=model.authorization_rules,
        )

    def describe_relationships(self, model_name: str) -> list[RelationshipInfo]:
        """Fields of a model that carry association metadata.

        An empty list means the model exists but has no relationships.

        Raises:
            ModelNotFoundError: If the model does not exist
        """
        model = self.get_model(model_name)
        relationships = []
        for field_name, field in model.fields.items():
            if field.association is None:
                continue
            relationships.append(RelationshipInfo(
                field=field_name,
                related_model=field.type.name if isinstance(field.type, ModelRef) else None,
                relationship_kind=field.association.connection_type,
                associated_with=list(field.association.associated_with),
                target_names=list(field.association.target_names),
            ))
        return relationships

    # ==========================================================================
    # Selection Sets
    # ==========================================================================

    def generate_selection_set(self, model_name: str, depth: int = 0) -> str:
        """Build the fields to request back from a mutation on `model_name`.

        Writable scalar and enum fields are always included. Collection
        references get `{ id }`. Singular references get `{ id name }` at the
        top level and recurse one level deeper otherwise; past
        MAX_SELECTION_DEPTH a model collapses to `id`, which bounds cyclic
        model graphs. Read-only fields are never included.
        """
        if depth > MAX_SELECTION_DEPTH:
            return "id"
        model = self.models.get(model_name)
        if model is None:
            return "id"

        selections = []
        for field_name, field in model.fields.items():
            if field.is_read_only:
                continue
            if not isinstance(field.type, ModelRef):
                selections.append(field_name)
            elif field.is_array:
                selections.append(f"{field_name} {{ id }}")
            elif depth == 0:
                selections.append(f"{field_name} {{ {self._shallow_projection(field.type.name)} }}")
            else:
                nested = self.generate_selection_set(field.type.name, depth + 1)
                selections.append(f"{field_name} {{ {nested} }}")
        return "\n".join(selections)

    def _shallow_projection(self, model_name: str) -> str:
        related = self.models.get(model_name)
        if related is not None and "name" not in related.fields:
            return "id"
        return "id name"

    def generate_mutation(self, model_name: str, operation: str = "create") -> str:
        """Compose a create/update/delete mutation document for a model.

        Raises:
            ModelNotFoundError: If the model does not exist
        """
        self.get_model(model_name)
        operation_name = f"{operation.capitalize()}{model_name}"
        field_name = f"{operation.lower()}{model_name}"
        selection = self.generate_selection_set(model_name)
        body = "\n".join(f"    {line}" for line in selection.splitlines())
        return (
            f"mutation {operation_name}($input: {operation_name}Input!) {{\n"
            f"  {field_name}(input: $input) {{\n"
            f"{body}\n"
            f"  }}\n"
            f"}}"
        )
