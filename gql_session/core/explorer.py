"""Read-only schema exploration operations."""

import json
import logging
from typing import Any

from graphql import (
    GraphQLArgument,
    GraphQLField,
    GraphQLInputField,
    GraphQLNamedType,
    GraphQLSchema,
    GraphQLType,
    Undefined,
    get_named_type,
    get_nullable_type,
    is_abstract_type,
    is_enum_type,
    is_input_object_type,
    is_interface_type,
    is_leaf_type,
    is_list_type,
    is_non_null_type,
    is_object_type,
    is_scalar_type,
    is_union_type,
    print_schema,
)

from .context import ServiceContext, ensure
from .errors import ComplexityExceededError, NotFoundError, TypeMismatchError, UpstreamError, tool_result
from .ir import EnumLiteral, FieldPath
from .schema import fields_of, resolve_parent_type
from .validation import serialize_graphql_value, suggestion_suffix, validate_name

logger = logging.getLogger(__name__)

EXAMPLE_SCALARS = {
    "String": "example",
    "ID": "id-123",
    "Int": 42,
    "Float": 3.14,
    "Boolean": True,
}


def type_kind(gql_type: GraphQLNamedType) -> str:
    kinds = (
        (is_scalar_type, "SCALAR"),
        (is_object_type, "OBJECT"),
        (is_interface_type, "INTERFACE"),
        (is_union_type, "UNION"),
        (is_enum_type, "ENUM"),
        (is_input_object_type, "INPUT_OBJECT"),
    )
    for predicate, kind in kinds:
        if predicate(gql_type):
            return kind
    return "UNKNOWN"


def _default(value: Any) -> Any:
    return None if value is Undefined else value


def _describe_argument(name: str, argument: GraphQLArgument | GraphQLInputField) -> dict[str, Any]:
    return {
        "name": name,
        "type": str(argument.type),
        "description": argument.description,
        "default_value": _default(argument.default_value),
        "required": is_non_null_type(argument.type) and argument.default_value is Undefined,
    }


def _describe_field(name: str, definition: GraphQLField) -> dict[str, Any]:
    return {
        "name": name,
        "type": str(definition.type),
        "description": definition.description,
        "args": [_describe_argument(n, a) for n, a in definition.args.items()],
        "is_deprecated": definition.deprecation_reason is not None,
        "deprecation_reason": definition.deprecation_reason,
    }


def example_value(gql_type: GraphQLType, depth: int = 0) -> Any:
    """Placeholder value for a type, used in input-object help."""
    nullable = get_nullable_type(gql_type)
    if is_list_type(nullable):
        return [example_value(nullable.of_type, depth + 1)]
    named = get_named_type(gql_type)
    if named.name in EXAMPLE_SCALARS:
        return EXAMPLE_SCALARS[named.name]
    if is_enum_type(named):
        return EnumLiteral(next(iter(named.values), "VALUE"))
    if is_input_object_type(named):
        if depth >= 2:
            return {}
        required = {
            n: example_value(f.type, depth + 1)
            for n, f in named.fields.items()
            if is_non_null_type(f.type) and f.default_value is Undefined
        }
        return required
    return "value"


class ExplorerOperations(ServiceContext):
    """Answers questions about the schema."""

    async def _explorer_schema(self) -> GraphQLSchema:
        schema = await self._schema(self.settings.default_headers)
        if schema is None:
            raise UpstreamError("Schema unavailable.")
        return schema

    def _named_type(self, schema: GraphQLSchema, type_name: str) -> GraphQLNamedType:
        ensure(validate_name(type_name, "type name"))
        named = schema.get_type(type_name)
        if named is None:
            candidates = [n for n in schema.type_map if not n.startswith("__")]
            raise NotFoundError(
                f"Type '{type_name}' not found in schema.{suggestion_suffix(type_name, candidates, 'types')}"
            )
        return named

    @tool_result
    async def get_root_operation_types(self) -> dict[str, Any]:
        schema = await self._explorer_schema()
        return {
            "success": True,
            "query_type": schema.query_type.name if schema.query_type else None,
            "mutation_type": schema.mutation_type.name if schema.mutation_type else None,
            "subscription_type": schema.subscription_type.name if schema.subscription_type else None,
        }

    @tool_result
    async def get_type_info(self, type_name: str) -> dict[str, Any]:
        """Describe a named type: fields and arguments, enum values, or input fields."""
        schema = await self._explorer_schema()
        named = self._named_type(schema, type_name)
        info: dict[str, Any] = {
            "success": True,
            "name": named.name,
            "kind": type_kind(named),
            "description": named.description,
        }
        if is_object_type(named) or is_interface_type(named):
            info["fields"] = [_describe_field(n, f) for n, f in named.fields.items()]
            info["interfaces"] = [i.name for i in named.interfaces]
        if is_abstract_type(named):
            info["possible_types"] = [t.name for t in schema.get_possible_types(named)]
        if is_enum_type(named):
            info["enum_values"] = [
                {
                    "name": n,
                    "description": v.description,
                    "is_deprecated": v.deprecation_reason is not None,
                }
                for n, v in named.values.items()
            ]
        if is_input_object_type(named):
            info["input_fields"] = [_describe_argument(n, f) for n, f in named.fields.items()]
        return info

    @tool_result
    async def get_field_info(self, type_name: str, field_name: str) -> dict[str, Any]:
        schema = await self._explorer_schema()
        named = self._named_type(schema, type_name)
        fields = fields_of(named)
        definition = fields.get(field_name)
        if definition is None:
            suffix = suggestion_suffix(field_name, list(fields), "fields")
            raise NotFoundError(f"Field '{field_name}' not found on type '{type_name}'.{suffix}")
        return {"success": True, "type_name": type_name, **_describe_field(field_name, definition)}

    @tool_result
    async def get_input_object_help(self, input_type_name: str) -> dict[str, Any]:
        """Fields of an input type with required flags and example values."""
        schema = await self._explorer_schema()
        named = self._named_type(schema, input_type_name)
        if not is_input_object_type(named):
            raise TypeMismatchError(f"Type '{input_type_name}' is not an input object type.")

        fields = []
        for name, input_field in named.fields.items():
            entry = _describe_argument(name, input_field)
            entry["example_value"] = serialize_graphql_value(example_value(input_field.type))
            fields.append(entry)
        required = [f["name"] for f in fields if f["required"]]
        shown = required or [f["name"] for f in fields[:3]]
        usage = {n: example_value(named.fields[n].type) for n in shown}

        return {
            "success": True,
            "name": named.name,
            "description": named.description,
            "fields": fields,
            "required_fields": required,
            "example_usage": serialize_graphql_value(usage),
        }

    @tool_result
    async def get_selections(self, session_id: str, current_path: str = "") -> dict[str, Any]:
        """Fields selectable at a path of the session's tree."""
        path = FieldPath.parse(current_path)
        state = await self._load(session_id)
        node = self._node(state, path)
        schema, root = await self._session_schema(state)
        if root is None:
            raise UpstreamError("Schema unavailable.")
        parent_type = resolve_parent_type(root, state.query_structure, path)
        if is_leaf_type(parent_type):
            raise TypeMismatchError(
                f"Field at path '{path}' is of leaf type '{parent_type.name}' and has no selections."
            )

        fields = [
            {
                "name": name,
                "type": str(definition.type),
                "has_subfields": not is_leaf_type(get_named_type(definition.type)),
                "selected": name in node.fields,
                "description": definition.description,
            }
            for name, definition in fields_of(parent_type).items()
        ]
        result: dict[str, Any] = {
            "success": True,
            "path": str(path),
            "type": parent_type.name,
            "kind": type_kind(parent_type),
            "fields": fields,
        }
        if is_abstract_type(parent_type):
            result["fragment_suggestions"] = [
                f"... on {t.name}" for t in schema.get_possible_types(parent_type)
            ]
        return result

    @tool_result
    async def introspect_schema(self) -> dict[str, Any]:
        """SDL and raw introspection JSON, refused when the JSON is too large."""
        schema = await self._explorer_schema()
        introspection = await self.schema_provider.get_introspection(self.settings.default_headers)
        size = len(json.dumps(introspection).encode())
        limit = self.settings.max_introspection_bytes
        if size > limit:
            raise ComplexityExceededError(
                f"Schema introspection result is {size} bytes, which exceeds the limit of {limit} bytes."
            )
        return {
            "success": True,
            "sdl": print_schema(schema),
            "introspection": introspection,
            "size_bytes": size,
        }

