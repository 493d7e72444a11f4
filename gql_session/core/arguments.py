"""Field argument operations.

Four ways to set an argument: a typed value coerced to the argument's
schema type, a string with auto-coercion, a variable reference, or one
leaf of an input object.
"""

import json
import logging
from typing import Any

from graphql import (
    BooleanValueNode,
    EnumValueNode,
    FloatValueNode,
    GraphQLError,
    GraphQLInputObjectType,
    GraphQLSchema,
    GraphQLType,
    IntValueNode,
    ListValueNode,
    ObjectValueNode,
    StringValueNode,
    Undefined,
    ValueNode,
    coerce_input_value,
    get_named_type,
    get_nullable_type,
    is_enum_type,
    is_input_object_type,
    is_list_type,
    is_non_null_type,
    parse_value,
    value_from_ast,
)

from .context import ServiceContext, ensure, ensure_input_complexity
from .errors import (
    ComplexityExceededError,
    ConflictError,
    InvalidSyntaxError,
    NotFoundError,
    TypeMismatchError,
    tool_result,
)
from .ir import (
    ArgumentValue,
    EnumLiteral,
    LiteralValue,
    MarkedString,
    QueryState,
    TypedValue,
    VariableRef,
)
from .query_builder import build_query_from_state
from .schema import resolve_field
from .validation import (
    coerce_for_slot,
    coerce_string_value,
    coerce_to_boolean,
    coerce_to_float,
    coerce_to_integer,
    is_string_slot,
    is_valid_graphql_name,
    suggestion_suffix,
    validate_name,
    validate_pagination_value,
    validate_string_input,
    validate_variable_name,
)

logger = logging.getLogger(__name__)

TYPED_PAGINATION_ARGUMENTS = frozenset({"first", "last", "limit", "count"})
MAX_TYPED_PAGE_SIZE = 100


def _ast_to_raw(node: ValueNode) -> Any:
    """Convert a validated literal AST into raw values, keeping enums bare."""
    if isinstance(node, ObjectValueNode):
        return {f.name.value: _ast_to_raw(f.value) for f in node.fields}
    if isinstance(node, ListValueNode):
        return [_ast_to_raw(v) for v in node.values]
    if isinstance(node, EnumValueNode):
        return EnumLiteral(node.value)
    if isinstance(node, StringValueNode):
        return node.value
    if isinstance(node, IntValueNode):
        return int(node.value)
    if isinstance(node, FloatValueNode):
        return float(node.value)
    if isinstance(node, BooleanValueNode):
        return node.value
    return None


def coerce_typed_value(value: Any, arg_type: GraphQLType) -> Any:
    """Coerce a scalar or string to ``arg_type``; returns Undefined on failure.

    Strings are tried as booleans, then numbers (unless the slot is
    String or ID), then as themselves, then as GraphQL literal syntax.
    """
    candidates = [value]
    if isinstance(value, str):
        as_bool = coerce_to_boolean(value)
        if as_bool is not None:
            candidates.insert(0, as_bool)
        elif not is_string_slot(arg_type):
            number = coerce_to_integer(value)
            if number is None:
                number = coerce_to_float(value)
            if number is not None:
                candidates.insert(0, number)

    for candidate in candidates:
        try:
            return coerce_input_value(candidate, arg_type)
        except GraphQLError:
            continue

    if isinstance(value, str):
        try:
            node = parse_value(value)
        except GraphQLError:
            return Undefined
        if value_from_ast(node, arg_type) is Undefined:
            return Undefined
        return _ast_to_raw(node)
    return Undefined


def check_typed_page_size(argument_name: str, value: Any) -> None:
    if argument_name.lower() not in TYPED_PAGINATION_ARGUMENTS:
        return
    number = value if isinstance(value, int) and not isinstance(value, bool) else coerce_to_integer(value)
    if number is None:
        return
    if number < 0:
        raise InvalidSyntaxError(f"Pagination argument '{argument_name}' cannot be negative.")
    if number > MAX_TYPED_PAGE_SIZE:
        raise ComplexityExceededError(
            f"Pagination argument '{argument_name}' exceeds the maximum allowed limit "
            f"of {MAX_TYPED_PAGE_SIZE}."
        )


def _object_path(object_path: str) -> list[str]:
    segments = (object_path or "").split(".")
    for segment in segments:
        # "__" names are reserved for introspection and never valid input fields
        if not is_valid_graphql_name(segment) or segment.startswith("__"):
            raise InvalidSyntaxError(f"Invalid input object path '{object_path}'.")
    return segments


class ArgumentOperations(ServiceContext):
    """Sets arguments on selected fields."""

    @tool_result
    async def set_typed_argument(
        self,
        session_id: str,
        field_path: str,
        argument_name: str,
        value: str | int | float | bool | None,
    ) -> dict[str, Any]:
        """Set an argument, coercing ``value`` to the argument's declared type."""
        ensure(validate_name(argument_name, "argument name"))
        if value is not None and not isinstance(value, (str, int, float, bool)):
            raise TypeMismatchError(
                "Typed argument values must be a string, number, boolean or null."
            )
        ensure(validate_string_input(value, argument_name))
        path = self._field_path(field_path)
        check_typed_page_size(argument_name, value)

        state = await self._load(session_id)
        node = self._node(state, path)
        schema, root = await self._session_schema(state)
        if root is None:
            stored = self._schemaless_value(state, value)
        else:
            resolved = resolve_field(root, state.query_structure, path)
            argument = self._argument_definition(resolved, argument_name, path)
            stored = self._typed_value(schema, state, argument_name, value, argument.type)
        node.args[argument_name] = stored
        await self._save(session_id, state)

        return {
            "success": True,
            "message": f"Typed argument '{argument_name}' set to {json.dumps(value)} at path '{path}'.",
            "query": build_query_from_state(state),
        }

    def _typed_value(
        self,
        schema: GraphQLSchema,
        state: QueryState,
        argument_name: str,
        value: Any,
        arg_type: GraphQLType,
    ) -> ArgumentValue:
        if isinstance(value, str) and value.startswith("$"):
            ensure(validate_variable_name(value))
            self._check_variable_binding(schema, state, value, arg_type, f"argument '{argument_name}'")
            return VariableRef(value)
        if isinstance(value, str) and value.lower() == "null":
            value = None

        named = get_named_type(arg_type)
        if is_enum_type(named) and isinstance(value, str):
            if value not in named.values:
                suffix = suggestion_suffix(value, list(named.values), "values")
                raise TypeMismatchError(
                    f"Invalid value for argument '{argument_name}'. Reason: "
                    f'Value "{value}" does not exist in "{named.name}" enum.{suffix}'
                )
            return EnumLiteral(value)

        # Integers bound to ID render bare, as the caller passed them
        if named.name == "ID" and isinstance(value, int) and not isinstance(value, bool):
            return TypedValue(value)

        coerced = coerce_typed_value(value, arg_type)
        if coerced is Undefined:
            shown = "null" if value is None else value
            raise TypeMismatchError(
                f"Invalid value for argument '{argument_name}'. Reason: "
                f'Cannot coerce value "{shown}" to type {arg_type}'
            )
        return TypedValue(coerced)

    def _schemaless_value(self, state: QueryState, value: Any) -> ArgumentValue:
        if isinstance(value, str) and value.startswith("$"):
            ensure(validate_variable_name(value))
            self._check_variable_binding(None, state, value, None, "")
            return VariableRef(value)
        if isinstance(value, str):
            if value.lower() == "null":
                return TypedValue(None)
            coercion = coerce_string_value(value)
            return TypedValue(coercion.value) if coercion.coerced else MarkedString(value)
        return TypedValue(value)

    @tool_result
    async def set_string_argument(
        self,
        session_id: str,
        field_path: str,
        argument_name: str,
        value: str,
        is_enum: bool = False,
    ) -> dict[str, Any]:
        """Set an argument from a string, auto-coercing numbers and booleans.

        With ``is_enum`` the value is stored as a bare enum name.
        """
        ensure(validate_name(argument_name, "argument name"))
        if not isinstance(value, str):
            raise TypeMismatchError(
                "set_string_argument expects a string value; use set_typed_argument for other types."
            )
        if is_enum:
            ensure(validate_name(value, "enum value"))
        else:
            if value == "":
                raise InvalidSyntaxError(
                    f'Empty string not allowed for argument "{argument_name}". '
                    "Use null for empty values or provide a non-empty string."
                )
            ensure(validate_string_input(value, argument_name))
        ensure(validate_pagination_value(argument_name, value), ComplexityExceededError)
        path = self._field_path(field_path)

        state = await self._load(session_id)
        node = self._node(state, path)
        _, root = await self._session_schema(state)
        arg_type = None
        if root is not None:
            resolved = resolve_field(root, state.query_structure, path)
            arg_type = self._argument_definition(resolved, argument_name, path).type

        named = get_named_type(arg_type) if arg_type is not None else None
        coercion = None
        if is_enum or (named is not None and is_enum_type(named)):
            if named is not None:
                if not is_enum_type(named):
                    raise TypeMismatchError(
                        f"Argument '{argument_name}' is of type '{arg_type}', not an enum."
                    )
                if value not in named.values:
                    suffix = suggestion_suffix(value, list(named.values), "values")
                    raise TypeMismatchError(
                        f'Value "{value}" does not exist in "{named.name}" enum.{suffix}'
                    )
            stored: ArgumentValue = EnumLiteral(value)
        else:
            coercion = coerce_for_slot(value, arg_type)
            if coercion.coerced:
                stored = TypedValue(coercion.value)
                if arg_type is not None and coerce_typed_value(coercion.value, arg_type) is Undefined:
                    raise TypeMismatchError(
                        f"Invalid value for argument '{argument_name}'. Reason: "
                        f'"{value}" was read as {coercion.type_name}, which type {arg_type} does not accept.'
                    )
            else:
                stored = MarkedString(value)
        node.args[argument_name] = stored
        await self._save(session_id, state)

        message = f"String argument '{argument_name}' set to \"{value}\" at path '{path}'."
        result: dict[str, Any] = {"success": True}
        if coercion is not None and coercion.coerced:
            message += f" Auto-coerced to {coercion.type_name}."
            result["warning"] = coercion.warning
        result["message"] = message
        return result

    @tool_result
    async def set_variable_argument(
        self,
        session_id: str,
        field_path: str,
        argument_name: str,
        variable_name: str,
    ) -> dict[str, Any]:
        """Bind an argument to a declared variable."""
        ensure(validate_name(argument_name, "argument name"))
        ensure(validate_variable_name(variable_name))
        path = self._field_path(field_path)

        state = await self._load(session_id)
        node = self._node(state, path)
        schema, root = await self._session_schema(state)
        arg_type = None
        if root is not None:
            resolved = resolve_field(root, state.query_structure, path)
            arg_type = self._argument_definition(resolved, argument_name, path).type
        self._check_variable_binding(
            schema, state, variable_name, arg_type, f"argument '{argument_name}'"
        )
        node.args[argument_name] = VariableRef(variable_name)
        await self._save(session_id, state)

        return {
            "success": True,
            "message": f"Variable argument '{argument_name}' set to {variable_name} at path '{path}'.",
        }

    @tool_result
    async def set_input_object_argument(
        self,
        session_id: str,
        field_path: str,
        argument_name: str,
        object_path: str,
        value: Any,
    ) -> dict[str, Any]:
        """Set one leaf of an input-object argument, creating parents as needed.

        Args:
            session_id: Session to modify
            field_path: Path of the field carrying the argument
            argument_name: Input-object argument name
            object_path: Dotted path inside the input object, e.g. ``"owner.login"``
            value: Scalar (or list of scalars) for the leaf
        """
        ensure(validate_name(argument_name, "argument name"))
        segments = _object_path(object_path)
        if isinstance(value, dict):
            raise TypeMismatchError(
                "Input object values are set one leaf at a time; use a longer object path."
            )
        ensure_input_complexity(value, argument_name)
        for item in value if isinstance(value, list) else [value]:
            ensure(validate_string_input(item, argument_name))
        path = self._field_path(field_path)

        state = await self._load(session_id)
        node = self._node(state, path)
        existing = node.args.get(argument_name)
        if isinstance(existing, VariableRef):
            raise ConflictError(
                f"Cannot set input object properties on variable argument '{argument_name}'. "
                f"The argument is currently set to variable '{existing.name}'. "
                "Remove the variable first or use a different approach."
            )

        _, root = await self._session_schema(state)
        leaf_value = value
        if root is not None:
            resolved = resolve_field(root, state.query_structure, path)
            argument = self._argument_definition(resolved, argument_name, path)
            input_type = get_named_type(argument.type)
            if not is_input_object_type(input_type):
                raise TypeMismatchError(
                    f"Argument '{argument_name}' is not an input object type "
                    "and cannot have nested properties."
                )
            leaf_type = self._input_leaf_type(input_type, segments, object_path)
            leaf_value = self._input_leaf_value(
                value, leaf_type, f"For '{object_path}' in input object '{argument_name}'"
            )

        if isinstance(existing, LiteralValue) and isinstance(existing.value, dict):
            target = existing.value
        else:
            target = {}
        cursor = target
        for segment in segments[:-1]:
            child = cursor.get(segment)
            if not isinstance(child, dict):
                child = {}
                cursor[segment] = child
            cursor = child
        cursor[segments[-1]] = leaf_value
        node.args[argument_name] = LiteralValue(target)
        await self._save(session_id, state)

        return {
            "success": True,
            "message": (
                f"Set '{object_path}' to '{json.dumps(value)}' in input object "
                f"'{argument_name}' at field '{path}'."
            ),
        }

    def _input_leaf_type(
        self, input_type: GraphQLInputObjectType, segments: list[str], object_path: str
    ) -> GraphQLType:
        current = input_type
        for index, segment in enumerate(segments):
            fields = current.fields
            input_field = fields.get(segment)
            if input_field is None:
                suffix = suggestion_suffix(segment, list(fields), "fields")
                raise NotFoundError(
                    f"Field '{segment}' not found on input type '{current.name}'.{suffix}"
                )
            named = get_named_type(input_field.type)
            if index < len(segments) - 1:
                if not is_input_object_type(named):
                    raise TypeMismatchError(
                        f"Cannot set '{object_path}': '{segment}' on '{current.name}' is of type "
                        f"'{input_field.type}', not an input object."
                    )
                current = named
            elif is_input_object_type(named):
                raise TypeMismatchError(
                    f"Input field '{object_path}' is of input object type '{named.name}'; "
                    "set its fields individually."
                )
            else:
                return input_field.type
        raise InvalidSyntaxError(f"Invalid input object path '{object_path}'.")

    def _input_leaf_value(self, value: Any, leaf_type: GraphQLType, label: str) -> Any:
        if value is None:
            if is_non_null_type(leaf_type):
                raise TypeMismatchError(f"{label}: Expected non-nullable type not to be null")
            return None
        nullable = get_nullable_type(leaf_type)
        if is_list_type(nullable):
            items = value if isinstance(value, list) else [value]
            return [self._input_leaf_value(item, nullable.of_type, label) for item in items]
        processed, _ = self._coerce_literal(value, leaf_type, label)
        return processed
