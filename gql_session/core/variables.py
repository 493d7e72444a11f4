"""Operation variable declarations, defaults and values."""

import json
import logging
from typing import Any

from graphql import GraphQLError, coerce_input_value, is_input_type

from .context import UNSET, ServiceContext, ensure, ensure_input_complexity
from .errors import InvalidSyntaxError, NotFoundError, TypeMismatchError, tool_result
from .ir import Directive, EnumLiteral, QueryState, SelectionNode, VariableRef
from .schema import type_from_string
from .validation import (
    MAX_INPUT_LENGTH,
    CONTROL_CHARACTERS,
    coerce_for_slot,
    suggestion_suffix,
    validate_string_input,
    validate_value_against_type,
    validate_variable_name,
    validate_variable_type,
)

logger = logging.getLogger(__name__)


def _reject_variable_reference(value: Any) -> None:
    if isinstance(value, str) and value.startswith("$"):
        raise InvalidSyntaxError("Variable values cannot reference other variables.")


def _plain(value: Any) -> Any:
    """JSON-friendly form of a stored default."""
    return value.value if isinstance(value, EnumLiteral) else value


def _prune_directives(directives: list[Directive], variable_name: str, where: str, removed: list[str]) -> None:
    for directive in list(directives):
        before = len(directive.arguments)
        directive.arguments = [
            a for a in directive.arguments
            if not (isinstance(a.value, VariableRef) and a.value.name == variable_name)
        ]
        if len(directive.arguments) == before:
            continue
        removed.append(f"@{directive.name} argument at {where}")
        # A directive that only existed to carry this variable would render bare
        if not directive.arguments:
            directives.remove(directive)


def _prune_node(node: SelectionNode, variable_name: str, where: str, removed: list[str]) -> None:
    for argument_name, value in list(node.args.items()):
        if isinstance(value, VariableRef) and value.name == variable_name:
            del node.args[argument_name]
            removed.append(f"argument '{argument_name}' at '{where}'")
    _prune_directives(node.directives, variable_name, f"'{where}'", removed)
    for key, child in node.fields.items():
        _prune_node(child, variable_name, f"{where}.{key}" if where else key, removed)
    for fragment in node.inline_fragments:
        for key, child in fragment.selections.items():
            _prune_node(child, variable_name, f"{where}...on {fragment.on_type}.{key}", removed)


def remove_variable_references(state: QueryState, variable_name: str) -> list[str]:
    """Drop every argument and directive argument bound to the variable."""
    removed: list[str] = []
    _prune_node(state.query_structure, variable_name, "", removed)
    for name, fragment in state.fragments.items():
        for key, child in fragment.fields.items():
            _prune_node(child, variable_name, f"fragment {name}.{key}", removed)
    _prune_directives(state.operation_directives, variable_name, "operation", removed)
    return removed


class VariableOperations(ServiceContext):
    """Declares variables and assigns their runtime values."""

    @tool_result
    async def set_query_variable(
        self,
        session_id: str,
        variable_name: str,
        variable_type: str,
        default_value: Any = UNSET,
    ) -> dict[str, Any]:
        """Declare (or redeclare) ``$name: Type`` with an optional default.

        Redeclaring replaces the type and the default.
        """
        ensure(validate_variable_name(variable_name))
        ensure(validate_variable_type(variable_type))
        if default_value is not UNSET:
            ensure_input_complexity(default_value, variable_name)
            ensure(validate_string_input(default_value, variable_name))
            _reject_variable_reference(default_value)

        state = await self._load(session_id)
        schema = await self._schema(state.headers)
        gql_type = None
        if schema is not None:
            gql_type = type_from_string(schema, variable_type)
            if gql_type is None:
                suffix = suggestion_suffix(
                    variable_type.strip("[]! "), list(schema.type_map), "types"
                )
                raise NotFoundError(
                    f"Type '{variable_type}' does not exist in the GraphQL schema.{suffix}"
                )
            if not is_input_type(gql_type):
                raise TypeMismatchError(
                    f"Type '{variable_type}' is not an input type and cannot be used for a variable."
                )

        if default_value is not UNSET:
            processed, _ = self._coerce_literal(
                default_value, gql_type, f"For default value of variable '{variable_name}'"
            )
            state.variables_defaults[variable_name] = processed
        else:
            state.variables_defaults.pop(variable_name, None)
        state.variables_schema[variable_name] = variable_type
        await self._save(session_id, state)

        message = f"Variable '{variable_name}' set to type '{variable_type}'"
        if default_value is not UNSET:
            message += f" with default value {json.dumps(_plain(state.variables_defaults[variable_name]))}"
        return {"success": True, "message": message + "."}

    @tool_result
    async def set_variable_value(
        self,
        session_id: str,
        variable_name: str,
        value: Any,
    ) -> dict[str, Any]:
        """Assign the runtime value sent with the query for a declared variable."""
        ensure(validate_variable_name(variable_name))
        ensure_input_complexity(value, variable_name)
        if isinstance(value, str):
            if len(value) > MAX_INPUT_LENGTH:
                raise InvalidSyntaxError(
                    f'Input string for variable "{variable_name}" exceeds maximum allowed '
                    f"length of {MAX_INPUT_LENGTH} characters."
                )
            if CONTROL_CHARACTERS.search(value):
                raise InvalidSyntaxError(
                    f'Input string for variable "{variable_name}" contains disallowed control characters.'
                )
            _reject_variable_reference(value)

        state = await self._load(session_id)
        declared = state.variables_schema.get(variable_name)
        if declared is None:
            raise NotFoundError(
                f"Variable '{variable_name}' is not defined in the query schema. "
                "Use set_query_variable first."
            )
        schema = await self._schema(state.headers)
        gql_type = type_from_string(schema, declared) if schema is not None else None

        processed = coerce_for_slot(value, gql_type).value
        if gql_type is not None:
            error = validate_value_against_type(processed, gql_type)
            if error:
                raise TypeMismatchError(f"For variable '{variable_name}': {error}")
            if isinstance(processed, (dict, list)):
                try:
                    coerce_input_value(processed, gql_type)
                except GraphQLError as e:
                    raise TypeMismatchError(f"For variable '{variable_name}': {e.message}") from e
        state.variables_values[variable_name] = processed
        await self._save(session_id, state)

        return {
            "success": True,
            "message": f"Variable '{variable_name}' value set to {json.dumps(processed)}.",
        }

    @tool_result
    async def remove_query_variable(self, session_id: str, variable_name: str) -> dict[str, Any]:
        """Remove a variable together with every reference to it."""
        ensure(validate_variable_name(variable_name))

        state = await self._load(session_id)
        if variable_name not in state.variables_schema:
            raise NotFoundError(f"Variable '{variable_name}' not defined.")
        del state.variables_schema[variable_name]
        state.variables_defaults.pop(variable_name, None)
        state.variables_values.pop(variable_name, None)
        removed = remove_variable_references(state, variable_name)
        await self._save(session_id, state)

        message = f"Variable '{variable_name}' removed from query."
        if removed:
            message += f" Also removed {len(removed)} reference(s): {', '.join(removed)}."
        return {"success": True, "message": message, "removed_references": removed}
