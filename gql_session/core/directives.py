"""Directive operations for fields and for the operation itself."""

import logging
from typing import Any

from graphql import DirectiveLocation, GraphQLSchema

from .context import UNSET, ServiceContext, ensure, ensure_input_complexity
from .errors import InvalidSyntaxError, NotFoundError, TypeMismatchError, tool_result
from .ir import ArgumentValue, LiteralValue, OperationType, QueryState, VariableRef, upsert_directive
from .validation import (
    Coercion,
    is_valid_graphql_name,
    suggestion_suffix,
    validate_name,
    validate_string_input,
    validate_variable_name,
)

logger = logging.getLogger(__name__)

OPERATION_LOCATIONS = {
    OperationType.QUERY: DirectiveLocation.QUERY,
    OperationType.MUTATION: DirectiveLocation.MUTATION,
    OperationType.SUBSCRIPTION: DirectiveLocation.SUBSCRIPTION,
}


def _directive_name(directive_name: str) -> str:
    name = directive_name[1:] if isinstance(directive_name, str) and directive_name.startswith("@") else directive_name
    if not is_valid_graphql_name(name):
        raise InvalidSyntaxError(f'Invalid directive name "{directive_name}".')
    return name


def _check_argument_inputs(argument_name: str | None, argument_value: Any) -> None:
    if argument_name is None:
        if argument_value is not UNSET:
            raise InvalidSyntaxError("argument_value requires argument_name.")
        return
    ensure(validate_name(argument_name, "argument name"))
    if argument_value is UNSET:
        raise InvalidSyntaxError(f"A value is required for directive argument '{argument_name}'.")
    ensure_input_complexity(argument_value, argument_name)
    ensure(validate_string_input(argument_value, argument_name))


class DirectiveOperations(ServiceContext):
    """Attaches directives to fields and operations."""

    @tool_result
    async def set_field_directive(
        self,
        session_id: str,
        field_path: str,
        directive_name: str,
        argument_name: str | None = None,
        argument_value: Any = UNSET,
    ) -> dict[str, Any]:
        """Apply ``@directive`` to a field, optionally adding one argument.

        Repeated calls for the same directive accumulate arguments on one
        instance; setting an existing argument name replaces its value.
        """
        name = _directive_name(directive_name)
        _check_argument_inputs(argument_name, argument_value)
        path = self._field_path(field_path)

        state = await self._load(session_id)
        node = self._node(state, path)
        schema = await self._schema(state.headers)
        stored, coercion = self._directive_argument(
            schema, state, name, argument_name, argument_value, DirectiveLocation.FIELD
        )
        directive = upsert_directive(node.directives, name)
        if argument_name is not None:
            directive.set_argument(argument_name, stored)
        await self._save(session_id, state)

        message = f"Directive '@{name}' applied to field at path '{path}'."
        result: dict[str, Any] = {
            "success": True,
            "field_path": str(path),
            "directive_name": name,
            "argument_name": argument_name,
            "argument_value": None if argument_value is UNSET else argument_value,
        }
        if coercion is not None and coercion.coerced:
            message += f" Auto-coerced argument to {coercion.type_name}."
            result["warning"] = coercion.warning
        result["message"] = message
        return result

    @tool_result
    async def set_operation_directive(
        self,
        session_id: str,
        directive_name: str,
        argument_name: str | None = None,
        argument_value: Any = UNSET,
    ) -> dict[str, Any]:
        """Apply ``@directive`` to the operation (rendered after the variables)."""
        name = _directive_name(directive_name)
        _check_argument_inputs(argument_name, argument_value)

        state = await self._load(session_id)
        schema = await self._schema(state.headers)
        location = OPERATION_LOCATIONS[state.operation_type]
        stored, coercion = self._directive_argument(
            schema, state, name, argument_name, argument_value, location
        )
        directive = upsert_directive(state.operation_directives, name)
        if argument_name is not None:
            directive.set_argument(argument_name, stored)
        await self._save(session_id, state)

        message = f"Operation directive '@{name}' applied to {state.operation_type.value}."
        result: dict[str, Any] = {
            "success": True,
            "directive_name": name,
            "argument_name": argument_name,
            "argument_value": None if argument_value is UNSET else argument_value,
        }
        if coercion is not None and coercion.coerced:
            message += f" Auto-coerced argument to {coercion.type_name}."
            result["warning"] = coercion.warning
        result["message"] = message
        return result

    def _directive_argument(
        self,
        schema: GraphQLSchema | None,
        state: QueryState,
        name: str,
        argument_name: str | None,
        argument_value: Any,
        location: DirectiveLocation,
    ) -> tuple[ArgumentValue | None, Coercion | None]:
        directive = None
        if schema is not None:
            directive = schema.get_directive(name)
            if directive is None:
                raise NotFoundError(f"Directive '@{name}' not found in the schema.")
            if location not in directive.locations:
                allowed = ", ".join(loc.name for loc in directive.locations)
                raise TypeMismatchError(
                    f"Directive '@{name}' cannot be used at {location.name} location. "
                    f"Allowed locations: {allowed}"
                )
        if argument_name is None:
            return None, None

        arg_type = None
        if directive is not None:
            argument = directive.args.get(argument_name)
            if argument is None:
                suffix = suggestion_suffix(argument_name, list(directive.args), "arguments")
                raise NotFoundError(
                    f"Argument '{argument_name}' not found on directive '@{name}'.{suffix}"
                )
            arg_type = argument.type

        if isinstance(argument_value, str) and argument_value.startswith("$"):
            ensure(validate_variable_name(argument_value))
            self._check_variable_binding(
                schema, state, argument_value, arg_type,
                f"argument '{argument_name}' on directive '@{name}'",
            )
            return VariableRef(argument_value), None

        processed, coercion = self._coerce_literal(
            argument_value, arg_type, f"For argument '{argument_name}' on directive '@{name}'"
        )
        return LiteralValue(processed), coercion
