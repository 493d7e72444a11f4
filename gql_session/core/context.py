"""Shared steps of every session operation.

Each mutator follows the same protocol: validate raw inputs, load the
session, resolve the schema when the operation needs it, resolve the
target node, apply the change, and save. The helpers here implement the
common parts so the operation mixins read top to bottom.
"""

import logging
from typing import Any

from graphql import (
    GraphQLArgument,
    GraphQLError,
    GraphQLObjectType,
    GraphQLSchema,
    GraphQLType,
    coerce_input_value,
    get_named_type,
    get_nullable_type,
    is_enum_type,
    is_list_type,
    is_non_null_type,
    is_type_sub_type_of,
)

from .config import BuilderSettings, SchemaStrictness
from .errors import (
    ComplexityExceededError,
    InvalidSyntaxError,
    NotFoundError,
    QueryBuilderError,
    SessionNotFoundError,
    TypeMismatchError,
    UpstreamError,
)
from .executor import GraphQLExecutor
from .ir import EnumLiteral, FieldPath, QueryState, SelectionNode
from .schema import (
    ResolvedField,
    SchemaProvider,
    missing_segment,
    root_type_for,
    type_from_string,
)
from .store import SessionStore
from .validation import (
    Coercion,
    coerce_for_slot,
    suggestion_suffix,
    validate_input_complexity,
    validate_value_against_type,
)

logger = logging.getLogger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


# Marks an optional value that was not passed (None means GraphQL null)
UNSET: Any = _Unset()


def ensure(error: str | None, exc_type: type[QueryBuilderError] = InvalidSyntaxError) -> None:
    """Raise ``exc_type(error)`` when a validator reported a problem."""
    if error:
        raise exc_type(error)


def ensure_input_complexity(value: Any, label: str) -> None:
    ensure(validate_input_complexity(value, label), ComplexityExceededError)


class ServiceContext:
    """State and collaborators shared by all operation mixins."""

    def __init__(
        self,
        store: SessionStore,
        schema_provider: SchemaProvider,
        settings: BuilderSettings | None = None,
        executor: GraphQLExecutor | None = None,
    ):
        """Initialize the service.

        Args:
            store: Where session state lives
            schema_provider: Source of the GraphQL schema
            settings: Runtime configuration; defaults when omitted
            executor: Used by execute_query; built from settings.endpoint when omitted
        """
        self.store = store
        self.schema_provider = schema_provider
        self.settings = settings or BuilderSettings()
        if executor is None and self.settings.endpoint:
            executor = GraphQLExecutor(self.settings.endpoint, timeout=self.settings.execution_timeout)
        self.executor = executor

    async def _load(self, session_id: str) -> QueryState:
        if not isinstance(session_id, str) or not session_id.strip():
            raise SessionNotFoundError()
        state = await self.store.load(session_id)
        if state is None:
            raise SessionNotFoundError()
        return state

    async def _save(self, session_id: str, state: QueryState) -> None:
        state.revision += 1
        await self.store.save(session_id, state)

    async def _schema(self, headers: dict[str, str]) -> GraphQLSchema | None:
        """The schema, or None when it is unavailable and strictness is advisory."""
        try:
            return await self.schema_provider.get_schema(headers)
        except UpstreamError as e:
            if self.settings.schema_strictness is SchemaStrictness.ADVISORY:
                logger.warning("Schema unavailable, skipping schema checks: %s", e.message)
                return None
            raise type(e)(f"Schema validation failed: {e.message}") from e

    async def _session_schema(
        self, state: QueryState
    ) -> tuple[GraphQLSchema | None, GraphQLObjectType | None]:
        """The schema and the root type of the session's operation."""
        schema = await self._schema(state.headers)
        if schema is None:
            return None, None
        root = root_type_for(schema, state.operation_type)
        if root is None:
            raise NotFoundError(
                f"Operation type '{state.operation_type.value}' not supported by schema or invalid"
            )
        return schema, root

    def _node(self, state: QueryState, path: FieldPath, *, parent: bool = False) -> SelectionNode:
        node = state.query_structure.find(path)
        if node is None:
            reason = missing_segment(path, state.query_structure.missing_index(path))
            if parent:
                raise NotFoundError(f"Parent path '{path}' not found in query structure: {reason}.")
            raise NotFoundError(f"Field at path '{path}' not found: {reason}.")
        return node

    @staticmethod
    def _field_path(field_path: str) -> FieldPath:
        """Parse a path that must name a field (not the root)."""
        path = FieldPath.parse(field_path)
        if path.is_root:
            raise InvalidSyntaxError("fieldPath cannot be empty.")
        return path

    def _argument_definition(
        self, resolved: ResolvedField, argument_name: str, path: FieldPath
    ) -> GraphQLArgument:
        argument = resolved.definition.args.get(argument_name)
        if argument is None:
            names = list(resolved.definition.args)
            if names:
                suffix = suggestion_suffix(argument_name, names, "arguments")
            else:
                suffix = " This field does not accept any arguments."
            raise NotFoundError(f"Argument '{argument_name}' not found on field '{path}'.{suffix}")
        return argument

    def _check_variable_binding(
        self,
        schema: GraphQLSchema | None,
        state: QueryState,
        variable_name: str,
        target_type: GraphQLType | None,
        slot: str,
    ) -> None:
        """The variable must be declared, and its type usable where it is bound."""
        declared = state.variables_schema.get(variable_name)
        if declared is None:
            raise NotFoundError(
                f"Variable '{variable_name}' is not defined. Use set_query_variable first."
            )
        if schema is None or target_type is None:
            return
        variable_type = type_from_string(schema, declared)
        if variable_type is None:
            raise TypeMismatchError(
                f"Variable '{variable_name}' has type '{declared}', which does not exist in the schema."
            )
        # A nullable variable with a non-null default may fill a non-null slot
        has_default = state.variables_defaults.get(variable_name) is not None
        if is_non_null_type(target_type) and not is_non_null_type(variable_type) and has_default:
            target_type = target_type.of_type
        if not is_type_sub_type_of(schema, variable_type, target_type):
            raise TypeMismatchError(
                f"Variable '{variable_name}' of type '{declared}' cannot be used for "
                f"{slot} of type '{target_type}'."
            )

    def _coerce_literal(
        self, value: Any, gql_type: GraphQLType | None, label: str
    ) -> tuple[Any, Coercion]:
        """Auto-coerce a literal for a typed slot and check it.

        Enum slots get an :class:`EnumLiteral` so the value renders bare.
        """
        coercion = coerce_for_slot(value, gql_type)
        processed = coercion.value
        if gql_type is None:
            return processed, coercion

        error = validate_value_against_type(processed, gql_type)
        if error:
            raise TypeMismatchError(f"{label}: {error}")
        if isinstance(processed, (dict, list)):
            try:
                coerce_input_value(processed, gql_type)
            except GraphQLError as e:
                raise TypeMismatchError(f"{label}: {e.message}") from e

        nullable = get_nullable_type(gql_type)
        if isinstance(processed, str) and is_enum_type(get_named_type(gql_type)) and not is_list_type(nullable):
            processed = EnumLiteral(processed)
        return processed, coercion
