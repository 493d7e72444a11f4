"""Query builder service.

:class:`QueryBuilderService` combines the operation mixins with the
session lifecycle: starting and ending sessions, materializing the
document, validating it, and executing it.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from graphql import (
    GraphQLError,
    GraphQLNamedType,
    GraphQLSchema,
    coerce_input_value,
    get_named_type,
    is_required_argument,
    parse,
    validate,
)

from .arguments import ArgumentOperations
from .complexity import analyze_query_complexity
from .config import BuilderSettings, validate_headers
from .context import ensure, ensure_input_complexity
from .directives import DirectiveOperations
from .errors import (
    ComplexityExceededError,
    InvalidSyntaxError,
    NotFoundError,
    UpstreamError,
    tool_result,
)
from .explorer import ExplorerOperations
from .fragments import FragmentOperations
from .ir import OperationType, QueryState, SelectionNode
from .query_builder import build_query_from_state
from .schema import IntrospectionSchemaProvider, SchemaCache, field_definition, root_type_for, type_from_string
from .selection import SelectionOperations
from .store import MemorySessionStore, RedisSessionStore, generate_session_id
from .validation import validate_operation_name
from .variables import VariableOperations

logger = logging.getLogger(__name__)

EMPTY_QUERY_ERROR = "Query is empty. Add at least one field to the query."


def missing_required_arguments(schema: GraphQLSchema, state: QueryState) -> list[str]:
    """Required field arguments that have not been set, anywhere in the tree."""
    errors: list[str] = []

    def walk(node: SelectionNode, parent_type: GraphQLNamedType | None, path: str) -> None:
        for key, child in node.fields.items():
            child_path = f"{path}.{key}" if path else key
            definition = field_definition(parent_type, child.field_name) if parent_type else None
            if definition is None:
                continue
            for arg_name, argument in definition.args.items():
                if is_required_argument(argument) and arg_name not in child.args:
                    errors.append(f"Required argument '{arg_name}' missing for field '{child_path}'")
            walk(child, get_named_type(definition.type), child_path)
        for fragment in node.inline_fragments:
            walk(SelectionNode(fields=fragment.selections), schema.get_type(fragment.on_type), path)

    walk(state.query_structure, root_type_for(schema, state.operation_type), "")
    for fragment in state.fragments.values():
        walk(SelectionNode(fields=fragment.fields), schema.get_type(fragment.on_type), "")
    return errors


def variable_value_errors(schema: GraphQLSchema | None, state: QueryState) -> list[str]:
    """Required variables without a value, and values that do not fit their type."""
    errors = []
    for name, type_string in state.variables_schema.items():
        has_value = name in state.variables_values
        if type_string.strip().endswith("!") and not has_value and name not in state.variables_defaults:
            errors.append(f"Variable '{name}' of required type '{type_string}' has no value.")
            continue
        if not has_value or schema is None:
            continue
        gql_type = type_from_string(schema, type_string)
        if gql_type is None:
            errors.append(f"Variable '{name}' has unknown type '{type_string}'.")
            continue
        try:
            coerce_input_value(state.variables_values[name], gql_type)
        except GraphQLError as e:
            errors.append(f"Variable '{name}': {e.message}")
    return errors


class QueryBuilderService(
    SelectionOperations,
    ArgumentOperations,
    DirectiveOperations,
    VariableOperations,
    FragmentOperations,
    ExplorerOperations,
):
    """Incremental, schema-checked construction of GraphQL operations.

    Every public operation returns a result record and never raises:
    ``{"success": True, "message": ..., ...}`` or ``{"error": ...}``.

    Examples:
        service = QueryBuilderService(MemorySessionStore(), StaticSchemaProvider(schema))
        session = await service.start_query_session()
        await service.select_field(session["session_id"], "character")
        await service.set_typed_argument(session["session_id"], "character", "id", "1")
        await service.select_field(session["session_id"], "name", "character")
        (await service.get_current_query(session["session_id"]))["query_string"]
    """

    @classmethod
    def from_settings(
        cls, settings: BuilderSettings, cache: SchemaCache | None = None
    ) -> "QueryBuilderService":
        """Build a service with the store and schema source the settings describe."""
        if not settings.endpoint:
            raise ValueError("A GraphQL endpoint is required (DEFAULT_GRAPHQL_ENDPOINT)")
        if settings.redis_url:
            store = RedisSessionStore.from_url(
                settings.redis_url,
                ttl_seconds=settings.session_ttl_seconds,
                retry_attempts=settings.store_retry_attempts,
                retry_delay=settings.store_retry_delay,
            )
        else:
            store = MemorySessionStore(ttl_seconds=settings.session_ttl_seconds)
        provider = IntrospectionSchemaProvider(
            settings.endpoint, cache, timeout=settings.schema_timeout
        )
        return cls(store, provider, settings)

    async def close(self) -> None:
        if self.executor is not None:
            await self.executor.close()

    @tool_result
    async def start_query_session(
        self,
        operation_type: str = "query",
        operation_name: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Create a session for a new query, mutation or subscription.

        Args:
            operation_type: query, mutation or subscription
            operation_name: Optional name rendered after the operation keyword
            headers: Per-session headers, merged over the default headers

        Returns:
            A result record carrying the new ``session_id``
        """
        ensure(validate_operation_name(operation_name))
        try:
            op = OperationType(str(operation_type).lower())
        except ValueError:
            raise InvalidSyntaxError(
                f"Operation type '{operation_type}' not supported by schema or invalid"
            ) from None
        if headers is not None:
            ensure_input_complexity(headers, "headers")
            ensure(validate_headers(headers))
        merged = {**self.settings.default_headers, **(headers or {})}

        type_name = op.value.capitalize()
        schema = await self._schema(merged)
        if schema is not None:
            root = root_type_for(schema, op)
            if root is None:
                raise NotFoundError(f"Operation type '{op.value}' not supported by schema or invalid")
            type_name = root.name

        state = QueryState(
            operation_type=op,
            operation_type_name=type_name,
            operation_name=operation_name,
            headers=merged,
        )
        session_id = generate_session_id()
        await self._save(session_id, state)
        logger.info("Started %s session %s", op.value, session_id)

        return {
            "success": True,
            "session_id": session_id,
            "operation_type": op.value,
            "operation_name": operation_name,
            "created_at": state.created_at,
            "message": f"Query session started for {op.value} operation.",
        }

    @tool_result
    async def end_query_session(self, session_id: str) -> dict[str, Any]:
        state = await self._load(session_id)
        await self.store.delete(session_id)
        logger.info("Ended session %s", session_id)
        return {
            "success": True,
            "message": f"Session {session_id} ended successfully",
            "session_info": {
                "operation_type": state.operation_type.value,
                "operation_name": state.operation_name,
                "created_at": state.created_at,
                "ended_at": datetime.now(timezone.utc).isoformat(),
                "field_count": sum(1 for _ in state.query_structure.walk()) - 1,
                "variable_count": len(state.variables_schema),
                "fragment_count": len(state.fragments),
            },
        }

    @tool_result
    async def get_current_query(self, session_id: str) -> dict[str, Any]:
        """Render the document; warnings list required arguments still missing."""
        state = await self._load(session_id)
        result: dict[str, Any] = {
            "query_string": build_query_from_state(state),
            "variables_schema": dict(state.variables_schema),
            "variables_values": dict(state.variables_values),
        }
        try:
            schema = await self.schema_provider.get_schema(state.headers)
        except UpstreamError as e:
            logger.warning("Skipping required-argument check: %s", e.message)
        else:
            warnings = missing_required_arguments(schema, state)
            if warnings:
                result["warnings"] = warnings
        return result

    @tool_result
    async def analyze_query(self, session_id: str) -> dict[str, Any]:
        state = await self._load(session_id)
        report = analyze_query_complexity(state.query_structure)
        return {"success": True, **report.to_dict()}

    @tool_result
    async def validate_query(self, session_id: str) -> dict[str, Any]:
        """Validate in layers and report only the first failing layer.

        Structural checks (complexity, required arguments) come first, then
        syntax and schema validation of the document, then variable values.
        """
        state = await self._load(session_id)
        query = build_query_from_state(state)
        report = analyze_query_complexity(state.query_structure)
        result: dict[str, Any] = {
            "valid": False,
            "errors": [],
            "warnings": list(report.warnings),
            "query": query,
            "complexity": report.to_dict(),
        }
        if not query:
            result["errors"] = [EMPTY_QUERY_ERROR]
            return result

        schema = await self._schema(state.headers)
        errors = list(report.errors)
        if schema is not None:
            errors += missing_required_arguments(schema, state)
        if errors:
            result["errors"] = errors
            return result

        try:
            document = parse(query)
        except GraphQLError as e:
            result["errors"] = [f"Syntax error: {e.message}"]
            return result
        if schema is not None:
            errors = [e.message for e in validate(schema, document)]
            if errors:
                result["errors"] = errors
                return result

        errors = variable_value_errors(schema, state)
        if errors:
            result["errors"] = errors
            return result

        result["valid"] = True
        return result

    @tool_result
    async def execute_query(self, session_id: str) -> dict[str, Any]:
        """Send the document and its variable values to the endpoint."""
        if self.executor is None:
            raise UpstreamError("No GraphQL endpoint configured for execution.")
        state = await self._load(session_id)
        query = build_query_from_state(state)
        if not query:
            raise InvalidSyntaxError(EMPTY_QUERY_ERROR)

        report = analyze_query_complexity(state.query_structure)
        if not report.valid:
            raise ComplexityExceededError(
                f"Query complexity validation failed: {'; '.join(report.errors)}"
            )
        if report.complexity_score > self.settings.expensive_score_threshold:
            timeout = self.settings.expensive_execution_timeout
        else:
            timeout = self.settings.execution_timeout

        variables = {name.lstrip("$"): value for name, value in state.variables_values.items()}
        outcome = await self.executor.execute(
            query,
            variables,
            operation_name=state.operation_name,
            headers=state.headers,
            timeout=timeout,
        )
        return {
            "data": outcome.data,
            "errors": outcome.errors,
            "query_string": query,
            "execution_time_ms": round(outcome.elapsed_ms, 1),
            "complexity": report.to_dict(),
        }

