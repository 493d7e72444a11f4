"""Core modules for incremental GraphQL query construction."""

from .complexity import (
    MAX_COMPLEXITY_SCORE,
    MAX_FIELD_COUNT,
    MAX_QUERY_DEPTH,
    ComplexityReport,
    analyze_query_complexity,
)
from .config import BuilderSettings, SchemaStrictness
from .context import UNSET
from .errors import (
    ComplexityExceededError,
    ConflictError,
    InvalidSyntaxError,
    NotFoundError,
    QueryBuilderError,
    SessionNotFoundError,
    TypeMismatchError,
    UpstreamError,
    UpstreamTimeoutError,
)
from .executor import ExecutionResult, GraphQLExecutor
from .ir import (
    Directive,
    EnumLiteral,
    FieldPath,
    FragmentDefinition,
    InlineFragment,
    LiteralValue,
    MarkedString,
    OperationType,
    QueryState,
    SelectionNode,
    TypedValue,
    VariableRef,
)
from .parser import SchemaLoader, load_schema
from .query_builder import build_query, build_query_from_state, build_selection_set
from .schema import (
    IntrospectionSchemaProvider,
    SchemaCache,
    SchemaProvider,
    StaticSchemaProvider,
)
from .service import QueryBuilderService
from .store import (
    MemorySessionStore,
    RedisSessionStore,
    SessionStore,
    generate_session_id,
    normalize_session_id,
)

__all__ = [
    # Service
    "QueryBuilderService",
    "BuilderSettings",
    "SchemaStrictness",
    "UNSET",
    # State
    "QueryState",
    "SelectionNode",
    "FieldPath",
    "Directive",
    "InlineFragment",
    "FragmentDefinition",
    "OperationType",
    "LiteralValue",
    "TypedValue",
    "MarkedString",
    "EnumLiteral",
    "VariableRef",
    # Serialization and analysis
    "build_query",
    "build_query_from_state",
    "build_selection_set",
    "analyze_query_complexity",
    "ComplexityReport",
    "MAX_QUERY_DEPTH",
    "MAX_FIELD_COUNT",
    "MAX_COMPLEXITY_SCORE",
    # Schema
    "SchemaProvider",
    "StaticSchemaProvider",
    "IntrospectionSchemaProvider",
    "SchemaCache",
    "SchemaLoader",
    "load_schema",
    # Storage
    "SessionStore",
    "MemorySessionStore",
    "RedisSessionStore",
    "generate_session_id",
    "normalize_session_id",
    # Execution
    "GraphQLExecutor",
    "ExecutionResult",
    # Errors
    "QueryBuilderError",
    "NotFoundError",
    "SessionNotFoundError",
    "InvalidSyntaxError",
    "TypeMismatchError",
    "ConflictError",
    "ComplexityExceededError",
    "UpstreamError",
    "UpstreamTimeoutError",
]
